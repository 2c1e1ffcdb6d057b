"""
Input validation and display formatting helpers.

Used by the initiation handler (phone/email checks) and the email
templates (durations, provider timestamps).
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_DIGITS = 10


def digits_only(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def is_valid_phone(phone: str) -> bool:
    return len(digits_only(phone)) == PHONE_DIGITS


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match((email or "").strip()))


def to_e164(phone: str, country_code: str = "+91") -> str:
    """Prefix the local 10-digit number with the configured country code."""
    code = country_code if country_code.startswith("+") else f"+{country_code}"
    return f"{code}{digits_only(phone)}"


def format_phone(phone: str) -> str:
    clean = digits_only(phone)
    if len(clean) == PHONE_DIGITS:
        return f"({clean[:3]}) {clean[3:6]}-{clean[6:]}"
    return phone


def format_duration(ms: Optional[int]) -> str:
    if not ms or ms < 0:
        return "N/A"
    seconds = int(ms // 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def format_timestamp(epoch_ms: Optional[int]) -> str:
    """Provider timestamps are epoch milliseconds."""
    if not epoch_ms:
        return "N/A"
    try:
        dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "N/A"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def mask_secret(value: Optional[str]) -> str:
    """Show only the last 4 characters of a credential."""
    if not value:
        return "(not set)"
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"
