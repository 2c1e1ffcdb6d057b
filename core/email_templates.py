"""
HTML bodies for the transcript email and the degraded follow-up notice.

Every interpolated value goes through html.escape; the transcript in
particular is provider/caller-controlled text and must stay inert.
"""
from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import Optional

from models.schemas import CallDetail
from utils.validators import format_duration, format_timestamp

TRANSCRIPT_SUBJECT = "Call Transcript - {date}"
FAILURE_SUBJECT = "Call Completed - Transcript Processing Issue"


def transcript_subject(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return TRANSCRIPT_SUBJECT.format(date=now.strftime("%Y-%m-%d"))


def _row(label: str, value: str, mono: bool = False) -> str:
    style = "padding: 5px 0;"
    if mono:
        style += " font-family: monospace; font-size: 12px;"
    return (
        "<tr>"
        f'<td style="padding: 5px 0; font-weight: bold;">{escape(label)}</td>'
        f'<td style="{style}">{escape(value)}</td>'
        "</tr>"
    )


def render_transcript_email(
    name: str, transcript: str, call_id: str, detail: CallDetail, from_name: str
) -> str:
    rows = "".join([
        _row("Start Time:", format_timestamp(detail.start_timestamp)),
        _row("End Time:", format_timestamp(detail.end_timestamp)),
        _row("Duration:", format_duration(detail.duration_ms)),
        _row("Status:", detail.disconnection_reason or "Completed"),
        _row("Call ID:", call_id, mono=True),
    ])
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333; border-bottom: 2px solid #4CAF50; padding-bottom: 10px;">Call Transcript</h2>
  <p>Dear <strong>{escape(name)}</strong>,</p>
  <p>Thank you for your call. Below is the transcript and details of our conversation:</p>
  <div style="background-color: #f8f9fa; padding: 15px; border-radius: 8px; margin: 20px 0;">
    <h3 style="color: #333; margin-top: 0;">Call Details</h3>
    <table style="width: 100%; border-collapse: collapse;">{rows}</table>
  </div>
  <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; border-left: 4px solid #4CAF50;">
    <h3 style="color: #333; margin-top: 0;">Conversation Transcript</h3>
    <div style="background-color: white; padding: 15px; border-radius: 4px;">
      <pre style="white-space: pre-wrap; font-family: 'Segoe UI', Arial, sans-serif; line-height: 1.6; margin: 0;">{escape(transcript)}</pre>
    </div>
  </div>
  <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; text-align: center; color: #666; font-size: 12px;">
    <p>This transcript was automatically generated and sent by our system.</p>
    <p>If you have any questions, please don't hesitate to contact us.</p>
    <p style="margin-top: 15px;"><strong>{escape(from_name)}</strong></p>
  </div>
</div>
"""


def render_failure_email(
    name: str, call_id: str, from_name: str, now: Optional[datetime] = None
) -> str:
    now = now or datetime.now(timezone.utc)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #ff6b6b;">Call Completed</h2>
  <p>Dear <strong>{escape(name)}</strong>,</p>
  <p>Your call has been completed successfully. However, we encountered an issue processing the transcript.</p>
  <p>Our team has been notified and will follow up with you shortly with the transcript.</p>
  <div style="background-color: #f8f9fa; padding: 15px; border-radius: 8px; margin: 20px 0;">
    <p><strong>Call ID:</strong> <code>{escape(call_id)}</code></p>
    <p><strong>Date:</strong> {escape(now.strftime("%Y-%m-%d %H:%M:%S UTC"))}</p>
  </div>
  <p>We apologize for any inconvenience.</p>
  <p><strong>{escape(from_name)}</strong></p>
</div>
"""
