"""
Call-Initiation Handler — form submission → outbound call → registry entry.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Union

import structlog

from core.errors import ProviderError, ValidationError
from core.registry import CallRegistry
from models.schemas import CallRecord
from utils.validators import digits_only, format_phone, is_valid_email, is_valid_phone, to_e164

logger = structlog.get_logger()


class CallCreator(Protocol):
    async def create_call(
        self, from_number: str, to_number: str, agent_id: str, metadata: dict[str, Any] = None
    ) -> str:
        ...


class CallInitiator:

    def __init__(
        self,
        provider: CallCreator,
        registry: CallRegistry,
        from_number: str,
        agent_id: str,
        country_code: str = "+91",
    ):
        self.provider = provider
        self.registry = registry
        self.from_number = from_number
        self.agent_id = agent_id
        self.country_code = country_code

    @staticmethod
    def _text(value: Optional[Union[str, int]]) -> str:
        return "" if value is None else str(value).strip()

    @staticmethod
    def validate(name, phone, email) -> tuple[str, str, str]:
        """Return cleaned (name, phone digits, email) or raise ValidationError.

        Values may arrive as None or numbers straight from the JSON body.
        """
        phone = CallInitiator._text(phone)
        email = CallInitiator._text(email)
        if not phone or not email:
            raise ValidationError("Phone and email are required.")
        if not is_valid_phone(phone):
            raise ValidationError("Phone number must be 10 digits.")
        if not is_valid_email(email):
            raise ValidationError("Email address is not valid.")
        return CallInitiator._text(name) or "User", digits_only(phone), email

    async def initiate(self, name: str, phone: str, email: str) -> str:
        name, phone, email = self.validate(name, phone, email)
        now = datetime.now(timezone.utc)

        try:
            call_id = await self.provider.create_call(
                from_number=self.from_number,
                to_number=to_e164(phone, self.country_code),
                agent_id=self.agent_id,
                metadata={
                    "user_name": name,
                    "user_email": email,
                    "user_phone": phone,
                    "timestamp": now.isoformat(),
                },
            )
        except ProviderError:
            logger.error("call_initiation_failed", email=email)
            raise
        except Exception as e:
            logger.error("call_initiation_failed", email=email, error=str(e))
            raise ProviderError(f"Call creation failed: {e}") from e

        self.registry.put(call_id, CallRecord(
            call_id=call_id, name=name, email=email, phone=phone, created_at=now,
        ))
        logger.info("call_initiated", call_id=call_id, email=email, name=name,
                    phone=format_phone(phone))
        return call_id
