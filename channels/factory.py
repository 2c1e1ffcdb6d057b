"""
Transport Factory — turns email configuration into a preferred-order list.

    email.transports: [mailersend, gmail]   explicit order, used as-is
    email.service + email.backup            primary then backup otherwise

Transports whose credentials are missing are skipped with a warning, so
the delivery pipeline only ever sees transports that can actually try.
Adding a transport means adding a builder here, nothing else.
"""
from __future__ import annotations

from typing import Callable, Optional

import structlog

from channels.base import EmailTransport
from channels.console_adapter import ConsoleTransport
from channels.email_adapter import GmailTransport
from channels.transactional_adapter import MailerSendTransport, SendGridTransport
from config.settings import EmailConfig

logger = structlog.get_logger()


def _sendgrid(cfg: EmailConfig) -> Optional[EmailTransport]:
    if not cfg.sendgrid_api_key:
        return None
    return SendGridTransport(cfg.sendgrid_api_key, cfg.from_email, cfg.from_name)


def _mailersend(cfg: EmailConfig) -> Optional[EmailTransport]:
    if not cfg.mailersend_api_key:
        return None
    return MailerSendTransport(cfg.mailersend_api_key, cfg.from_email, cfg.from_name)


def _gmail(cfg: EmailConfig) -> Optional[EmailTransport]:
    if not (cfg.gmail.user and cfg.gmail.password):
        return None
    return GmailTransport(
        user=cfg.gmail.user,
        password=cfg.gmail.password,
        from_name=cfg.from_name,
        smtp_host=cfg.gmail.smtp_host,
        smtp_port=cfg.gmail.smtp_port,
    )


def _console(cfg: EmailConfig) -> Optional[EmailTransport]:
    return ConsoleTransport(from_name=cfg.from_name)


BUILDERS: dict[str, Callable[[EmailConfig], Optional[EmailTransport]]] = {
    "sendgrid": _sendgrid,
    "mailersend": _mailersend,
    "gmail": _gmail,
    "console": _console,
}


def transport_order(cfg: EmailConfig) -> list[str]:
    """Names in the order they should be tried, duplicates removed."""
    if cfg.transports:
        names = [n.strip().lower() for n in cfg.transports]
    else:
        names = [cfg.service.strip().lower()]
        backup = cfg.backup.strip().lower()
        if not backup and cfg.gmail.password:
            backup = "gmail"
        if backup:
            names.append(backup)

    ordered: list[str] = []
    for name in names:
        if name and name not in ordered:
            ordered.append(name)
    return ordered


def build_transports(cfg: EmailConfig) -> list[EmailTransport]:
    transports: list[EmailTransport] = []
    for name in transport_order(cfg):
        builder = BUILDERS.get(name)
        if builder is None:
            logger.warning("unknown_email_transport", transport=name)
            continue
        transport = builder(cfg)
        if transport is None:
            logger.warning("email_transport_not_configured", transport=name)
            continue
        transports.append(transport)

    logger.info("email_transports_ready", order=[t.name for t in transports])
    return transports
