"""Email transports used to deliver call transcripts."""
from channels.base import EmailTransport, TransportError, TransportMetrics
from channels.console_adapter import ConsoleTransport
from channels.email_adapter import GmailTransport
from channels.transactional_adapter import MailerSendTransport, SendGridTransport
from channels.factory import build_transports, transport_order

__all__ = [
    "EmailTransport", "TransportError", "TransportMetrics",
    "ConsoleTransport", "GmailTransport", "MailerSendTransport", "SendGridTransport",
    "build_transports", "transport_order",
]
