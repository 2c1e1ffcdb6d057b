"""
Configuration loader for TranscriptRelay.
Reads settings from YAML file with environment variable substitution,
then applies direct environment overrides (.env friendly).
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from core.errors import SettingsError
from utils.validators import mask_secret

logger = structlog.get_logger()


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )
    production_origins: list[str] = field(default_factory=list)


@dataclass
class RetellConfig:
    api_key: str = ""
    agent_id: str = ""
    from_number: str = ""
    base_url: str = "https://api.retellai.com"
    webhook_path: str = "/"


@dataclass
class GmailConfig:
    user: str = ""
    password: str = ""                 # app password, not the account password
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587


@dataclass
class EmailConfig:
    service: str = "gmail"             # "sendgrid" | "mailersend" | "gmail" | "console"
    backup: str = ""                   # empty → gmail when a gmail password is set
    transports: list[str] = field(default_factory=list)   # explicit order, overrides service/backup
    from_email: str = ""
    from_name: str = "Your Company"
    sendgrid_api_key: str = ""
    mailersend_api_key: str = ""
    gmail: GmailConfig = field(default_factory=GmailConfig)


@dataclass
class CallConfig:
    max_retries: int = 5               # transcript fetch attempts
    retry_delay_ms: int = 15000        # between attempts
    timeout_ms: int = 10000            # per provider request
    country_code: str = "+91"
    completed_ttl_s: int = 3600        # how long finished call ids are remembered

    @property
    def retry_delay_s(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class LoggingConfig:
    level: str = "info"
    json: bool = False


@dataclass
class Settings:
    app_name: str = "TranscriptRelay"
    version: str = "1.0.0"
    server: ServerConfig = field(default_factory=ServerConfig)
    retell: RetellConfig = field(default_factory=RetellConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    call: CallConfig = field(default_factory=CallConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def is_production(self) -> bool:
        return self.server.environment == "production"


_settings: Optional[Settings] = None


_ENV_REF = re.compile(r"\$\{(\w+)\}")


def _expand(obj: Any, env: dict[str, str]) -> Any:
    """Fill ${VAR} references from env; unset variables become empty strings."""
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: env.get(m.group(1), ""), obj)
    if isinstance(obj, dict):
        return {k: _expand(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand(v, env) for v in obj]
    return obj


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_list(value: Any) -> list[str]:
    """YAML list or comma-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _apply_yaml(settings: Settings, raw: dict[str, Any]) -> None:
    settings.app_name = raw.get("app_name", settings.app_name)

    if "server" in raw:
        s = raw["server"] or {}
        settings.server = ServerConfig(
            host=s.get("host", settings.server.host),
            port=_as_int(s.get("port"), settings.server.port),
            environment=s.get("environment", settings.server.environment) or "development",
            cors_origins=s.get("cors_origins", settings.server.cors_origins),
            production_origins=_as_list(s.get("production_origins")),
        )

    if "retell" in raw:
        r = raw["retell"] or {}
        settings.retell = RetellConfig(
            api_key=r.get("api_key", ""),
            agent_id=r.get("agent_id", ""),
            from_number=r.get("from_number", ""),
            base_url=r.get("base_url", settings.retell.base_url),
            webhook_path=r.get("webhook_path", "/") or "/",
        )

    if "email" in raw:
        e = raw["email"] or {}
        g = e.get("gmail", {}) or {}
        settings.email = EmailConfig(
            service=e.get("service", "gmail") or "gmail",
            backup=e.get("backup", "") or "",
            transports=list(e.get("transports", []) or []),
            from_email=e.get("from_email", ""),
            from_name=e.get("from_name", "Your Company") or "Your Company",
            sendgrid_api_key=e.get("sendgrid_api_key", ""),
            mailersend_api_key=e.get("mailersend_api_key", ""),
            gmail=GmailConfig(
                user=g.get("user", ""),
                password=g.get("password", ""),
                smtp_host=g.get("smtp_host", "smtp.gmail.com"),
                smtp_port=_as_int(g.get("smtp_port"), 587),
            ),
        )

    if "call" in raw:
        c = raw["call"] or {}
        settings.call = CallConfig(
            max_retries=_as_int(c.get("max_retries"), 5),
            retry_delay_ms=_as_int(c.get("retry_delay_ms"), 15000),
            timeout_ms=_as_int(c.get("timeout_ms"), 10000),
            country_code=c.get("country_code", "+91") or "+91",
            completed_ttl_s=_as_int(c.get("completed_ttl_s"), 3600),
        )

    if "logging" in raw:
        lg = raw["logging"] or {}
        settings.logging = LoggingConfig(
            level=lg.get("level", "info") or "info",
            json=_as_bool(lg.get("json", False)),
        )


# env var → (section, attribute, kind)
_ENV_OVERRIDES: dict[str, tuple[str, str, str]] = {
    "HOST": ("server", "host", "str"),
    "PORT": ("server", "port", "int"),
    "ENVIRONMENT": ("server", "environment", "str"),
    "CORS_ORIGINS": ("server", "production_origins", "list"),
    "RETELL_API_KEY": ("retell", "api_key", "str"),
    "RETELL_AGENT_ID": ("retell", "agent_id", "str"),
    "RETELL_FROM_NUMBER": ("retell", "from_number", "str"),
    "WEBHOOK_ENDPOINT": ("retell", "webhook_path", "str"),
    "EMAIL_SERVICE": ("email", "service", "str"),
    "EMAIL_BACKUP": ("email", "backup", "str"),
    "EMAIL_FROM_EMAIL": ("email", "from_email", "str"),
    "EMAIL_FROM_NAME": ("email", "from_name", "str"),
    "SENDGRID_API_KEY": ("email", "sendgrid_api_key", "str"),
    "MAILERSEND_API_KEY": ("email", "mailersend_api_key", "str"),
    "MAX_TRANSCRIPT_RETRIES": ("call", "max_retries", "int"),
    "RETRY_DELAY_MS": ("call", "retry_delay_ms", "int"),
    "CALL_TIMEOUT_MS": ("call", "timeout_ms", "int"),
    "PHONE_COUNTRY_CODE": ("call", "country_code", "str"),
    "LOG_LEVEL": ("logging", "level", "str"),
    "LOG_JSON": ("logging", "json", "bool"),
}


def _apply_env(settings: Settings, env: dict[str, str]) -> None:
    for var, (section, attr, kind) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        target = getattr(settings, section)
        if kind == "int":
            setattr(target, attr, _as_int(value, getattr(target, attr)))
        elif kind == "bool":
            setattr(target, attr, _as_bool(value))
        elif kind == "list":
            setattr(target, attr, _as_list(value))
        else:
            setattr(target, attr, value)

    if env.get("GMAIL_USER"):
        settings.email.gmail.user = env["GMAIL_USER"]
    if env.get("GMAIL_PASS"):
        settings.email.gmail.password = env["GMAIL_PASS"]
    if not settings.email.from_email:
        settings.email.from_email = env.get("EMAIL_USER", "") or settings.email.gmail.user


def load_settings(config_path: str = None, env: dict[str, str] = None) -> Settings:
    """Load settings from YAML file, then environment overrides."""
    global _settings

    env = dict(os.environ) if env is None else env
    if config_path is None:
        config_path = env.get(
            "RELAY_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _expand(raw, env)
        _apply_yaml(settings, raw)

    _apply_env(settings, env)

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    global _settings
    _settings = None


def validate_settings(settings: Settings) -> None:
    """Raise SettingsError naming every missing required value."""
    missing = []
    if not settings.retell.api_key:
        missing.append("RETELL_API_KEY")
    if not settings.retell.agent_id:
        missing.append("RETELL_AGENT_ID")

    service = settings.email.service
    if service == "sendgrid" and not settings.email.sendgrid_api_key:
        missing.append("SENDGRID_API_KEY")
    elif service == "mailersend" and not settings.email.mailersend_api_key:
        missing.append("MAILERSEND_API_KEY")
    elif service == "gmail" and not settings.email.gmail.password:
        missing.append("GMAIL_PASS")

    if missing:
        raise SettingsError(missing)

    if not settings.retell.from_number:
        logger.warning("retell_from_number_not_set")


def describe_settings(settings: Settings) -> dict[str, Any]:
    """Non-secret view of the configuration, logged at startup."""
    return {
        "environment": settings.server.environment,
        "port": settings.server.port,
        "from_number": settings.retell.from_number,
        "agent_id": settings.retell.agent_id,
        "api_key": mask_secret(settings.retell.api_key),
        "webhook_path": settings.retell.webhook_path,
        "max_retries": settings.call.max_retries,
        "retry_delay_ms": settings.call.retry_delay_ms,
        "timeout_ms": settings.call.timeout_ms,
        "email_service": settings.email.service,
        "email_backup": settings.email.backup or "(auto)",
    }
