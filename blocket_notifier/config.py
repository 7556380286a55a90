"""Blocket Notifier — Configuration Loader.

Loads and validates application configuration from a YAML file.
Resolves environment variables referenced via ${VAR_NAME} or
${VAR_NAME:-default} syntax. Every component receives its section
explicitly; nothing reads os.environ after loading.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from blocket_notifier.database.models import InterestProfile, Recipient
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

# ── Path Constants ────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
SETTINGS_PATH = CONFIG_DIR / "settings.yaml"
RECIPIENTS_PATH = CONFIG_DIR / "recipients.yaml"

# ── Environment Variable Pattern ─────────────────────────
# ${NAME} or ${NAME:-fallback}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?}")


# ═══════════════════════════════════════════════════════════
# Configuration Dataclasses
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CrawlerConfig:
    """Configuration for index crawling and detail fetching."""

    base_url: str
    index_url: str
    index_params: dict[str, str]
    user_agents: list[str]
    timeout_seconds: float
    scan_interval_minutes: int
    page_param: str = "o"
    max_pages: Optional[int] = None
    index_wave_size: int = 5
    detail_wave_size: int = 50


@dataclass(frozen=True)
class NotifyConfig:
    """Configuration for recipient SMS and e-mail dispatch.

    An empty gateway URL disables that channel; an empty shortener
    token sends full listing urls in SMS texts.
    """

    wave_size: int = 50
    sms_gateway_url: str = ""
    sms_api_token: str = ""
    sms_sender: str = ""
    email_gateway_url: str = ""
    email_api_token: str = ""
    email_sender: str = ""
    shortener_token: str = ""


@dataclass(frozen=True)
class LeadsConfig:
    """Configuration for the lead-forwarding integration.

    ``notify`` is the dry-run switch: unless it is exactly True the
    forwarder only logs what it would have sent.
    """

    api_url: str
    access_token: str = ""
    notify: bool = False
    wave_size: int = 50
    excluded_home_type_pattern: str = r"fritidsboende"
    owner_denylist: list[str] = field(default_factory=lambda: ["samtrygg", "renthia"])
    mobile_pattern: str = r"^(\+46|0|46)7"

    @property
    def enabled(self) -> bool:
        """Whether a token is configured at all."""
        return bool(self.access_token)


@dataclass(frozen=True)
class TelegramConfig:
    """Configuration for operator alerts over Telegram."""

    bot_token: str = ""
    chat_id: str = ""

    @property
    def enabled(self) -> bool:
        """Whether both the token and the chat id are set."""
        return bool(self.bot_token and self.chat_id)


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration container."""

    crawler: CrawlerConfig
    notify: NotifyConfig
    leads: LeadsConfig
    telegram: TelegramConfig
    database_path: str
    log_level: str
    recipients_path: str = ""
    log_file: str = ""


# ═══════════════════════════════════════════════════════════
# YAML Loading & Environment Variable Resolution
# ═══════════════════════════════════════════════════════════


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${VAR_NAME} references in YAML values.

    Args:
        value: A string, dict, list, or primitive from parsed YAML.

    Returns:
        The same structure with all placeholders replaced.

    Raises:
        ValueError: If a referenced variable is unset and has no default.
    """
    if isinstance(value, str):
        def _substitute(match: re.Match[str]) -> str:
            var_name, default = match.group(1), match.group(2)
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            raise ValueError(
                f"Environment variable '${{{var_name}}}' is required but not set. "
                f"Add it to your .env file or export it in your shell."
            )

        return ENV_VAR_PATTERN.sub(_substitute, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file with UTF-8 encoding.

    Raises:
        FileNotFoundError: If the YAML file does not exist.
        ValueError: If the file is empty.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        raise ValueError(f"Configuration file is empty: {path}")

    logger.debug("Loaded configuration from %s", path)
    return data


def _as_bool(value: Any) -> bool:
    """Interpret YAML/env flag values; only explicit truthy strings count."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return False


def _optional_int(value: Any) -> Optional[int]:
    """Empty, zero or missing means "no limit"."""
    if value in (None, "", 0, "0"):
        return None
    return int(value)


# ═══════════════════════════════════════════════════════════
# Dataclass Builders
# ═══════════════════════════════════════════════════════════


def _build_crawler_config(data: dict[str, Any]) -> CrawlerConfig:
    """Build a CrawlerConfig from the 'crawler' section."""
    required_keys = [
        "base_url", "index_url", "user_agents",
        "timeout_seconds", "scan_interval_minutes",
    ]
    _validate_keys(data, required_keys, "crawler")

    return CrawlerConfig(
        base_url=data["base_url"].rstrip("/"),
        index_url=data["index_url"],
        index_params={k: str(v) for k, v in (data.get("index_params") or {}).items()},
        user_agents=list(data["user_agents"]),
        timeout_seconds=float(data["timeout_seconds"]),
        scan_interval_minutes=int(data["scan_interval_minutes"]),
        page_param=data.get("page_param", "o"),
        max_pages=_optional_int(data.get("max_pages")),
        index_wave_size=int(data.get("index_wave_size", 5)),
        detail_wave_size=int(data.get("detail_wave_size", 50)),
    )


def _build_notify_config(data: dict[str, Any]) -> NotifyConfig:
    """Build a NotifyConfig from the 'notify' section."""
    sms = data.get("sms") or {}
    email = data.get("email") or {}
    return NotifyConfig(
        wave_size=int(data.get("wave_size", 50)),
        sms_gateway_url=sms.get("gateway_url", ""),
        sms_api_token=sms.get("api_token", ""),
        sms_sender=sms.get("sender", ""),
        email_gateway_url=email.get("gateway_url", ""),
        email_api_token=email.get("api_token", ""),
        email_sender=email.get("sender", ""),
        shortener_token=(data.get("shortener") or {}).get("access_token", "") or "",
    )


def _build_leads_config(data: dict[str, Any]) -> LeadsConfig:
    """Build a LeadsConfig from the 'leads' section."""
    _validate_keys(data, ["api_url"], "leads")

    defaults = LeadsConfig(api_url=data["api_url"])
    return LeadsConfig(
        api_url=data["api_url"],
        access_token=data.get("access_token", "") or "",
        notify=_as_bool(data.get("notify", False)),
        wave_size=int(data.get("wave_size", defaults.wave_size)),
        excluded_home_type_pattern=data.get(
            "excluded_home_type_pattern", defaults.excluded_home_type_pattern,
        ),
        owner_denylist=list(data.get("owner_denylist", defaults.owner_denylist)),
        mobile_pattern=data.get("mobile_pattern", defaults.mobile_pattern),
    )


def _build_telegram_config(data: dict[str, Any]) -> TelegramConfig:
    """Build a TelegramConfig from the optional 'telegram' section."""
    return TelegramConfig(
        bot_token=data.get("bot_token", "") or "",
        chat_id=str(data.get("chat_id", "") or ""),
    )


def _validate_keys(data: dict[str, Any], required: list[str], section: str) -> None:
    """Validate that all required keys exist in a config section.

    Raises:
        ValueError: If any required key is missing.
    """
    missing = [key for key in required if key not in data]
    if missing:
        raise ValueError(
            f"Missing required configuration keys in '{section}': {', '.join(missing)}"
        )


# ═══════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════


def load_config(
    settings_path: Path | None = None,
    env_path: Path | None = None,
) -> AppConfig:
    """Load the complete application configuration.

    Args:
        settings_path: Override path to settings.yaml.
        env_path: Override path to the .env file.

    Returns:
        A fully validated AppConfig instance.

    Raises:
        FileNotFoundError: If the settings file is missing.
        ValueError: If required fields are missing or env vars are unset.
    """
    env_file = env_path or (PROJECT_ROOT / ".env")
    load_dotenv(env_file)
    logger.debug("Loaded environment from %s", env_file)

    settings = _resolve_env_vars(_load_yaml(settings_path or SETTINGS_PATH))

    _validate_keys(settings, ["crawler", "leads", "database", "logging"], "settings")

    config = AppConfig(
        crawler=_build_crawler_config(settings["crawler"]),
        notify=_build_notify_config(settings.get("notify") or {}),
        leads=_build_leads_config(settings["leads"]),
        telegram=_build_telegram_config(settings.get("telegram") or {}),
        database_path=settings["database"]["path"],
        log_level=settings["logging"].get("level", "INFO"),
        recipients_path=(settings.get("recipients") or {}).get("path", "") or "",
        log_file=settings["logging"].get("file", "") or "",
    )

    logger.info("Configuration loaded successfully")
    logger.debug("Database path: %s", config.database_path)
    logger.debug(
        "Lead forwarding: %s",
        "disabled" if not config.leads.enabled
        else ("live" if config.leads.notify else "dry-run"),
    )
    return config


def _build_recipient(data: dict[str, Any], index: int) -> Recipient:
    """Build a Recipient from one entry of the recipients file."""
    _validate_keys(data, ["name"], f"recipients[{index}]")

    profile = dict(data.get("profile") or {})
    profile["max_rent"] = _optional_int(profile.get("max_rent"))
    return Recipient(
        name=str(data["name"]),
        email=data.get("email") or None,
        phone=str(data["phone"]) if data.get("phone") else None,
        notify_sms=_as_bool(data.get("notify_sms", False)),
        notify_email=_as_bool(data.get("notify_email", False)),
        profile=InterestProfile.from_dict(profile),
    )


def load_recipients(path: Path | str | None = None) -> list[Recipient]:
    """Load the recipients seed file.

    The file holds a top-level ``recipients`` list; each entry has a
    ``name``, optional ``email``/``phone``, the two opt-in flags and an
    optional ``profile`` mapping. ``${VAR}`` placeholders are resolved
    the same way as in settings.yaml.

    Args:
        path: Override path to recipients.yaml.

    Returns:
        The recipients in file order; empty when the file does not exist.

    Raises:
        ValueError: If an entry has no name or a placeholder is unset.
    """
    recipients_file = Path(path) if path else RECIPIENTS_PATH
    if not recipients_file.is_absolute():
        recipients_file = PROJECT_ROOT / recipients_file
    if not recipients_file.exists():
        logger.info("No recipients file at %s", recipients_file)
        return []

    with open(recipients_file, "r", encoding="utf-8") as f:
        data = _resolve_env_vars(yaml.safe_load(f) or {})

    entries = data.get("recipients") or []
    recipients = [_build_recipient(entry, i) for i, entry in enumerate(entries)]
    logger.info("Loaded %d recipient(s) from %s", len(recipients), recipients_file)
    return recipients
