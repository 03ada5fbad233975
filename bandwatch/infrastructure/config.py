"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all bandwatch settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- A per-incident snapshot is a dataclasses.replace copy (see with_ticket_text)
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_TICKET_TITLE = "香港轻量应用服务器带宽被限速，请帮忙检查解除"
DEFAULT_TICKET_DESCRIPTION = (
    "您好，我购买的香港轻量应用服务器带宽为30Mbps，"
    "但目前实际带宽被限制在约10Mbps左右。"
    "请帮忙检查服务器是否存在带宽限速情况，"
    "如果存在限速请帮忙解除，恢复到购买时承诺的30Mbps带宽。"
    "谢谢！"
)


@dataclass(frozen=True)
class CredentialsConfig:
    """Provider access key pair."""
    access_key_id: str = ""
    access_key_secret: str = field(default="", repr=False)


@dataclass(frozen=True)
class ProviderConfig:
    """Workorder API endpoint."""
    endpoint: str = "workorder.aliyuncs.com"
    api_version: str = "2021-06-10"
    language: str = "zh"
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class TicketConfig:
    """Ticket content and target. Zero ids are resolved from the catalog."""
    product_id: int = 0
    category_id: int = 0
    title: str = DEFAULT_TICKET_TITLE
    description: str = DEFAULT_TICKET_DESCRIPTION
    severity: int = 2  # 2 = urgent, business impacted


@dataclass(frozen=True)
class MonitorConfig:
    """Bandwidth check cadence and decision settings."""
    cron_expression: str = "0 9 * * *"
    speed_threshold: float = 20.0
    auto_submit: bool = False


@dataclass(frozen=True)
class NotificationsConfig:
    """Notification channels. Empty values disable a channel."""
    feishu_webhook_url: str = ""
    telegram_bot_token: str = field(default="", repr=False)
    telegram_chat_id: str = ""
    telegram_commands: bool = True  # poll for bot commands when the bot is configured
    telegram_poll_timeout: int = 30  # getUpdates long-poll seconds

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def telegram_commands_enabled(self) -> bool:
        return self.telegram_enabled and self.telegram_commands


@dataclass(frozen=True)
class CallbackConfig:
    """Approval callback server."""
    url: str = ""  # public base URL, e.g. https://example.com:9876/ticket
    host: str = "0.0.0.0"
    port: int = 9876
    secret: str = field(default="", repr=False)


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    insecure: bool = False


@dataclass(frozen=True)
class BandwatchConfig:
    """Root configuration for the bandwatch application."""
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    ticket: TicketConfig = field(default_factory=TicketConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    callback: CallbackConfig = field(default_factory=CallbackConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "INFO"

    def with_ticket_text(self, title: str, description: str) -> BandwatchConfig:
        """Return a copy whose ticket carries the given title and description."""
        return replace(self, ticket=replace(self.ticket, title=title, description=description))


_SECTIONS: dict[str, type] = {
    "credentials": CredentialsConfig,
    "provider": ProviderConfig,
    "ticket": TicketConfig,
    "monitor": MonitorConfig,
    "notifications": NotificationsConfig,
    "callback": CallbackConfig,
    "telemetry": TelemetryConfig,
}


def _env_override(data: dict, prefix: str = "BANDWATCH") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern BANDWATCH_SECTION_KEY.
    For example: BANDWATCH_CALLBACK_PORT=9090, BANDWATCH_TICKET_PRODUCT_ID=123
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        parts = key[len(prefix) + 1:].lower().split("_", 1)
        if len(parts) == 2 and parts[0] in _SECTIONS:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        else:
            data["_".join(parts)] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s does not hold a JSON object, ignoring", path)
        return {}
    logger.info("Loaded config file %s", path)
    return data


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    # Environment values arrive as strings
    for f in dataclasses.fields(cls):
        if f.name in filtered and isinstance(filtered[f.name], str):
            if f.type == "int":
                filtered[f.name] = int(filtered[f.name])
            elif f.type == "float":
                filtered[f.name] = float(filtered[f.name])
            elif f.type == "bool":
                filtered[f.name] = filtered[f.name].lower() in ("true", "1", "yes")
        elif f.name in filtered and f.type == "float" and isinstance(filtered[f.name], int):
            filtered[f.name] = float(filtered[f.name])

    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "BANDWATCH",
) -> BandwatchConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (BANDWATCH_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to bandwatch.json in CWD.
        env_prefix: Environment variable prefix. Defaults to BANDWATCH.
    """
    config_path = Path(path) if path else Path("bandwatch.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    sections = {
        name: _build_sub_config(cls, data.get(name) or {})
        for name, cls in _SECTIONS.items()
    }
    return BandwatchConfig(log_level=str(data.get("log_level", "INFO")), **sections)
