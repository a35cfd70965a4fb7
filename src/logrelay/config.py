"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation,
with an optional YAML file providing defaults. Raw key/value properties
(``filter.prefix``, ``sendinterval`` ...) are accepted through the
``from_properties`` constructors.
"""

import json
import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.exceptions import ConfigurationError

PROPERTY_FILTER = "filter."
PROPERTY_FILTER_PREFIX = PROPERTY_FILTER + "prefix"
PROPERTY_FILTER_SUFFIX = PROPERTY_FILTER + "suffix"
PROPERTY_FILTER_FIXED_LENGTH = PROPERTY_FILTER + "fixedlength"
PROPERTY_FILTER_INCLUDE = PROPERTY_FILTER + "include"
PROPERTY_FILTER_EXCLUDE = PROPERTY_FILTER + "exclude"
PROPERTY_REPLACE_CHARACTER = "replacecharacter"
PROPERTY_SEARCH_LENGTH = "searchlength"
PROPERTY_SEND_INTERVAL = "sendinterval"

TOKEN_DELIMITER = ";"

PROPERTY_MAIL = "simplejavamail."

_MAIL_PROPERTY_FIELDS = {
    "smtp.host": "smtp_host",
    "smtp.port": "smtp_port",
    "smtp.username": "smtp_username",
    "smtp.password": "smtp_password",
    "defaults.from.address": "mail_from",
    "defaults.to.address": "mail_to",
    "defaults.subject": "mail_subject",
}

# strategy -> (implicit TLS, STARTTLS)
_TRANSPORT_STRATEGIES = {
    "SMTP": (False, None),
    "SMTP_TLS": (False, True),
    "SMTPS": (True, False),
}


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = os.environ.get("LOGRELAY_CONFIG_FILE")

    if config_path is None:
        # Look for logrelay.yaml in common locations
        possible_paths = [
            "logrelay.yaml",  # Current directory
            "config/logrelay.yaml",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


def parse_positive_int(value: Any) -> Optional[int]:
    """Parse ``value`` as a positive integer, returning None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None

    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = int(text)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def split_tokens(value: Any) -> List[str]:
    """Split a ``;``-delimited token list, dropping blanks."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(TOKEN_DELIMITER)
    else:
        items = list(value)
    return [str(item).strip() for item in items if str(item).strip()]


class MaskingRuleSettings(BaseModel):
    """One masking rule as configured."""

    prefix: str = Field(description="Start marker")
    suffix: Optional[str] = Field(default=None, description="End marker")
    fixed_length: Optional[int] = Field(
        default=None,
        description="Number of characters masked after the start marker"
    )

    @field_validator("suffix", mode="before")
    def empty_suffix_is_unset(cls, v: Any) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        return str(v)

    @field_validator("fixed_length", mode="before")
    def lenient_fixed_length(cls, v: Any) -> Optional[int]:
        """Malformed lengths mean "unset" rather than a failure."""
        return parse_positive_int(v)


class MaskingSettings(BaseSettings):
    """Data masking configuration."""

    rules: List[MaskingRuleSettings] = Field(
        default_factory=list,
        description="Ordered masking rules"
    )
    replace_character: str = Field(default="*", description="Character used for masking")
    search_length: Optional[int] = Field(
        default=None,
        description="Only the first N characters of a message are scanned"
    )

    @field_validator("replace_character", mode="before")
    def single_character(cls, v: Any) -> str:
        if v is None or not str(v):
            return "*"
        return str(v)[0]

    @field_validator("search_length", mode="before")
    def lenient_search_length(cls, v: Any) -> Optional[int]:
        return parse_positive_int(v)

    model_config = SettingsConfigDict(env_prefix="LOGRELAY_MASKING_")

    @classmethod
    def from_properties(cls, properties: Mapping[str, Optional[str]]) -> "MaskingSettings":
        """
        Build masking settings from raw key/value properties.

        Rules are discovered in the mapping's iteration order from
        ``filter.prefix<ext>`` keys and paired with ``filter.suffix<ext>`` and
        ``filter.fixedlength<ext>`` sharing the same extension.
        """
        rules = []
        for key, prefix in properties.items():
            if not key.startswith(PROPERTY_FILTER_PREFIX) or not prefix:
                continue

            extension = key[len(PROPERTY_FILTER_PREFIX):]
            suffix = properties.get(PROPERTY_FILTER_SUFFIX + extension)
            fixed_length = properties.get(PROPERTY_FILTER_FIXED_LENGTH + extension)
            if suffix or fixed_length:
                rules.append({"prefix": prefix, "suffix": suffix, "fixed_length": fixed_length})

        try:
            return cls(
                rules=rules,
                replace_character=properties.get(PROPERTY_REPLACE_CHARACTER),
                search_length=properties.get(PROPERTY_SEARCH_LENGTH),
            )
        except ValidationError as e:
            raise ConfigurationError("Invalid masking configuration", details={"errors": str(e)}) from e


class DispatchSettings(BaseSettings):
    """Batching and dispatch configuration."""

    send_interval: Optional[timedelta] = Field(
        default=None,
        description="Minimum time between two batch deliveries (ISO-8601 duration or seconds)"
    )
    include: List[str] = Field(
        default_factory=list,
        description="Records must contain one of these tokens"
    )
    exclude: List[str] = Field(
        default_factory=list,
        description="Records containing any of these tokens are dropped"
    )
    max_concurrent_sends: int = Field(default=2, ge=1, description="Concurrent transport calls")
    shutdown_timeout_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Time to wait for in-flight work on shutdown"
    )

    @field_validator("send_interval", mode="before")
    def blank_interval_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("send_interval")
    def positive_interval(cls, v: Optional[timedelta]) -> Optional[timedelta]:
        if v is not None and v.total_seconds() <= 0:
            raise ValueError("send_interval must be positive")
        return v

    @field_validator("include", "exclude", mode="before")
    def parse_tokens(cls, v: Any) -> List[str]:
        return split_tokens(v)

    @property
    def interval_seconds(self) -> Optional[float]:
        if self.send_interval is None:
            return None
        return self.send_interval.total_seconds()

    model_config = SettingsConfigDict(env_prefix="LOGRELAY_DISPATCH_")

    @classmethod
    def from_properties(cls, properties: Mapping[str, Optional[str]]) -> "DispatchSettings":
        """Build dispatch settings from raw key/value properties."""
        values: Dict[str, Any] = {
            "send_interval": properties.get(PROPERTY_SEND_INTERVAL),
            "include": properties.get(PROPERTY_FILTER_INCLUDE),
            "exclude": properties.get(PROPERTY_FILTER_EXCLUDE),
        }
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid dispatch configuration",
                details={"send_interval": values["send_interval"], "errors": str(e)},
            ) from e


class TransportSettings(BaseSettings):
    """Outbound transport configuration."""

    kind: Literal["http", "file", "mail"] = Field(default="http", description="Transport type")
    url: str = Field(default="http://localhost:8080/notify", description="HTTP endpoint for batches")
    file_path: Path = Field(default=Path("./logrelay.log"), description="File receiving batches")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Request timeout")
    max_payload_bytes: int = Field(default=1048576, description="Maximum batch size (1MB)")
    content_type: str = Field(default="text/plain; charset=utf-8", description="HTTP content type")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers")

    # Mail delivery
    smtp_host: str = Field(default="localhost", description="SMTP server host")
    smtp_port: int = Field(default=25, description="SMTP server port")
    smtp_username: Optional[str] = Field(default=None, description="SMTP login user")
    smtp_password: Optional[str] = Field(default=None, description="SMTP login password")
    smtp_use_tls: bool = Field(default=False, description="Connect with implicit TLS (SMTPS)")
    smtp_start_tls: Optional[bool] = Field(
        default=None,
        description="Upgrade with STARTTLS; None upgrades when the server offers it"
    )
    mail_from: Optional[str] = Field(default=None, description="Sender address")
    mail_to: List[str] = Field(default_factory=list, description="Recipient addresses")
    mail_subject: str = Field(default="Log notification", description="Subject of every batch mail")

    @field_validator("mail_to", mode="before")
    def parse_recipients(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            v = v.replace(",", TOKEN_DELIMITER)
        return split_tokens(v)

    model_config = SettingsConfigDict(env_prefix="LOGRELAY_TRANSPORT_")

    @classmethod
    def from_properties(cls, properties: Mapping[str, Optional[str]]) -> "TransportSettings":
        """
        Build transport settings from raw key/value properties.

        Any ``simplejavamail.*`` key selects mail delivery; without one the
        configured defaults apply.
        """
        mail_keys = {
            key[len(PROPERTY_MAIL):]: value
            for key, value in properties.items()
            if key.startswith(PROPERTY_MAIL) and value is not None and str(value).strip()
        }
        if not mail_keys:
            return cls()

        values: Dict[str, Any] = {"kind": "mail"}
        for key, field in _MAIL_PROPERTY_FIELDS.items():
            if key in mail_keys:
                values[field] = mail_keys[key].strip()

        strategy = mail_keys.get("transportstrategy", "SMTP").strip().upper()
        if strategy not in _TRANSPORT_STRATEGIES:
            raise ConfigurationError(
                "Unknown mail transport strategy",
                details={"transportstrategy": strategy},
            )
        values["smtp_use_tls"], values["smtp_start_tls"] = _TRANSPORT_STRATEGIES[strategy]

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError("Invalid mail configuration", details={"errors": str(e)}) from e


class Settings(BaseSettings):
    """Main settings."""

    log_level: str = Field(default="INFO", description="Log level for LogRelay's own diagnostics")
    render_pattern: Optional[str] = Field(default=None, description="Record format pattern")

    # Component settings
    masking: MaskingSettings = Field(default_factory=MaskingSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)

    model_config = SettingsConfigDict(env_prefix="LOGRELAY_", case_sensitive=False)

    @classmethod
    def from_properties(
        cls,
        properties: Mapping[str, Optional[str]],
        transport: Optional[TransportSettings] = None,
    ) -> "Settings":
        """Build settings from a writer-style key/value property map."""
        return cls(
            masking=MaskingSettings.from_properties(properties),
            dispatch=DispatchSettings.from_properties(properties),
            transport=transport or TransportSettings.from_properties(properties),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    # Load config file data
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError("Invalid configuration", details={"errors": str(e)}) from e


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        (None, "log_level"): "LOGRELAY_LOG_LEVEL",
        (None, "render_pattern"): "LOGRELAY_RENDER_PATTERN",
        ("masking", "replace_character"): "LOGRELAY_MASKING_REPLACE_CHARACTER",
        ("masking", "search_length"): "LOGRELAY_MASKING_SEARCH_LENGTH",
        ("dispatch", "send_interval"): "LOGRELAY_DISPATCH_SEND_INTERVAL",
        ("dispatch", "max_concurrent_sends"): "LOGRELAY_DISPATCH_MAX_CONCURRENT_SENDS",
        ("dispatch", "shutdown_timeout_seconds"): "LOGRELAY_DISPATCH_SHUTDOWN_TIMEOUT_SECONDS",
        ("transport", "kind"): "LOGRELAY_TRANSPORT_KIND",
        ("transport", "url"): "LOGRELAY_TRANSPORT_URL",
        ("transport", "file_path"): "LOGRELAY_TRANSPORT_FILE_PATH",
        ("transport", "timeout_seconds"): "LOGRELAY_TRANSPORT_TIMEOUT_SECONDS",
        ("transport", "max_payload_bytes"): "LOGRELAY_TRANSPORT_MAX_PAYLOAD_BYTES",
        ("transport", "content_type"): "LOGRELAY_TRANSPORT_CONTENT_TYPE",
        ("transport", "smtp_host"): "LOGRELAY_TRANSPORT_SMTP_HOST",
        ("transport", "smtp_port"): "LOGRELAY_TRANSPORT_SMTP_PORT",
        ("transport", "smtp_username"): "LOGRELAY_TRANSPORT_SMTP_USERNAME",
        ("transport", "smtp_password"): "LOGRELAY_TRANSPORT_SMTP_PASSWORD",
        ("transport", "smtp_use_tls"): "LOGRELAY_TRANSPORT_SMTP_USE_TLS",
        ("transport", "smtp_start_tls"): "LOGRELAY_TRANSPORT_SMTP_START_TLS",
        ("transport", "mail_from"): "LOGRELAY_TRANSPORT_MAIL_FROM",
        ("transport", "mail_subject"): "LOGRELAY_TRANSPORT_MAIL_SUBJECT",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            scope = config_data if section is None else config_data.get(section) or {}
            value = scope.get(key)
            if value is not None:
                os.environ[env_var] = str(value)

    # Structured values travel as JSON strings
    json_mappings = {
        ("masking", "rules"): "LOGRELAY_MASKING_RULES",
        ("dispatch", "include"): "LOGRELAY_DISPATCH_INCLUDE",
        ("dispatch", "exclude"): "LOGRELAY_DISPATCH_EXCLUDE",
        ("transport", "headers"): "LOGRELAY_TRANSPORT_HEADERS",
        ("transport", "mail_to"): "LOGRELAY_TRANSPORT_MAIL_TO",
    }

    for (section, key), env_var in json_mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value:
                if key in ("include", "exclude", "mail_to") and isinstance(value, str):
                    value = split_tokens(value.replace(",", TOKEN_DELIMITER))
                os.environ[env_var] = json.dumps(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
