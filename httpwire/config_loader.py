"""Config Loader - loads client configuration from YAML.

Supports ${ENV_VAR} substitution in string values. The loaded ClientConfig
renders to the integer-keyed transport option table the dispatcher uses.

Example:
    connect_timeout_ms: 200
    verify_ssl: false
    headers:
      Authorization: "Bearer ${API_TOKEN}"
    options:
      155: 1500        # TIMEOUT_MS by raw option id
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from httpwire.transport import TransportOption, merge_options


class ConfigError(Exception):
    """Raised when configuration loading fails."""


class ClientConfig(BaseModel):
    """Client settings, as written in a YAML config file."""

    model_config = ConfigDict(extra="forbid")

    connect_timeout_ms: int | None = Field(default=None, gt=0, description="Connect timeout in ms")
    timeout_ms: int | None = Field(default=None, gt=0, description="Whole-exchange timeout in ms")
    verify_ssl: bool = Field(default=True, description="Verify server certificates and hostnames")
    ca_bundle: str | None = Field(default=None, description="Path to CA bundle for server verification")
    cert: str | None = Field(default=None, description="Path to client certificate (mTLS)")
    key: str | None = Field(default=None, description="Path to client private key (mTLS)")
    key_password: str | None = Field(default=None, description="Password for encrypted private key")
    ciphers: str | None = Field(default=None, description="OpenSSL cipher string")
    follow_redirects: bool = Field(default=False, description="Let the transport follow redirects")
    max_redirects: int | None = Field(default=None, ge=0, description="Redirect hop limit")
    user_agent: str | None = Field(default=None, description="User-Agent sent when a request has none")
    proxy: str | None = Field(default=None, description="Proxy URL")
    headers: dict[str, str | list[str]] = Field(
        default_factory=dict, description="Default request headers"
    )
    options: dict[Any, Any] = Field(
        default_factory=dict, description="Raw option id -> value overrides (integer keys only)"
    )

    @model_validator(mode="after")
    def check_tls_pairs(self) -> Self:
        if (self.cert is None) != (self.key is None):
            raise ValueError("cert and key must be specified together")
        if self.key_password is not None and self.key is None:
            raise ValueError("key_password requires key")
        return self

    def to_transport_options(self) -> dict[int, Any]:
        """Render the transport option table; raw ``options`` win on collision."""
        named: dict[int, Any] = {
            TransportOption.FOLLOW_LOCATION: self.follow_redirects,
        }
        if self.connect_timeout_ms is not None:
            named[TransportOption.CONNECT_TIMEOUT_MS] = self.connect_timeout_ms
        if self.timeout_ms is not None:
            named[TransportOption.TIMEOUT_MS] = self.timeout_ms
        if not self.verify_ssl:
            named[TransportOption.SSL_VERIFY_PEER] = False
            named[TransportOption.SSL_VERIFY_HOST] = 0
        if self.ca_bundle:
            named[TransportOption.CA_INFO] = self.ca_bundle
        if self.cert and self.key:
            named[TransportOption.SSL_CERT] = self.cert
            named[TransportOption.SSL_KEY] = self.key
            if self.key_password:
                named[TransportOption.KEY_PASSWORD] = self.key_password
        if self.ciphers:
            named[TransportOption.SSL_CIPHER_LIST] = self.ciphers
        if self.max_redirects is not None:
            named[TransportOption.MAX_REDIRECTS] = self.max_redirects
        if self.user_agent:
            named[TransportOption.USER_AGENT] = self.user_agent
        if self.proxy:
            named[TransportOption.PROXY] = self.proxy

        return merge_options(named, self.options)


def load_client_config(config_path: Path) -> ClientConfig:
    """Load client configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ClientConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
