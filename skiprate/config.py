"""
Configuration for the block production client.
Contains the validated ClientConfig value object, provider presets and
environment / file loading.
"""

import json
import logging
import os
import string
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_RPC_ENDPOINT = "https://api.mainnet-beta.solana.com"
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_MAX_CONCURRENT_REQUESTS = 10
DEFAULT_USER_AGENT = "solana-skiprate/1.0"

ENV_PREFIX = "SKIPRATE_"

_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")


def _is_valid_header_name(name: str) -> bool:
    return bool(name) and all(c in _TOKEN_CHARS for c in name)


def _is_valid_header_value(value: str) -> bool:
    return all(c == "\t" or 0x20 <= ord(c) <= 0x7E for c in value)


@dataclass
class ClientConfig:
    """Settings for one client instance, validated on construction."""
    rpc_endpoint: str = DEFAULT_RPC_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT  # per attempt
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    rate_limit: Optional[float] = None  # requests per second, None/0 = unlimited
    max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS
    headers: Dict[str, str] = field(default_factory=dict)
    retry_backoff: float = 0.0  # seconds between timeout/connect/5xx retries
    overall_timeout: Optional[float] = None  # bound on the whole retry loop
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check every field.

        Raises:
            ConfigurationError: describing the first invalid field
        """
        endpoint = (self.rpc_endpoint or "").strip()
        if not endpoint:
            raise ConfigurationError(
                "RPC endpoint cannot be empty",
                field="rpc_endpoint",
                suggestion="Provide a valid RPC endpoint URL"
            )
        if not (endpoint.startswith("http://") or endpoint.startswith("https://")):
            raise ConfigurationError(
                f"RPC endpoint must start with http:// or https://, got '{endpoint}'",
                field="rpc_endpoint",
                suggestion="Use a full URL such as https://api.mainnet-beta.solana.com"
            )
        if not urlparse(endpoint).netloc:
            raise ConfigurationError(
                f"RPC endpoint has no host: '{endpoint}'",
                field="rpc_endpoint"
            )
        if self.timeout is None or self.timeout <= 0:
            raise ConfigurationError(
                "timeout must be positive",
                field="timeout",
                suggestion="Use a timeout of at least a few seconds"
            )
        if not isinstance(self.retry_attempts, int) or self.retry_attempts < 1:
            raise ConfigurationError(
                "retry_attempts must be at least 1",
                field="retry_attempts",
                suggestion="Use 1 to disable retries"
            )
        if self.rate_limit is not None and self.rate_limit < 0:
            raise ConfigurationError(
                "rate_limit cannot be negative",
                field="rate_limit",
                suggestion="Use None or 0 to disable client-side rate limiting"
            )
        if not isinstance(self.max_concurrent_requests, int) or self.max_concurrent_requests < 1:
            raise ConfigurationError(
                "max_concurrent_requests must be at least 1",
                field="max_concurrent_requests"
            )
        if self.retry_backoff is None or self.retry_backoff < 0:
            raise ConfigurationError("retry_backoff cannot be negative", field="retry_backoff")
        if self.overall_timeout is not None and self.overall_timeout <= 0:
            raise ConfigurationError("overall_timeout must be positive", field="overall_timeout")
        if not isinstance(self.headers, dict):
            raise ConfigurationError("headers must be a mapping of name to value", field="headers")
        for name, value in self.headers.items():
            if not _is_valid_header_name(name):
                raise ConfigurationError(
                    f"Invalid header name '{name}'",
                    field="headers",
                    suggestion="Header names may only contain RFC 7230 token characters"
                )
            if not isinstance(value, str) or not _is_valid_header_value(value):
                raise ConfigurationError(
                    f"Invalid value for header '{name}'",
                    field="headers",
                    suggestion="Header values must be printable ASCII"
                )

    @property
    def rate_limiting_enabled(self) -> bool:
        return bool(self.rate_limit and self.rate_limit > 0)

    def with_overrides(self, **overrides: Any) -> "ClientConfig":
        """Return a validated copy with the given fields replaced."""
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    # Presets

    @classmethod
    def public_rpc(cls, endpoint: str = DEFAULT_RPC_ENDPOINT) -> "ClientConfig":
        """Conservative settings for free public endpoints."""
        return cls(rpc_endpoint=endpoint, timeout=60.0, retry_attempts=5,
                   rate_limit=2, max_concurrent_requests=5)

    @classmethod
    def private_rpc(cls, endpoint: str) -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=30.0, retry_attempts=3,
                   rate_limit=10, max_concurrent_requests=20)

    @classmethod
    def high_frequency(cls, endpoint: str) -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=15.0, retry_attempts=2,
                   rate_limit=50, max_concurrent_requests=50)

    @classmethod
    def batch_processing(cls, endpoint: str) -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=120.0, retry_attempts=5,
                   rate_limit=5, max_concurrent_requests=100)

    @classmethod
    def development(cls, endpoint: str = "http://localhost:8899") -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=60.0, retry_attempts=1,
                   rate_limit=1, max_concurrent_requests=5)

    @classmethod
    def enterprise(cls, endpoint: str) -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=45.0, retry_attempts=3,
                   rate_limit=25, max_concurrent_requests=30)

    @classmethod
    def helius(cls, endpoint: str) -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=30.0, retry_attempts=3,
                   rate_limit=20, max_concurrent_requests=25)

    @classmethod
    def quicknode(cls, endpoint: str) -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=30.0, retry_attempts=3,
                   rate_limit=15, max_concurrent_requests=20)

    @classmethod
    def alchemy(cls, endpoint: str) -> "ClientConfig":
        return cls(rpc_endpoint=endpoint, timeout=30.0, retry_attempts=3,
                   rate_limit=25, max_concurrent_requests=30)

    @classmethod
    def auto(cls, endpoint: str) -> "ClientConfig":
        """Pick a preset from the endpoint host."""
        host = urlparse(endpoint).netloc.lower()
        if "mainnet-beta.solana.com" in host:
            return cls.public_rpc(endpoint)
        if "helius" in host:
            return cls.helius(endpoint)
        if "quiknode" in host or "quicknode" in host:
            return cls.quicknode(endpoint)
        if "alchemy" in host:
            return cls.alchemy(endpoint)
        return cls.private_rpc(endpoint)

    @classmethod
    def from_preset(cls, name: str, endpoint: Optional[str] = None) -> "ClientConfig":
        key = name.lower().replace("-", "_")
        if key not in PRESETS:
            raise ConfigurationError(
                f"Unknown preset '{name}'",
                field="preset",
                suggestion=f"Available presets: {', '.join(sorted(PRESETS))}"
            )
        factory = getattr(cls, key)
        if endpoint is None:
            if key in ("public_rpc", "development"):
                return factory()
            if key != "auto":
                logger.warning(f"Preset '{key}' used without an endpoint, defaulting to {DEFAULT_RPC_ENDPOINT}")
            endpoint = DEFAULT_RPC_ENDPOINT
        return factory(endpoint)

    # Loading

    @classmethod
    def from_env(cls, base: Optional["ClientConfig"] = None, load_dotenv_file: bool = True) -> "ClientConfig":
        """
        Build a config from SKIPRATE_* environment variables.

        Args:
            base: Config whose values are used for variables that are not set
            load_dotenv_file: Whether to load a .env file first
        """
        if load_dotenv_file:
            load_dotenv()
        base = base or cls()
        converters = {
            "rpc_endpoint": str,
            "timeout": float,
            "retry_attempts": int,
            "rate_limit": float,
            "max_concurrent_requests": int,
            "retry_backoff": float,
            "overall_timeout": float,
            "user_agent": str,
        }
        overrides: Dict[str, Any] = {}
        for name, convert in converters.items():
            env_name = f"{ENV_PREFIX}{name.upper()}"
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue
            try:
                overrides[name] = convert(raw)
            except ValueError:
                raise ConfigurationError(
                    f"Invalid value for {env_name}: '{raw}'",
                    field=name
                )
        if overrides:
            logger.debug(f"Configuration overrides from environment: {sorted(overrides)}")
        return base.with_overrides(**overrides)

    @classmethod
    def from_file(cls, path: str) -> "ClientConfig":
        """Load a config from a YAML or JSON mapping."""
        config_path = Path(path)
        try:
            text = config_path.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {config_path}: {e}", field="config")

        try:
            if config_path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot parse config file {config_path}: {e}", field="config")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping", field="config")

        logger.debug(f"Loaded configuration from {config_path}")
        return cls().with_overrides(**data)


PRESETS = (
    "public_rpc",
    "private_rpc",
    "high_frequency",
    "batch_processing",
    "development",
    "enterprise",
    "helius",
    "quicknode",
    "alchemy",
    "auto",
)
