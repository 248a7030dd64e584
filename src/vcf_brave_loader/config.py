"""Upload configuration and TOML configuration file support."""

import logging
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .secrets import MaskedSecret
from .tls import TLSConfig

logger = logging.getLogger(__name__)

DEFAULT_HOST = "http://localhost:8080"
DEFAULT_USERNAME = "admin"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_RETRIES = 5
DEFAULT_TIMEOUT = 30.0

CONFIG_SECTION = "vcf_brave_loader"

SECRET_FIELDS = {"password", "token"}

CREDENTIAL_KEYS = {
    "password",
    "secret",
    "api_key",
    "token",
    "credentials",
    "auth",
}


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


class CredentialInConfigError(Exception):
    """Raised when credentials are detected in configuration files."""

    pass


@dataclass
class UploadConfig:
    """Settings for one upload run."""

    assembly: str | None = None
    dataset: str | None = None
    host: str = DEFAULT_HOST
    username: str = DEFAULT_USERNAME
    password: MaskedSecret | None = None
    token: MaskedSecret | None = None
    dont_filter: bool = False
    dry_run: bool = False
    verbose: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout: float = DEFAULT_TIMEOUT
    backoff_factor: float = 1.0
    max_backoff: float = 60.0
    tls: TLSConfig = field(default_factory=TLSConfig)

    @property
    def submit_url(self) -> str:
        return f"{self.host.rstrip('/')}/variants/batch"

    def validate(self) -> None:
        """Check required and range-limited settings.

        Raises:
            ConfigValidationError: If any setting is missing or invalid.
        """
        if not self.assembly:
            raise ConfigValidationError("assembly is required")
        if not self.dataset:
            raise ConfigValidationError("dataset is required")
        if self.batch_size <= 0:
            raise ConfigValidationError(f"batch_size must be positive, got {self.batch_size}")
        if self.max_retries < 0:
            raise ConfigValidationError(
                f"max_retries must not be negative, got {self.max_retries}"
            )
        if self.timeout <= 0:
            raise ConfigValidationError(f"timeout must be positive, got {self.timeout}")
        if self.backoff_factor < 0 or self.max_backoff < 0:
            raise ConfigValidationError("backoff settings must not be negative")

        parsed = urlparse(self.host)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigValidationError(f"host must be an http(s) URL, got '{self.host}'")


def detect_credentials_in_config(
    config_dict: dict[str, Any],
    path: str = "",
    warn_only: bool = True,
) -> list[str]:
    """Detect potential credentials in configuration dictionary.

    Args:
        config_dict: Configuration dictionary to check.
        path: Current path in nested config (for error messages).
        warn_only: If True, emit warning. If False, raise error.

    Returns:
        List of detected credential key paths.

    Raises:
        CredentialInConfigError: If credentials found and warn_only=False.
    """
    detected = []

    for key, value in config_dict.items():
        current_path = f"{path}.{key}" if path else key
        key_lower = key.lower()

        if any(cred_key in key_lower for cred_key in CREDENTIAL_KEYS):
            if value and value != "":
                detected.append(current_path)

        if isinstance(value, dict):
            detected.extend(detect_credentials_in_config(value, current_path, warn_only=True))

    if detected and not path:
        msg = (
            f"Potential credentials detected in config file: {', '.join(detected)}. "
            "Secrets must be provided via environment variables, not configuration "
            "files; these entries are ignored."
        )
        if warn_only:
            logger.warning(msg)
        else:
            raise CredentialInConfigError(msg)

    return detected


_TYPES: dict[str, tuple[type, ...]] = {
    "assembly": (str,),
    "dataset": (str,),
    "host": (str,),
    "username": (str,),
    "dont_filter": (bool,),
    "dry_run": (bool,),
    "verbose": (bool,),
    "batch_size": (int,),
    "max_retries": (int,),
    "timeout": (int, float),
    "backoff_factor": (int, float),
    "max_backoff": (int, float),
}


def validate_config(config_dict: dict[str, Any]) -> None:
    """Validate value types of a configuration mapping.

    Raises:
        ConfigValidationError: If any configuration value has the wrong type.
    """
    for key, expected in _TYPES.items():
        if key not in config_dict or config_dict[key] is None:
            continue
        value = config_dict[key]
        if isinstance(value, bool) and bool not in expected:
            raise ConfigValidationError(f"{key} must be {expected[0].__name__}, got bool")
        if not isinstance(value, expected):
            raise ConfigValidationError(
                f"{key} must be {expected[0].__name__}, got {type(value).__name__}"
            )


def load_config(
    config_path: Path | None = None, overrides: dict[str, Any] | None = None
) -> UploadConfig:
    """Build an UploadConfig from an optional TOML file plus overrides.

    Values are read from the ``[vcf_brave_loader]`` table and TLS settings
    from ``[vcf_brave_loader.tls]``. Overrides whose value is None are
    ignored, so unset CLI options never mask file values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigValidationError: If any configuration value is invalid.
    """
    config_dict: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)

        detect_credentials_in_config(toml_data, warn_only=True)
        config_dict = {
            k: v
            for k, v in toml_data.get(CONFIG_SECTION, {}).items()
            if k not in SECRET_FIELDS
        }

    if overrides:
        config_dict.update({k: v for k, v in overrides.items() if v is not None})

    validate_config(config_dict)

    tls_dict = config_dict.pop("tls", None) or {}
    tls = config_dict.pop("tls_config", None) or TLSConfig(
        verify_server=tls_dict.get("verify", True),
        ca_cert_path=Path(tls_dict["ca_cert"]) if tls_dict.get("ca_cert") else None,
        client_cert_path=Path(tls_dict["client_cert"]) if tls_dict.get("client_cert") else None,
        client_key_path=Path(tls_dict["client_key"]) if tls_dict.get("client_key") else None,
    )

    valid_fields = {f.name for f in fields(UploadConfig)} - {"tls"}
    filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}

    config = UploadConfig(tls=tls, **filtered_config)
    config.validate()
    return config
