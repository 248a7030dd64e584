"""TLS settings for HTTPS connections to the variant server."""

import logging
import os
import ssl
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MIN_TLS_VERSION = ssl.TLSVersion.TLSv1_2

ENV_PREFIX = "VCF_BRAVE_LOADER_TLS_"
TRUTHY = ("true", "1", "yes")


def _env_path(name: str) -> Path | None:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    return Path(value) if value else None


@dataclass
class TLSConfig:
    """Certificate verification and client certificate settings."""

    verify_server: bool = True
    ca_cert_path: Path | None = None
    client_cert_path: Path | None = None
    client_key_path: Path | None = None

    @classmethod
    def from_env(cls) -> "TLSConfig":
        """Read ``VCF_BRAVE_LOADER_TLS_{VERIFY,CA_CERT,CLIENT_CERT,CLIENT_KEY}``."""
        verify = os.environ.get(f"{ENV_PREFIX}VERIFY", "true").lower() in TRUTHY
        return cls(
            verify_server=verify,
            ca_cert_path=_env_path("CA_CERT"),
            client_cert_path=_env_path("CLIENT_CERT"),
            client_key_path=_env_path("CLIENT_KEY"),
        )

    @property
    def has_client_cert(self) -> bool:
        return self.client_cert_path is not None and self.client_key_path is not None


class TLSError(Exception):
    """Raised when a certificate file is missing or unusable."""

    pass


def _require_file(path: Path, what: str) -> str:
    if not path.exists():
        raise TLSError(f"{what} not found: {path}")
    return str(path)


def create_ssl_context(config: TLSConfig) -> ssl.SSLContext:
    """Build a client SSL context enforcing TLS 1.2 or newer.

    Raises:
        TLSError: If a configured certificate file is missing or invalid.
    """
    if config.verify_server:
        cafile = (
            _require_file(config.ca_cert_path, "CA certificate") if config.ca_cert_path else None
        )
        try:
            ctx = ssl.create_default_context(cafile=cafile)
        except ssl.SSLError as e:
            raise TLSError(f"Invalid CA certificate {config.ca_cert_path}: {e}") from e
        logger.debug("Verifying server against %s", cafile or "system CA store")
    else:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    ctx.minimum_version = MIN_TLS_VERSION

    if config.has_client_cert:
        certfile = _require_file(config.client_cert_path, "Client certificate")
        keyfile = _require_file(config.client_key_path, "Client key")
        try:
            ctx.load_cert_chain(certfile=certfile, keyfile=keyfile)
        except ssl.SSLError as e:
            raise TLSError(f"Invalid client certificate {certfile}: {e}") from e
        logger.debug("Loaded client certificate from %s", certfile)

    return ctx


def get_verify_param_for_httpx(config: TLSConfig | None = None) -> ssl.SSLContext | bool:
    """Return the ``verify`` argument for an httpx client.

    Plain ``True`` lets httpx use its bundled CA store; a context is only
    built when certificates are configured.
    """
    if config is None:
        config = TLSConfig.from_env()

    if not config.verify_server:
        logger.warning("TLS server verification disabled - vulnerable to MITM attacks")
        if not config.has_client_cert:
            return False
        return create_ssl_context(config)

    if config.ca_cert_path or config.has_client_cert:
        return create_ssl_context(config)
    return True
