"""Credential retrieval for the variant server.

Passwords and tokens come from a :class:`SecretProvider` (environment
variables by default), travel as :class:`MaskedSecret` and are never
written to logs, error messages or reports.
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD_ENV = "VCF_BRAVE_LOADER_PASSWORD"
DEFAULT_TOKEN_ENV = "VCF_BRAVE_LOADER_TOKEN"

MASK = "***MASKED***"
_URL_PASSWORD = re.compile(r"(://[^:/@]+:)([^@/]+)(@)")


class MaskedSecret:
    """A secret string whose ``str`` and ``repr`` never reveal it."""

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def get_value(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __str__(self) -> str:
        return MASK

    def __repr__(self) -> str:
        return "MaskedSecret(***)"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, MaskedSecret) and self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)


class SecretProvider(ABC):
    """Source of named secrets."""

    @abstractmethod
    def get_secret(self, key: str) -> str | None:
        """Return the secret stored under ``key``, or None if unset."""

    def get_secret_masked(self, key: str) -> MaskedSecret | None:
        value = self.get_secret(key)
        return MaskedSecret(value) if value is not None else None


class EnvSecretProvider(SecretProvider):
    """Read secrets from environment variables, optionally prefixed."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def get_secret(self, key: str) -> str | None:
        name = f"{self.prefix}{key}"
        value = os.environ.get(name)
        if value is not None:
            logger.debug("Secret loaded from environment variable: %s", name)
        return value


class CredentialValidationError(Exception):
    """Raised when credentials are supplied somewhere they could leak."""

    pass


def validate_no_password_in_url(url: str) -> None:
    """Reject a server URL with an embedded password.

    A bare user name (``https://admin@host``) is allowed.

    Raises:
        CredentialValidationError: If the URL carries a password.
    """
    netloc = urlparse(url).netloc
    user_info, at, _ = netloc.rpartition("@")
    if at and ":" in user_info:
        raise CredentialValidationError(
            "Password detected in server URL. Provide it via the "
            f"{DEFAULT_PASSWORD_ENV} environment variable instead."
        )


def mask_password_in_url(url: str) -> str:
    """Replace a password embedded in ``url`` for display."""
    return _URL_PASSWORD.sub(rf"\1{MASK}\3", url)


def get_default_provider() -> SecretProvider:
    return EnvSecretProvider()


def _resolve(provider: SecretProvider | None, env_var: str, label: str) -> MaskedSecret | None:
    secret = (provider or get_default_provider()).get_secret_masked(env_var)
    if not secret:
        return None
    logger.info("Server %s loaded from %s", label, env_var)
    return secret


def get_server_password(
    provider: SecretProvider | None = None,
    password_env_var: str = DEFAULT_PASSWORD_ENV,
) -> MaskedSecret | None:
    """Return the basic-auth password, or None when unset or empty."""
    return _resolve(provider, password_env_var, "password")


def get_server_token(
    provider: SecretProvider | None = None,
    token_env_var: str = DEFAULT_TOKEN_ENV,
) -> MaskedSecret | None:
    """Return the bearer token, or None when unset or empty."""
    return _resolve(provider, token_env_var, "token")
