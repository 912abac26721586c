"""Gateway error types."""

from __future__ import annotations


class SwitchboardError(Exception):
    """Base exception for gateway errors."""

    stage = "gateway"

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.message = message
        self.provider = provider
        super().__init__(message)


class CredentialError(SwitchboardError):
    """Raised when no usable credential could be produced."""

    stage = "credentials"


class CredentialNotFoundError(CredentialError):
    """Every applicable credential source was exhausted."""


class RefreshFailedError(CredentialError):
    """The OAuth refresh round-trip (or persisting its result) failed."""


class IdentityTokenError(CredentialError):
    """A managed-identity token could not be obtained.

    The resolver treats this as a miss and moves on to the next source.
    """


class ConfigIncompleteError(SwitchboardError):
    """Raised when a configuration bundle is only partially set."""

    stage = "config"

    def __init__(self, missing: list[str], provider: str | None = None) -> None:
        self.missing = list(missing)
        super().__init__(
            "missing required Azure OpenAI environment variables: "
            + ", ".join(self.missing),
            provider,
        )


class BackendCallError(SwitchboardError):
    """Raised when the LLM backend call itself fails."""

    stage = "backend"
