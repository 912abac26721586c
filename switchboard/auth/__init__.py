"""Credential resolution: secret sources, OAuth store and refresh."""

from switchboard.auth.credentials import AuthMethod, Credential, ResolvedCredential
from switchboard.auth.oauth import OAuthRefresher
from switchboard.auth.resolver import CredentialResolver
from switchboard.auth.sources import (
    EnvSecretSource,
    KeychainSecretSource,
    ManagedIdentitySource,
    SecretSource,
)
from switchboard.auth.store import CredentialStore

__all__ = [
    "AuthMethod",
    "Credential",
    "ResolvedCredential",
    "OAuthRefresher",
    "CredentialResolver",
    "SecretSource",
    "EnvSecretSource",
    "KeychainSecretSource",
    "ManagedIdentitySource",
    "CredentialStore",
]
