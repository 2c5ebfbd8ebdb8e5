"""Remote command execution."""

from .credentials import Credential, CredentialType, credential_for
from .session import RemoteResult, RemoteSession, SessionFactory, default_session_factory

__all__ = [
    "Credential",
    "CredentialType",
    "credential_for",
    "RemoteResult",
    "RemoteSession",
    "SessionFactory",
    "default_session_factory",
]
