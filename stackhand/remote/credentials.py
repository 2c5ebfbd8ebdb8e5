"""SSH credentials used to reach managed servers."""

from dataclasses import dataclass
from enum import Enum
import os

from stackhand.config import Settings


class CredentialType(str, Enum):
    """Which account a command runs as."""

    ROOT = "root"
    MANAGED = "managed"


@dataclass(frozen=True)
class Credential:
    username: str
    key_path: str


def credential_for(credential_type: CredentialType, settings: Settings) -> Credential:
    key_path = os.path.expanduser(settings.ssh_key_path)
    if credential_type is CredentialType.ROOT:
        return Credential(username="root", key_path=key_path)
    return Credential(username=settings.managed_user, key_path=key_path)
