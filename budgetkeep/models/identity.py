"""
Identity Model

Every piece of per-user state is owned by an identity. The identity's kind
decides where the state lives:

- DURABLE identities have a stable, globally unique UUID and are eligible
  for the remote record store.
- EPHEMERAL identities (local test accounts, anonymous sessions) only ever
  touch device-local storage.

DESIGN DECISION: The kind is a pure function of the identifier's syntax.
No lookup, no network call, no caching - classifying the same string
always gives the same answer.
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# RFC 4122 versions 1-5 with the standard variant bits
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class IdentityKind(str, Enum):
    """Where an identity's records are authoritative."""
    DURABLE = "durable"      # Remote record store
    EPHEMERAL = "ephemeral"  # Device-local storage only


def is_valid_uuid(value: str) -> bool:
    """Check if a string is a UUID-shaped identifier."""
    return bool(UUID_PATTERN.fullmatch(value))


def classify_identity(user_id: str) -> IdentityKind:
    """Classify a user identifier without any I/O."""
    if is_valid_uuid(user_id):
        return IdentityKind.DURABLE
    return IdentityKind.EPHEMERAL


class Identity(BaseModel):
    """
    A user identity as seen by the stores.

    Immutable - a user who registers gets a new Identity, and moving
    their records across is an explicit rehome (see EntityStore.rehome).
    """
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(
        ...,
        min_length=1,
        description="Opaque user identifier"
    )

    @property
    def kind(self) -> IdentityKind:
        return classify_identity(self.user_id)

    @property
    def is_durable(self) -> bool:
        return self.kind == IdentityKind.DURABLE

    @classmethod
    def of(cls, user_id: str) -> "Identity":
        return cls(user_id=user_id)

    def __str__(self) -> str:
        return self.user_id
