"""
Dual-Backend Entity Store

Presents one get/ensure/save surface over per-user records, routing each
identity to the backend that is authoritative for it:

- DURABLE identities  -> remote record table
- EPHEMERAL identities -> device-local storage under a namespaced key

DESIGN DECISION: Reads and writes fail differently.
1. A read that cannot reach the remote table falls back to the local
   copy; the user simply sees whatever the device knows (or a default)
2. A write is never downgraded - if the remote table rejects it, the
   caller gets WriteFailedError. A save that silently vanished is a
   correctness bug, not a UX nuisance

The remote attempt is expressed as an explicit RemoteRead result
(FOUND / ABSENT / UNAVAILABLE). Falling back is an expected outcome,
so the routing below branches on that status instead of on exceptions.

Remote reads are never copied into local storage - there is exactly one
authoritative owner per identity. Moving a record from an ephemeral to
a durable identity is an explicit rehome(), never implicit.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from budgetkeep.audit import AuditLogger
from budgetkeep.models.audit import AuditEventBuilder
from budgetkeep.models.identity import Identity
from budgetkeep.models.records import EntityRecord
from budgetkeep.services.storage import (
    DecodingError,
    EncodingError,
    IOFailure,
    JsonCodec,
    LocalBackend,
    RemoteBackend,
    RemoteFailure,
    StorageDomain,
    WriteFailedError,
    build_key,
)


RecordT = TypeVar("RecordT", bound=EntityRecord)

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RemoteReadStatus(str, Enum):
    """Outcome of asking the remote table for a record."""
    FOUND = "found"
    ABSENT = "absent"
    UNAVAILABLE = "unavailable"  # Take the local fallback


class RemoteRead(BaseModel):
    """Tagged result of a remote fetch."""

    status: RemoteReadStatus
    record: Optional[dict] = None
    error: Optional[str] = None

    @property
    def needs_fallback(self) -> bool:
        return self.status == RemoteReadStatus.UNAVAILABLE


class EntityStore(Generic[RecordT]):
    """
    Per-user record store with remote/local routing and read fallback.

    Args:
        model: Record class (an EntityRecord subclass)
        domain: Local key namespace for the records
        local: Device-local backend
        remote: Remote table for durable identities
        codec: Codec for local text
        audit_logger: Optional audit trail
        clock: Source of "now" for updated_at stamps
    """

    def __init__(
        self,
        model: type[RecordT],
        domain: StorageDomain,
        local: LocalBackend,
        remote: RemoteBackend,
        codec: Optional[JsonCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._model = model
        self._domain = domain
        self._local = local
        self._remote = remote
        self._codec = codec or JsonCodec()
        self._audit_logger = audit_logger
        self._clock = clock or utcnow

    @property
    def model(self) -> type[RecordT]:
        return self._model

    def key_for(self, identity: Identity) -> str:
        """Local storage key of an identity's record."""
        return build_key(self._domain, identity.user_id)

    def backend_for(self, identity: Identity) -> str:
        return "remote" if identity.is_durable else "local"

    def now(self) -> datetime:
        """Current time on the store clock (used for updated_at stamps)."""
        return self._clock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _read_remote(self, identity: Identity) -> RemoteRead:
        try:
            row = await self._remote.fetch(identity.user_id)
        except RemoteFailure as e:
            return RemoteRead(status=RemoteReadStatus.UNAVAILABLE, error=str(e))
        if row is None:
            return RemoteRead(status=RemoteReadStatus.ABSENT)
        return RemoteRead(status=RemoteReadStatus.FOUND, record=row)

    async def _read_local(self, identity: Identity) -> Optional[RecordT]:
        key = self.key_for(identity)
        try:
            text = await self._local.get(key)
        except IOFailure as e:
            logger.warning("local_read_failed", key=key, error=str(e))
            return None
        if text is None:
            return None
        try:
            return self._codec.decode(text, self._model)
        except DecodingError as e:
            logger.warning("local_decode_failed", key=key, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_decode_failed(key, str(e), identity.user_id)
            return None

    def _validate_remote(self, identity: Identity, row: dict) -> Optional[RecordT]:
        try:
            return self._model.model_validate(row)
        except ValidationError as e:
            logger.warning(
                "remote_record_invalid",
                table=self._remote.table,
                user_id=identity.user_id,
                errors=e.error_count(),
            )
            return None

    async def get_status(self, identity: Identity) -> Optional[RecordT]:
        """
        Read an identity's record.

        Never raises: unreachable, unreadable or corrupt state reads as
        absent (or, for durable identities, as the local fallback).
        """
        if not identity.is_durable:
            record = await self._read_local(identity)
            await self._audit_loaded(identity, "local", record is not None)
            return record

        result = await self._read_remote(identity)

        if result.needs_fallback:
            logger.warning(
                "remote_read_fallback",
                table=self._remote.table,
                user_id=identity.user_id,
                error=result.error,
            )
            if self._audit_logger:
                await self._audit_logger.log_remote_fallback(
                    identity.user_id, self.key_for(identity), result.error or ""
                )
            return await self._read_local(identity)

        if result.status == RemoteReadStatus.ABSENT:
            await self._audit_loaded(identity, "remote", False)
            return None

        record = self._validate_remote(identity, result.record or {})
        await self._audit_loaded(identity, "remote", record is not None)
        return record

    async def _audit_loaded(self, identity: Identity, backend: str, found: bool) -> None:
        if self._audit_logger:
            storage_key = self._remote.table if backend == "remote" else self.key_for(identity)
            await self._audit_logger.log(
                AuditEventBuilder.record_loaded(identity.user_id, storage_key, backend, found)
            )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _write(self, identity: Identity, record: RecordT) -> RecordT:
        stamped = record.model_copy(
            update={"user_id": identity.user_id, "updated_at": self._clock()}
        )
        backend = self.backend_for(identity)
        key = self.key_for(identity)

        try:
            if identity.is_durable:
                await self._remote.upsert(stamped.model_dump(mode="json"))
            else:
                await self._local.set(key, self._codec.encode(stamped))
        except (RemoteFailure, IOFailure, EncodingError) as e:
            logger.error("record_write_failed", key=key, backend=backend, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_write_failed(identity.user_id, key, backend, str(e))
            raise WriteFailedError(
                f"Failed to save {self._model.__name__} for {identity.user_id}: {e}",
                backend=backend,
            ) from e

        return stamped

    async def ensure_status(self, identity: Identity, default: RecordT) -> RecordT:
        """
        Return the existing record, creating it from `default` if absent.

        Idempotent: a second call observes the record the first call
        persisted, whatever default it is given.

        Raises:
            WriteFailedError: If the default had to be persisted and the
                authoritative backend rejected it
        """
        existing = await self.get_status(identity)
        if existing is not None:
            return existing

        created = await self._write(identity, default)
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.record_created(
                    identity.user_id, self.key_for(identity), self.backend_for(identity)
                )
            )
        return created

    async def save(self, identity: Identity, record: RecordT) -> RecordT:
        """
        Persist a full record for an identity (last-writer-wins).

        updated_at is stamped here; the caller's value is ignored.
        Returns only after the backend acknowledged the write.

        Raises:
            WriteFailedError: If the authoritative backend rejected the write
        """
        saved = await self._write(identity, record)
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.record_written(
                    identity.user_id, self.key_for(identity), self.backend_for(identity)
                )
            )
        return saved

    async def rehome(self, source: Identity, target: Identity) -> Optional[RecordT]:
        """
        Explicitly move a record from one identity to another.

        Typically used when an anonymous user registers: the ephemeral
        record is written under the durable identity. The source copy is
        left in place for the caller to remove.

        Returns:
            The record as written for `target`, or None if `source` had none
        """
        record = await self.get_status(source)
        if record is None:
            return None

        moved = await self._write(target, record)
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.record_rehomed(
                    source.user_id, target.user_id, self.backend_for(target)
                )
            )
        return moved
