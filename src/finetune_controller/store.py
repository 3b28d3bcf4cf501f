# Copyright (c) Syntropy Systems
"""Typed client over the SQLite state store."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from pydantic import ValidationError

from finetune_controller.context import Context, background
from finetune_controller.db import (
    delete_resource,
    get_connection,
    get_resource,
    insert_resource,
    list_resources,
    update_resource,
    update_resource_status,
)
from finetune_controller.errors import NotFoundError, StoreError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from finetune_controller.models.db import ResourceRecord
    from finetune_controller.models.resources import Resource

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="Resource")

# Seconds to wait for a locked database.
BUSY_TIMEOUT = 5.0

# Fields written only by the store.
_STORE_OWNED_METADATA = {
    "uid",
    "resourceVersion",
    "creationTimestamp",
    "deletionTimestamp",
}


class StoreClient:
    """Get, create, update and delete resources with optimistic concurrency.

    Every call takes a ``Context``; a cancelled or expired context raises
    ``ContextCancelledError`` before the store is touched. Each call opens
    its own connection, so one client can be shared between threads.
    """

    db_path: Path

    def __init__(self, db_path: Path) -> None:
        """Initialize the client.

        Args:
            db_path: Path to an initialized SQLite database

        """
        self.db_path = db_path

    def _connect(self, timeout: float) -> sqlite3.Connection:
        try:
            return get_connection(self.db_path, timeout=timeout)
        except sqlite3.Error as e:
            msg = f"Cannot open store at {self.db_path}: {e}"
            raise StoreError(msg) from e

    def _run(self, ctx: Optional[Context], op: Any, *args: Any) -> Any:
        """Run a db operation on a fresh connection, mapping sqlite errors."""
        ctx = ctx or background()
        ctx.check()
        # Lock waits never outlast the caller's deadline.
        remaining = ctx.remaining()
        timeout = BUSY_TIMEOUT if remaining is None else min(BUSY_TIMEOUT, remaining)
        conn = self._connect(timeout)
        try:
            return op(conn, *args)
        except sqlite3.Error as e:
            msg = f"Store operation {op.__name__} failed: {e}"
            raise StoreError(msg) from e
        finally:
            conn.close()

    # --- Reads ---

    def get(
        self,
        ctx: Optional[Context],
        cls: type[R],
        namespace: str,
        name: str,
    ) -> R:
        """Read one object. Raises NotFoundError if it does not exist."""
        record: Optional[ResourceRecord] = self._run(
            ctx, get_resource, cls.KIND, namespace, name
        )
        if record is None:
            raise NotFoundError(cls.KIND, namespace, name)
        return _to_resource(cls, record)

    def list(
        self,
        ctx: Optional[Context],
        cls: type[R],
        namespace: Optional[str] = None,
    ) -> list[R]:
        """List objects of a kind."""
        records: list[ResourceRecord] = self._run(
            ctx, list_resources, cls.KIND, namespace
        )
        return [_to_resource(cls, record) for record in records]

    # --- Writes ---

    def create(self, ctx: Optional[Context], obj: Resource) -> None:
        """Create an object. Raises AlreadyExistsError on an identity clash.

        On success the store-owned metadata of ``obj`` is filled in.
        """
        uid = str(uuid.uuid4())
        record: ResourceRecord = self._run(
            ctx,
            insert_resource,
            obj.kind,
            obj.metadata.namespace,
            obj.metadata.name,
            uid,
            _body(obj),
            _status(obj),
            _owner_uid(obj),
        )
        _refresh(obj, record)
        logger.debug("Created %s %s", obj.kind, obj.key)

    def update(self, ctx: Optional[Context], obj: Resource) -> None:
        """Write metadata and spec. Status in ``obj`` is ignored.

        Raises ConflictError if the stored resource_version differs from
        ``obj.metadata.resource_version``.
        """
        record: ResourceRecord = self._run(
            ctx,
            update_resource,
            obj.kind,
            obj.metadata.namespace,
            obj.metadata.name,
            obj.metadata.resource_version,
            _body(obj),
            _owner_uid(obj),
        )
        _refresh(obj, record)
        if record.is_deleting and not record.finalizers:
            logger.debug("Removed %s %s after last finalizer", obj.kind, obj.key)

    def update_status(self, ctx: Optional[Context], obj: Resource) -> None:
        """Write the status sub-resource only.

        Raises ConflictError if the stored resource_version differs from
        ``obj.metadata.resource_version``.
        """
        status = _status(obj) or {}
        record: ResourceRecord = self._run(
            ctx,
            update_resource_status,
            obj.kind,
            obj.metadata.namespace,
            obj.metadata.name,
            obj.metadata.resource_version,
            status,
        )
        _refresh(obj, record)

    def delete(
        self,
        ctx: Optional[Context],
        cls: type[Resource],
        namespace: str,
        name: str,
    ) -> bool:
        """Request deletion.

        Returns True if the object was removed immediately, False if it is
        now waiting on finalizers.
        """
        record: Optional[ResourceRecord] = self._run(
            ctx, delete_resource, cls.KIND, namespace, name
        )
        return record is None

    def iter_versions(
        self, ctx: Optional[Context], cls: type[Resource]
    ) -> Iterator[tuple[str, str, str, int, Optional[str]]]:
        """Yield ``(namespace, name, uid, resource_version, owner_uid)`` per object.

        Reads row identity only, so objects whose body or status does not
        decode are still listed.
        """
        records: list[ResourceRecord] = self._run(ctx, list_resources, cls.KIND, None)
        for record in records:
            yield (
                record.namespace,
                record.name,
                record.uid,
                record.resource_version,
                record.owner_uid,
            )


def _body(obj: Resource) -> dict[str, Any]:
    data = obj.to_wire(exclude={"status"})
    metadata = data["metadata"]
    for key in _STORE_OWNED_METADATA:
        _ = metadata.pop(key, None)
    return data


def _status(obj: Resource) -> Optional[dict[str, Any]]:
    status = getattr(obj, "status", None)
    if status is None:
        return None
    return status.to_wire(exclude_none=True)


def _owner_uid(obj: Resource) -> Optional[str]:
    ref = obj.metadata.controller_reference()
    return ref.uid if ref is not None else None


def _refresh(obj: Resource, record: ResourceRecord) -> None:
    """Copy store-owned metadata from a written record back onto ``obj``."""
    obj.metadata.uid = record.uid
    obj.metadata.resource_version = record.resource_version
    obj.metadata.creation_timestamp = record.created_at
    obj.metadata.deletion_timestamp = record.deletion_timestamp


def _to_resource(cls: type[R], record: ResourceRecord) -> R:
    data = dict(record.body)
    metadata = dict(data.get("metadata") or {})
    metadata.update(
        {
            "uid": record.uid,
            "resourceVersion": record.resource_version,
            "creationTimestamp": record.created_at,
            "deletionTimestamp": record.deletion_timestamp,
        }
    )
    data["metadata"] = metadata
    if record.status is not None:
        data["status"] = record.status
    try:
        return cls.model_validate(data)
    except ValidationError as e:
        msg = f"Cannot decode {record.kind} {record.namespace}/{record.name}: {e}"
        raise StoreError(msg) from e
