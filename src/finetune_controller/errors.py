# Copyright (c) Syntropy Systems
"""Error types raised by the store, the reconciler and the manager."""

from __future__ import annotations


class ControllerError(Exception):
    """Base class for finetune-controller errors."""


class StoreError(ControllerError):
    """Generic state store failure."""


class NotFoundError(StoreError):
    """The requested object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class AlreadyExistsError(StoreError):
    """An object with the same identity already exists."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} already exists")


class ConflictError(StoreError):
    """The object was modified since it was read."""

    def __init__(self, kind: str, namespace: str, name: str, resource_version: int | None) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.resource_version = resource_version
        super().__init__(
            f"{kind} {namespace}/{name} has been modified "
            f"(observed resource_version {resource_version}); re-read and try again"
        )


class OwnerReferenceError(ControllerError):
    """An owner reference could not be established."""


class ContextCancelledError(ControllerError):
    """The reconcile context was cancelled or its deadline passed."""


class CacheSyncTimeoutError(ControllerError):
    """The initial listing did not complete within the configured timeout."""
