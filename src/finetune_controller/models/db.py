# Copyright (c) Syntropy Systems
"""Pydantic models for database records."""

from __future__ import annotations

from typing import Optional, cast

from pydantic import Field, TypeAdapter, field_validator

from .base import ControllerBaseModel, JSONObject

_JSON_OBJECT_ADAPTER = TypeAdapter(JSONObject)


class ResourceRecord(ControllerBaseModel):
    """Database resource record.

    ``body`` holds apiVersion, kind, metadata and spec; ``status`` is the
    status sub-resource. Identity and bookkeeping columns are authoritative
    over any copy inside ``body``.
    """

    id: int
    kind: str
    namespace: str
    name: str
    uid: str
    resource_version: int
    body: JSONObject = Field(default_factory=dict)
    status: Optional[JSONObject] = None
    owner_uid: Optional[str] = None
    created_at: Optional[str] = None
    deletion_timestamp: Optional[str] = None

    @field_validator("body", mode="before")
    @classmethod
    def _parse_body(cls, value: object) -> JSONObject:
        if value is None:
            return {}
        if isinstance(value, str):
            return _JSON_OBJECT_ADAPTER.validate_json(value)
        return cast("JSONObject", value)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> Optional[JSONObject]:
        if value is None:
            return None
        if isinstance(value, str):
            return _JSON_OBJECT_ADAPTER.validate_json(value)
        return cast("JSONObject", value)

    @property
    def finalizers(self) -> list[str]:
        """Finalizers recorded in the body's metadata."""
        metadata = self.body.get("metadata")
        if not isinstance(metadata, dict):
            return []
        finalizers = metadata.get("finalizers")
        if not isinstance(finalizers, list):
            return []
        return [str(f) for f in finalizers]

    @property
    def is_deleting(self) -> bool:
        """True once deletion has been requested."""
        return self.deletion_timestamp is not None
