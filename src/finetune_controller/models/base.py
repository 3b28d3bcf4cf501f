# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for finetune-controller."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, JsonValue
from typing_extensions import TypeAlias

JSONValue: TypeAlias = JsonValue
JSONObject: TypeAlias = dict[str, JSONValue]


class WireModel(BaseModel):
    """Model that serializes to the camelCase JSON stored and exchanged."""

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        """Dump as JSON-compatible data using field aliases."""
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class ControllerBaseModel(WireModel):
    """Base model for resource schemas; unknown fields are dropped."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class ExtraAllowModel(WireModel):
    """Base model for opaque job payloads; unknown fields are kept."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="allow",
        populate_by_name=True,
    )
