# Copyright (c) Syntropy Systems
"""Pydantic models for experiment and job resources."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar, Optional, cast

from pydantic import Field, field_validator, model_validator

from .base import ControllerBaseModel, ExtraAllowModel, JSONValue

API_GROUP = "finetune.datatunerx.io"
API_VERSION = f"{API_GROUP}/v1beta1"


class OwnerReference(ControllerBaseModel):
    """Back-reference from a child object to the object that owns it."""

    api_version: str = Field(alias="apiVersion")
    kind: str
    name: str
    uid: str
    controller: bool = False
    block_owner_deletion: bool = Field(default=False, alias="blockOwnerDeletion")


class ObjectMeta(ControllerBaseModel):
    """Identity and bookkeeping shared by every stored object.

    ``uid``, ``resource_version``, ``creation_timestamp`` and
    ``deletion_timestamp`` are owned by the store; values sent by a client
    are ignored on write.
    """

    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    resource_version: Optional[int] = Field(default=None, alias="resourceVersion")
    labels: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    owner_references: list[OwnerReference] = Field(
        default_factory=list, alias="ownerReferences"
    )
    creation_timestamp: Optional[str] = Field(default=None, alias="creationTimestamp")
    deletion_timestamp: Optional[str] = Field(default=None, alias="deletionTimestamp")

    @property
    def key(self) -> str:
        """Return the ``namespace/name`` key."""
        return f"{self.namespace}/{self.name}"

    def has_finalizer(self, finalizer: str) -> bool:
        """Return True if the finalizer is present."""
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add a finalizer. Returns True if the list changed."""
        if finalizer in self.finalizers:
            return False
        self.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove every occurrence of a finalizer. Returns True if the list changed."""
        kept = [f for f in self.finalizers if f != finalizer]
        changed = len(kept) != len(self.finalizers)
        self.finalizers = kept
        return changed

    def controller_reference(self) -> Optional[OwnerReference]:
        """Return the owner reference flagged as controller, if any."""
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None


class Resource(ControllerBaseModel):
    """Common shape of a stored object."""

    KIND: ClassVar[str] = ""

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta

    @model_validator(mode="before")
    @classmethod
    def _default_kind(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        fields = cast("dict[str, object]", data)
        kind = fields.get("kind")
        if not kind:
            return {**fields, "kind": cls.KIND}
        if cls.KIND and kind != cls.KIND:
            msg = f"expected kind {cls.KIND!r}, got {kind!r}"
            raise ValueError(msg)
        return fields

    @property
    def key(self) -> str:
        """Return the ``namespace/name`` key."""
        return self.metadata.key


# --- FinetuneJob ---


class FinetuneJobSpec(ExtraAllowModel):
    """Opaque job payload. Copied verbatim into the job at creation."""


class FinetuneJobStatus(ExtraAllowModel):
    """Job status, written by the job-level controller."""

    state: Optional[str] = None
    stats: Optional[str] = None
    result: Optional[dict[str, JSONValue]] = None


class FinetuneJob(Resource):
    """A single fine-tuning job owned by an experiment."""

    KIND: ClassVar[str] = "FinetuneJob"

    spec: FinetuneJobSpec = Field(default_factory=FinetuneJobSpec)
    status: FinetuneJobStatus = Field(default_factory=FinetuneJobStatus)


# --- FinetuneExperiment ---


class ExperimentState(str, Enum):
    """Lifecycle state of an experiment."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class FinetuneJobTemplate(ControllerBaseModel):
    """One entry of an experiment's job list."""

    name: Optional[str] = None
    labels: Optional[dict[str, str]] = None
    spec: FinetuneJobSpec = Field(default_factory=FinetuneJobSpec)


class FinetuneExperimentSpec(ControllerBaseModel):
    """Desired state of an experiment."""

    pending: bool = False
    finetune_jobs: list[FinetuneJobTemplate] = Field(
        default_factory=list, alias="finetuneJobs"
    )


class FinetuneExperimentStatus(ControllerBaseModel):
    """Observed state of an experiment, owned by the reconciler.

    ``jobs_status`` maps job name to the last snapshot read from that job.
    The older list form (``[{"name": ..., "finetuneJobStatus": ...}]``) is
    accepted on input; duplicate names are rejected.
    """

    state: Optional[ExperimentState] = None
    jobs_status: dict[str, FinetuneJobStatus] = Field(
        default_factory=dict, alias="jobsStatus"
    )

    @field_validator("jobs_status", mode="before")
    @classmethod
    def _parse_jobs_status(cls, value: object) -> object:
        if value is None:
            return {}
        if not isinstance(value, list):
            return value
        entries: dict[str, object] = {}
        for entry in cast("list[dict[str, object]]", value):
            name = cast(str, entry.get("name"))
            if name in entries:
                msg = f"duplicate jobsStatus entry for job {name!r}"
                raise ValueError(msg)
            entries[name] = entry.get("finetuneJobStatus") or {}
        return entries


class FinetuneExperiment(Resource):
    """Declarative set of fine-tuning jobs."""

    KIND: ClassVar[str] = "FinetuneExperiment"

    spec: FinetuneExperimentSpec = Field(default_factory=FinetuneExperimentSpec)
    status: FinetuneExperimentStatus = Field(default_factory=FinetuneExperimentStatus)
