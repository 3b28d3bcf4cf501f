# Copyright (c) Syntropy Systems
"""Resource models and the type registry."""

from .resources import (
    API_GROUP,
    API_VERSION,
    ExperimentState,
    FinetuneExperiment,
    FinetuneExperimentSpec,
    FinetuneExperimentStatus,
    FinetuneJob,
    FinetuneJobSpec,
    FinetuneJobStatus,
    FinetuneJobTemplate,
    ObjectMeta,
    OwnerReference,
    Resource,
)
from .scheme import SCHEME, Scheme

__all__ = [
    "API_GROUP",
    "API_VERSION",
    "SCHEME",
    "ExperimentState",
    "FinetuneExperiment",
    "FinetuneExperimentSpec",
    "FinetuneExperimentStatus",
    "FinetuneJob",
    "FinetuneJobSpec",
    "FinetuneJobStatus",
    "FinetuneJobTemplate",
    "ObjectMeta",
    "OwnerReference",
    "Resource",
    "Scheme",
]
