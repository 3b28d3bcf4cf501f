# Copyright (c) Syntropy Systems
"""Label sets for objects created by the controller."""

from __future__ import annotations

from typing import Optional

LABEL_INSTANCE_KEY = "finetune.datatunerx.io/instance"
LABEL_COMPONENT_KEY = "finetune.datatunerx.io/component"
LABEL_PART_OF_KEY = "finetune.datatunerx.io/part-of"
LABEL_FINETUNE_BINDING_KEY = "finetune.datatunerx.io/finetunebinding"

LABEL_DATATUNERX = "datatunerx"
LABEL_FINETUNE_JOB = "finetunejob"
LABEL_FINETUNE = "finetune"
LABEL_FINETUNE_EXPERIMENT = "finetuneexperiment"


def base_labels() -> dict[str, str]:
    """Return the label marking an object as part of this system."""
    return {LABEL_PART_OF_KEY: LABEL_DATATUNERX}


def instance_labels(
    instance_name: str,
    custom_labels: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """Return the full label set for a job instance.

    Reserved keys (part-of, instance, component) always win over
    ``custom_labels``.
    """
    custom = merge_labels(
        {
            LABEL_INSTANCE_KEY: instance_name,
            LABEL_COMPONENT_KEY: LABEL_FINETUNE_JOB,
        },
        custom_labels,
    )
    return merge_labels(base_labels(), custom)


def merge_labels(
    base: Optional[dict[str, str]],
    overlay: Optional[dict[str, str]],
) -> dict[str, str]:
    """Left-biased union: keys already in ``base`` are never overwritten.

    Neither argument is modified.
    """
    merged = dict(base or {})
    for key, value in (overlay or {}).items():
        if key not in merged:
            merged[key] = value
    return merged
