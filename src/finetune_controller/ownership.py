# Copyright (c) Syntropy Systems
"""Owner references between stored objects."""

from __future__ import annotations

from typing import TYPE_CHECKING

from finetune_controller.errors import OwnerReferenceError
from finetune_controller.models.resources import OwnerReference

if TYPE_CHECKING:
    from finetune_controller.models.resources import Resource
    from finetune_controller.models.scheme import Scheme


def set_controller_reference(owner: Resource, child: Resource, scheme: Scheme) -> None:
    """Record ``owner`` as the controller of ``child``.

    The store deletes ``child`` once ``owner`` is physically removed.
    Raises OwnerReferenceError if the owner's type is not registered in
    ``scheme``, if the owner has not been persisted yet, if the two live
    in different namespaces, or if ``child`` already has another controller.
    """
    version_kind = scheme.version_kind(owner)
    if version_kind is None:
        msg = f"{type(owner).__name__} is not registered in the scheme"
        raise OwnerReferenceError(msg)
    if not owner.metadata.uid:
        msg = f"owner {owner.kind} {owner.key} has no uid"
        raise OwnerReferenceError(msg)
    if owner.metadata.namespace != child.metadata.namespace:
        msg = (
            f"cross-namespace owner references are not allowed: "
            f"{owner.key} -> {child.key}"
        )
        raise OwnerReferenceError(msg)

    api_version, kind = version_kind
    ref = OwnerReference(
        api_version=api_version,
        kind=kind,
        name=owner.metadata.name,
        uid=owner.metadata.uid,
        controller=True,
        block_owner_deletion=True,
    )

    existing = child.metadata.controller_reference()
    if existing is not None and existing.uid != ref.uid:
        msg = (
            f"{child.kind} {child.key} is already controlled by "
            f"{existing.kind} {existing.name}"
        )
        raise OwnerReferenceError(msg)

    child.metadata.owner_references = [
        r for r in child.metadata.owner_references if r.uid != ref.uid
    ]
    child.metadata.owner_references.append(ref)


def is_controlled_by(child: Resource, owner: Resource) -> bool:
    """Return True if ``owner`` is the controller of ``child``."""
    ref = child.metadata.controller_reference()
    return ref is not None and ref.uid == owner.metadata.uid
