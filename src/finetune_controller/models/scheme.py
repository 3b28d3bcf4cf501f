# Copyright (c) Syntropy Systems
"""Type registry mapping resource classes to their API version and kind."""

from __future__ import annotations

from typing import TypeVar

from .resources import API_VERSION, FinetuneExperiment, FinetuneJob, Resource

R = TypeVar("R", bound=Resource)


class Scheme:
    """Registry of known resource kinds."""

    def __init__(self) -> None:
        self._kinds: dict[type[Resource], tuple[str, str]] = {}

    def register(self, cls: type[R], api_version: str = API_VERSION) -> type[R]:
        """Register a resource class. Usable as a decorator."""
        self._kinds[cls] = (api_version, cls.KIND)
        return cls

    def version_kind(self, obj: Resource) -> tuple[str, str] | None:
        """Return ``(api_version, kind)`` for an object, or None if unknown."""
        return self._kinds.get(type(obj))


SCHEME = Scheme()
_ = SCHEME.register(FinetuneExperiment)
_ = SCHEME.register(FinetuneJob)
