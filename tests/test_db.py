# Copyright (c) Syntropy Systems
"""Tests for state store database operations."""

from __future__ import annotations

import sqlite3

import pytest

from finetune_controller.db import (
    collect_garbage,
    delete_resource,
    get_resource,
    insert_resource,
    list_owned,
    list_resources,
    update_resource,
    update_resource_status,
)
from finetune_controller.errors import AlreadyExistsError, ConflictError, NotFoundError


def _body(name: str, finalizers: list[str] | None = None) -> dict:
    return {
        "apiVersion": "finetune.datatunerx.io/v1beta1",
        "kind": "FinetuneExperiment",
        "metadata": {"name": name, "namespace": "default", "finalizers": finalizers or []},
        "spec": {},
    }


class TestResourceOperations:
    """Tests for resource CRUD operations."""

    def test_insert_and_get(self, db_connection: sqlite3.Connection) -> None:
        """Test inserting and reading back a resource."""
        record = insert_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", "uid-1", _body("exp1")
        )

        assert record.resource_version == 1
        assert record.created_at is not None

        fetched = get_resource(db_connection, "FinetuneExperiment", "default", "exp1")
        assert fetched is not None
        assert fetched.uid == "uid-1"
        assert fetched.body["metadata"]["name"] == "exp1"
        assert fetched.status is None

    def test_get_missing(self, db_connection: sqlite3.Connection) -> None:
        """Test reading a resource that does not exist."""
        assert get_resource(db_connection, "FinetuneExperiment", "default", "nope") is None

    def test_insert_duplicate(self, db_connection: sqlite3.Connection) -> None:
        """Test that the same identity cannot be inserted twice."""
        _ = insert_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", "uid-1", _body("exp1")
        )

        with pytest.raises(AlreadyExistsError):
            _ = insert_resource(
                db_connection, "FinetuneExperiment", "default", "exp1", "uid-2", _body("exp1")
            )

    def test_same_name_other_namespace(self, db_connection: sqlite3.Connection) -> None:
        """Test that identity is scoped by namespace."""
        _ = insert_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", "uid-1", _body("exp1")
        )
        _ = insert_resource(
            db_connection, "FinetuneExperiment", "team-a", "exp1", "uid-2", _body("exp1")
        )

        assert len(list_resources(db_connection, "FinetuneExperiment")) == 2
        assert len(list_resources(db_connection, "FinetuneExperiment", "team-a")) == 1

    def test_update_bumps_version(self, db_connection: sqlite3.Connection) -> None:
        """Test compare-and-swap update with the current version."""
        _ = insert_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", "uid-1", _body("exp1")
        )

        record = update_resource(
            db_connection,
            "FinetuneExperiment",
            "default",
            "exp1",
            1,
            _body("exp1", ["f"]),
        )

        assert record.resource_version == 2
        assert record.finalizers == ["f"]

    def test_update_stale_version_conflicts(self, db_connection: sqlite3.Connection) -> None:
        """Test that a stale resource_version is rejected."""
        _ = insert_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", "uid-1", _body("exp1")
        )
        _ = update_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", 1, _body("exp1")
        )

        with pytest.raises(ConflictError):
            _ = update_resource(
                db_connection, "FinetuneExperiment", "default", "exp1", 1, _body("exp1", ["f"])
            )

        # Nothing was overwritten
        record = get_resource(db_connection, "FinetuneExperiment", "default", "exp1")
        assert record is not None
        assert record.finalizers == []

    def test_update_missing(self, db_connection: sqlite3.Connection) -> None:
        """Test updating a resource that does not exist."""
        with pytest.raises(NotFoundError):
            _ = update_resource(
                db_connection, "FinetuneExperiment", "default", "nope", 1, _body("nope")
            )

    def test_update_status(self, db_connection: sqlite3.Connection) -> None:
        """Test writing the status sub-resource."""
        _ = insert_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", "uid-1", _body("exp1")
        )

        record = update_resource_status(
            db_connection, "FinetuneExperiment", "default", "exp1", 1, {"state": "PENDING"}
        )

        assert record.resource_version == 2
        assert record.status == {"state": "PENDING"}

        with pytest.raises(ConflictError):
            _ = update_resource_status(
                db_connection, "FinetuneExperiment", "default", "exp1", 1, {"state": "X"}
            )


class TestDeletion:
    """Tests for finalizer-aware deletion and garbage collection."""

    def test_delete_without_finalizers_removes(self, db_connection: sqlite3.Connection) -> None:
        """Test that an object without finalizers is removed immediately."""
        _ = insert_resource(
            db_connection, "FinetuneExperiment", "default", "exp1", "uid-1", _body("exp1")
        )

        assert delete_resource(db_connection, "FinetuneExperiment", "default", "exp1") is None
        assert get_resource(db_connection, "FinetuneExperiment", "default", "exp1") is None

    def test_delete_with_finalizer_marks(self, db_connection: sqlite3.Connection) -> None:
        """Test that a finalizer defers removal."""
        _ = insert_resource(
            db_connection,
            "FinetuneExperiment",
            "default",
            "exp1",
            "uid-1",
            _body("exp1", ["f"]),
        )

        record = delete_resource(db_connection, "FinetuneExperiment", "default", "exp1")

        assert record is not None
        assert record.is_deleting
        assert record.resource_version == 2

        # Deleting again does not bump the version
        again = delete_resource(db_connection, "FinetuneExperiment", "default", "exp1")
        assert again is not None
        assert again.resource_version == 2

    def test_releasing_last_finalizer_removes(self, db_connection: sqlite3.Connection) -> None:
        """Test that clearing finalizers on a deleting object removes it."""
        _ = insert_resource(
            db_connection,
            "FinetuneExperiment",
            "default",
            "exp1",
            "uid-1",
            _body("exp1", ["f"]),
        )
        _ = insert_resource(
            db_connection,
            "FinetuneJob",
            "default",
            "exp1-finetunejob",
            "uid-job",
            _body("exp1-finetunejob"),
            owner_uid="uid-1",
        )
        marked = delete_resource(db_connection, "FinetuneExperiment", "default", "exp1")
        assert marked is not None

        _ = update_resource(
            db_connection,
            "FinetuneExperiment",
            "default",
            "exp1",
            marked.resource_version,
            _body("exp1"),
        )

        assert get_resource(db_connection, "FinetuneExperiment", "default", "exp1") is None
        assert get_resource(db_connection, "FinetuneJob", "default", "exp1-finetunejob") is None

    def test_delete_missing(self, db_connection: sqlite3.Connection) -> None:
        """Test deleting a resource that does not exist."""
        with pytest.raises(NotFoundError):
            _ = delete_resource(db_connection, "FinetuneExperiment", "default", "nope")

    def test_garbage_collection_respects_child_finalizers(
        self, db_connection: sqlite3.Connection
    ) -> None:
        """Test that dependents with finalizers are only marked."""
        _ = insert_resource(
            db_connection,
            "FinetuneJob",
            "default",
            "held",
            "uid-held",
            _body("held", ["job-finalizer"]),
            owner_uid="uid-owner",
        )
        _ = insert_resource(
            db_connection,
            "FinetuneJob",
            "default",
            "free",
            "uid-free",
            _body("free"),
            owner_uid="uid-owner",
        )

        removed = collect_garbage(db_connection, "uid-owner")

        assert removed == 1
        remaining = list_owned(db_connection, "uid-owner")
        assert [r.name for r in remaining] == ["held"]
        assert remaining[0].is_deleting
