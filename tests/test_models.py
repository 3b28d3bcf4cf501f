# Copyright (c) Syntropy Systems
"""Tests for resource models."""

import pytest
from pydantic import ValidationError

from finetune_controller.models.resources import (
    ExperimentState,
    FinetuneExperiment,
    FinetuneExperimentStatus,
    FinetuneJob,
    ObjectMeta,
)


class TestResourceModels:
    """Tests for parsing and finalizer helpers."""

    def test_parse_manifest(self) -> None:
        """A manifest with camelCase keys parses."""
        experiment = FinetuneExperiment.model_validate(
            {
                "apiVersion": "finetune.datatunerx.io/v1beta1",
                "kind": "FinetuneExperiment",
                "metadata": {"name": "exp1", "namespace": "team-a"},
                "spec": {
                    "pending": True,
                    "finetuneJobs": [
                        {"name": "custom-job", "spec": {"llm": "llama2-7b"}},
                        {"spec": {"llm": "llama2-13b"}},
                    ],
                },
            }
        )

        assert experiment.key == "team-a/exp1"
        assert experiment.spec.pending is True
        assert experiment.spec.finetune_jobs[1].name is None
        assert experiment.spec.finetune_jobs[1].spec.model_dump() == {"llm": "llama2-13b"}

    def test_kind_defaults(self) -> None:
        """Kind is filled in from the class."""
        job = FinetuneJob(metadata=ObjectMeta(name="job"))
        assert job.kind == "FinetuneJob"

    def test_wrong_kind_rejected(self) -> None:
        """A manifest for another kind is rejected."""
        with pytest.raises(ValidationError):
            _ = FinetuneExperiment.model_validate(
                {"kind": "FinetuneJob", "metadata": {"name": "x"}}
            )

    def test_finalizer_helpers(self) -> None:
        """Finalizers can be added once and removed."""
        meta = ObjectMeta(name="exp1")

        assert meta.add_finalizer("f") is True
        assert meta.add_finalizer("f") is False
        assert meta.has_finalizer("f")
        assert meta.remove_finalizer("f") is True
        assert meta.remove_finalizer("f") is False
        assert meta.finalizers == []

    def test_status_accepts_list_form(self) -> None:
        """The list form of jobsStatus is converted to a mapping."""
        status = FinetuneExperimentStatus.model_validate(
            {
                "state": "PROCESSING",
                "jobsStatus": [
                    {"name": "a", "finetuneJobStatus": {"state": "RUNNING"}},
                    {"name": "b"},
                ],
            }
        )

        assert status.state == ExperimentState.PROCESSING
        assert status.jobs_status["a"].state == "RUNNING"
        assert status.jobs_status["b"].state is None

    def test_status_rejects_duplicate_names(self) -> None:
        """Two entries for the same job are invalid."""
        with pytest.raises(ValidationError):
            _ = FinetuneExperimentStatus.model_validate(
                {"jobsStatus": [{"name": "a"}, {"name": "a"}]}
            )

    def test_to_wire_uses_aliases(self) -> None:
        """Wire output uses camelCase keys and JSON values."""
        status = FinetuneExperimentStatus(
            state=ExperimentState.PROCESSING,
            jobs_status={"job-a": {"state": "RUNNING", "gpus": 2}},
        )

        assert status.to_wire() == {
            "state": "PROCESSING",
            "jobsStatus": {
                "job-a": {"state": "RUNNING", "stats": None, "result": None, "gpus": 2},
            },
        }
