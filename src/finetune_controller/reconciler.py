# Copyright (c) Syntropy Systems
"""Reconciler for FinetuneExperiment objects.

One call to ``Reconciler.reconcile`` reads the experiment fresh from the
store and moves the world one step closer to its spec:

1. fetch (a missing experiment is already gone: done)
2. on deletion, run cleanup and drop the finalizer
3. attach the finalizer before touching anything else
4. hold at PENDING while ``spec.pending`` is set
5. create each job (existing jobs are fine) and snapshot its status
6. mark the experiment PROCESSING

No state is kept between calls. Every write is a compare-and-swap against
the resource_version that was read, so a concurrent writer surfaces as a
ConflictError for the caller to retry with a fresh read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from finetune_controller.context import Context, background
from finetune_controller.errors import AlreadyExistsError, ControllerError, NotFoundError
from finetune_controller.labels import instance_labels
from finetune_controller.models.resources import (
    API_GROUP,
    ExperimentState,
    FinetuneExperiment,
    FinetuneExperimentStatus,
    FinetuneJob,
    FinetuneJobTemplate,
    ObjectMeta,
)
from finetune_controller.models.scheme import SCHEME
from finetune_controller.ownership import is_controlled_by, set_controller_reference

if TYPE_CHECKING:
    from finetune_controller.models.scheme import Scheme
    from finetune_controller.store import StoreClient

logger = logging.getLogger(__name__)

FINALIZER = f"{API_GROUP}/finalizer"
DEFAULT_JOB_SUFFIX = "finetunejob"


@dataclass(frozen=True)
class Request:
    """Identity of the experiment to reconcile."""

    namespace: str
    name: str

    @classmethod
    def from_key(cls, key: str) -> Request:
        """Parse a ``namespace/name`` key. A bare name uses ``default``."""
        namespace, sep, name = key.partition("/")
        if not sep:
            return cls("default", namespace)
        return cls(namespace, name)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Result:
    """Outcome of a successful reconcile.

    ``Result()`` means done. ``requeue`` asks for another pass after the
    scheduler's default backoff, ``requeue_after`` after a fixed delay.
    """

    requeue: bool = False
    requeue_after: Optional[float] = None

    @property
    def done(self) -> bool:
        return not self.requeue and self.requeue_after is None


def resolve_job_names(experiment: FinetuneExperiment) -> list[str]:
    """Return the job name for each template, in order.

    Explicit names are used as given. The first unnamed template gets
    ``<experiment>-finetunejob``; any later unnamed template at list
    index ``i`` gets ``<experiment>-finetunejob-<i>``.
    """
    default = f"{experiment.metadata.name}-{DEFAULT_JOB_SUFFIX}"
    names: list[str] = []
    default_taken = False
    for index, template in enumerate(experiment.spec.finetune_jobs):
        if template.name:
            names.append(template.name)
        elif not default_taken:
            names.append(default)
            default_taken = True
        else:
            names.append(f"{default}-{index}")
    return names


class Reconciler:
    """Converges FinetuneExperiment objects onto their spec."""

    client: StoreClient
    scheme: Scheme

    def __init__(self, client: StoreClient, scheme: Optional[Scheme] = None) -> None:
        self.client = client
        self.scheme = scheme if scheme is not None else SCHEME

    def reconcile(self, request: Request, ctx: Optional[Context] = None) -> Result:
        """Run one reconciliation pass.

        Returns a Result on success. Any other failure is raised unchanged
        so the scheduler can requeue with backoff.
        """
        ctx = ctx or background()
        logger.info("Start reconcile finetuneExperiment: %s", request)

        try:
            experiment = self.client.get(ctx, FinetuneExperiment, request.namespace, request.name)
        except NotFoundError:
            logger.info(
                "FinetuneExperiment %s not found. Ignoring since object must be deleted.",
                request,
            )
            return Result()
        except ControllerError as e:
            logger.error("Failed get finetuneExperiment: %s, Err: %s", request, e)
            raise

        if experiment.metadata.deletion_timestamp is not None:
            self._finalize(ctx, experiment)
            return Result()

        if experiment.metadata.add_finalizer(FINALIZER):
            try:
                self.client.update(ctx, experiment)
            except ControllerError as e:
                logger.error("Add finalizer failed: %s, %s", request, e)
                raise

        observed = experiment.status.model_copy(deep=True)

        if experiment.spec.pending:
            experiment.status.state = ExperimentState.PENDING
            self._update_status(ctx, experiment, observed)
            return Result()

        for template, job_name in zip(
            experiment.spec.finetune_jobs, resolve_job_names(experiment)
        ):
            self._sync_job(ctx, experiment, template, job_name)

        experiment.status.state = ExperimentState.PROCESSING
        self._update_status(ctx, experiment, observed)
        return Result()

    def _finalize(self, ctx: Context, experiment: FinetuneExperiment) -> None:
        """Run cleanup and release the finalizer of a deleting experiment."""
        if not experiment.metadata.has_finalizer(FINALIZER):
            return

        self.cleanup(ctx, experiment)
        _ = experiment.metadata.remove_finalizer(FINALIZER)
        try:
            self.client.update(ctx, experiment)
        except ControllerError as e:
            logger.error("Remove finalizer failed: %s, Err: %s", experiment.key, e)
            raise

    def cleanup(self, ctx: Context, experiment: FinetuneExperiment) -> None:
        """Tear down external state before the finalizer is released.

        Jobs need no explicit cleanup: they carry a controller reference and
        are collected by the store once the experiment is gone.
        """
        logger.debug("Cleanup finetuneExperiment: %s", experiment.key)

    def build_job(
        self,
        experiment: FinetuneExperiment,
        template: FinetuneJobTemplate,
        job_name: str,
    ) -> FinetuneJob:
        """Build the job descriptor for one template."""
        job = FinetuneJob(
            metadata=ObjectMeta(
                name=job_name,
                namespace=experiment.metadata.namespace,
                labels=instance_labels(job_name, template.labels),
            ),
            spec=template.spec.model_copy(deep=True),
        )
        set_controller_reference(experiment, job, self.scheme)
        return job

    def _sync_job(
        self,
        ctx: Context,
        experiment: FinetuneExperiment,
        template: FinetuneJobTemplate,
        job_name: str,
    ) -> None:
        """Create one job if missing and record its current status."""
        try:
            job = self.build_job(experiment, template, job_name)
        except ControllerError as e:
            logger.error(
                "SetControllerReference failed finetuneJob: %s/%s, owner finetuneExperiment: %s, err: %s",
                experiment.metadata.namespace,
                job_name,
                experiment.key,
                e,
            )
            raise

        try:
            self.client.create(ctx, job)
        except AlreadyExistsError:
            logger.debug("FinetuneJob %s already exists", job.key)
        except ControllerError as e:
            logger.error("Create finetuneJob %s failed: %s", job.key, e)
            raise

        try:
            existing = self.client.get(
                ctx, FinetuneJob, experiment.metadata.namespace, job_name
            )
        except ControllerError as e:
            logger.error("Get finetuneJob %s failed: %s", job.key, e)
            raise

        if not is_controlled_by(existing, experiment):
            logger.warning(
                "FinetuneJob %s is not controlled by finetuneExperiment %s, skipping",
                existing.key,
                experiment.key,
            )
            return

        experiment.status.jobs_status[job_name] = existing.status.model_copy(deep=True)

    def _update_status(
        self,
        ctx: Context,
        experiment: FinetuneExperiment,
        observed: FinetuneExperimentStatus,
    ) -> None:
        """Write the status sub-resource if it differs from what was read."""
        if experiment.status == observed:
            return
        try:
            self.client.update_status(ctx, experiment)
        except ControllerError as e:
            logger.error("Update finetuneExperiment %s status failed: %s", experiment.key, e)
            raise
