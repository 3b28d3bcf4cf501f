# Copyright (c) Syntropy Systems
"""Runs the reconciler against a work queue fed by store polling."""

from __future__ import annotations

import logging
import time
from threading import Event, Thread
from typing import TYPE_CHECKING, Optional

from finetune_controller.config import ControllerConfig
from finetune_controller.context import Context
from finetune_controller.errors import CacheSyncTimeoutError, ControllerError
from finetune_controller.models.resources import FinetuneExperiment, FinetuneJob
from finetune_controller.reconciler import Reconciler, Request
from finetune_controller.workqueue import WorkQueue

if TYPE_CHECKING:
    from finetune_controller.store import StoreClient

logger = logging.getLogger(__name__)


class ControllerManager:
    """Delivers experiment keys to the reconciler.

    A watch thread polls the store and queues every experiment whose
    ``(uid, resource_version)`` changed, the owner of every job that
    changed, and every experiment once per resync period. Worker threads
    take keys from the queue; the queue guarantees one in-flight
    reconcile per key.
    """

    def __init__(
        self,
        client: StoreClient,
        reconciler: Optional[Reconciler] = None,
        config: Optional[ControllerConfig] = None,
        queue: Optional[WorkQueue] = None,
    ) -> None:
        self.client = client
        self.reconciler = reconciler if reconciler is not None else Reconciler(client)
        self.config = config if config is not None else ControllerConfig()
        self.queue = queue if queue is not None else WorkQueue(
            base_delay=self.config.base_backoff,
            max_delay=self.config.max_backoff,
        )

        self._root = Context()
        self._stop = Event()
        self._synced = Event()
        self._threads: list[Thread] = []
        self._experiment_versions: dict[str, tuple[str, int]] = {}
        self._job_versions: dict[str, tuple[str, int]] = {}
        self._last_resync: Optional[float] = None

    @property
    def synced(self) -> bool:
        return self._synced.is_set()

    def start(self) -> None:
        """Start the watch thread, wait for the first listing, then start workers.

        Raises CacheSyncTimeoutError if the first listing does not complete
        within ``config.cache_sync_timeout`` seconds.
        """
        watcher = Thread(target=self._watch_loop, name="finetune-watch", daemon=True)
        self._threads.append(watcher)
        watcher.start()

        if not self._synced.wait(timeout=self.config.cache_sync_timeout):
            self.stop()
            msg = f"Timed out after {self.config.cache_sync_timeout}s waiting for store sync"
            raise CacheSyncTimeoutError(msg)

        for i in range(self.config.max_concurrent_reconciles):
            worker = Thread(target=self._worker_loop, name=f"finetune-worker-{i}", daemon=True)
            self._threads.append(worker)
            worker.start()

        logger.info(
            "Controller started with %d worker(s)", self.config.max_concurrent_reconciles
        )

    def request_stop(self) -> None:
        """Ask a blocking ``run`` to return. Safe to call from a signal handler."""
        self._stop.set()

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel in-flight reconciles and stop all threads."""
        self._stop.set()
        self._root.cancel()
        self.queue.shut_down()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("Controller stopped")

    def run(self) -> None:
        """Start and block until ``request_stop`` or ``stop`` is called."""
        self.start()
        try:
            while not self._stop.wait(timeout=0.5):
                pass
        finally:
            self.stop()

    # --- Watch ---

    def poll(self, now: Optional[float] = None) -> int:
        """List the store once and queue changed experiments.

        Returns the number of keys queued.
        """
        now = time.monotonic() if now is None else now
        resync = (
            self._last_resync is None
            or now - self._last_resync >= self.config.resync_period
        )
        queued: set[str] = set()

        experiments: dict[str, tuple[str, int]] = {}
        keys_by_uid: dict[str, str] = {}
        for namespace, name, uid, version, _ in self.client.iter_versions(
            self._root, FinetuneExperiment
        ):
            key = f"{namespace}/{name}"
            experiments[key] = (uid, version)
            keys_by_uid[uid] = key
            if resync or self._experiment_versions.get(key) != (uid, version):
                queued.add(key)

        # Jobs are matched to their owner by uid, without decoding them.
        jobs: dict[str, tuple[str, int]] = {}
        for namespace, name, uid, version, owner_uid in self.client.iter_versions(
            self._root, FinetuneJob
        ):
            key = f"{namespace}/{name}"
            jobs[key] = (uid, version)
            if self._job_versions.get(key) == (uid, version) or owner_uid is None:
                continue
            owner_key = keys_by_uid.get(owner_uid)
            if owner_key is not None:
                queued.add(owner_key)

        self._experiment_versions = experiments
        self._job_versions = jobs
        if resync:
            self._last_resync = now

        for key in sorted(queued):
            self.queue.add(key)
        return len(queued)

    def _watch_loop(self) -> None:
        while not self._stop.is_set():
            try:
                queued = self.poll()
            except ControllerError as e:
                logger.warning("Store poll failed: %s", e)
            except Exception:
                logger.exception("Store poll raised")
            else:
                if queued:
                    logger.debug("Queued %d experiment(s)", queued)
                self._synced.set()
            _ = self._stop.wait(timeout=self.config.poll_interval)

    # --- Workers ---

    def _worker_loop(self) -> None:
        while self.process_next_item():
            pass

    def process_next_item(self, timeout: Optional[float] = None) -> bool:
        """Reconcile one key from the queue.

        Returns False if the queue is shut down or ``timeout`` elapsed.
        """
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False
        try:
            self._reconcile_key(key)
        finally:
            self.queue.done(key)
        return True

    def _reconcile_key(self, key: str) -> None:
        ctx = self._root.with_timeout(self.config.reconcile_timeout)
        try:
            result = self.reconciler.reconcile(Request.from_key(key), ctx)
        except ControllerError as e:
            logger.error("Reconcile %s failed, requeueing: %s", key, e)
            self.queue.add_rate_limited(key)
            return
        except Exception:
            logger.exception("Reconcile %s raised, requeueing", key)
            self.queue.add_rate_limited(key)
            return

        if result.requeue_after is not None:
            self.queue.forget(key)
            self.queue.add_after(key, result.requeue_after)
        elif result.requeue:
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
