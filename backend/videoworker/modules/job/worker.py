"""Worker pool.

A thin wrapper around a Celery prefork worker consuming the job queue. Each
pool process runs one job at a time; stopping the pool is a warm shutdown,
so in-flight jobs finish before the process exits.
"""

import logging
import os
from typing import Any, Optional, Sequence

from celery import Celery, signals

from videoworker import __version__
from videoworker.core.celery_app import celery_app
from videoworker.core.config import settings
from videoworker.core.logging import log_info, setup_logging
from videoworker.core.metrics import mark_process_dead, set_app_info, start_metrics_server

logger = logging.getLogger(__name__)


@signals.setup_logging.connect
def configure_worker_logging(**kwargs: Any) -> None:
    """Use the structured formatter instead of Celery's logging setup."""
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)


@signals.worker_process_shutdown.connect
def release_process_metrics(pid: Optional[int] = None, **kwargs: Any) -> None:
    mark_process_dead(pid or os.getpid())


class WorkerPool:
    """Fixed-size pool of job workers."""

    def __init__(
        self,
        concurrency: Optional[int] = None,
        queues: Optional[Sequence[str]] = None,
        app: Celery = celery_app,
    ):
        self.app = app
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.queues = list(queues) if queues else [settings.JOB_QUEUE_NAME]
        self._worker = None

    @property
    def running(self) -> bool:
        return self._worker is not None

    def build_worker(self):
        """Create the Celery worker controller without starting it."""
        return self.app.Worker(
            pool="prefork",
            concurrency=self.concurrency,
            queues=self.queues,
            prefetch_multiplier=1,
            loglevel=settings.LOG_LEVEL,
        )

    def start(self) -> int:
        """Run the pool until it is stopped.

        Blocks the calling thread. Returns the worker's exit code.
        """
        if self._worker is not None:
            raise RuntimeError("worker pool is already running")

        set_app_info(version=__version__, environment=settings.ENVIRONMENT)
        if settings.METRICS_PORT:
            start_metrics_server(settings.METRICS_PORT)

        log_info(
            logger,
            f"Starting worker pool with {self.concurrency} process(es) on {', '.join(self.queues)}",
            concurrency=self.concurrency,
            queues=self.queues,
        )
        self._worker = self.build_worker()
        try:
            self._worker.start()
            return self._worker.exitcode or 0
        finally:
            self._worker = None

    def stop(self) -> None:
        """Request a warm shutdown; in-flight jobs run to completion."""
        worker = self._worker
        if worker is None:
            return
        log_info(logger, "Stopping worker pool, waiting for in-flight jobs")
        worker.stop(in_sighandler=False)
