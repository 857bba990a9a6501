"""
Engine Context
==============
Owns the single logical engine of a process and hands callers a handle
to it. Reinitializing swaps the engine for every handle at once.

Training can run on a background worker so request handling is never
blocked by a long run; jobs execute one at a time in submission order.

Usage:
    context = EngineContext(channel=channel)
    context.start()

    handle = context.initialize({'numBins': 10})
    handle.load_data('sample.csv')
    job = context.train_async()
    report = job.result(timeout=60)
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from queue import Queue, Empty
from typing import Any, Dict, Mapping, Optional, Union

from .core.config import EngineConfig
from .core.exceptions import InvalidStateError
from .core.types import EngineState
from .engine import STDSEngine, TrainingReport
from .events import NotificationChannel
from .tree import TreeSnapshot

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    """Background training job states."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class TrainingJob:
    """A training run submitted to the background worker."""
    id: int
    engine: STDSEngine = field(repr=False)
    status: JobStatus = JobStatus.QUEUED
    report: Optional[TrainingReport] = None
    error: Optional[Exception] = None
    submitted_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job finishes. Returns False on timeout."""
        return self._done.wait(timeout)

    def result(self, timeout: Optional[float] = None) -> TrainingReport:
        """
        Wait for the job and return its report.

        Raises:
            TimeoutError: if the job is still running after `timeout`
            The training error, if the job failed
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Training job {self.id} still {self.status.value}")
        if self.error is not None:
            raise self.error
        return self.report

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'status': self.status.value,
            'report': self.report.to_dict() if self.report else None,
            'error': str(self.error) if self.error else None,
            'errorType': type(self.error).__name__ if self.error else None,
            'submittedAt': int(self.submitted_at * 1000),
            'finishedAt': int(self.finished_at * 1000) if self.finished_at else None,
        }


class EngineHandle:
    """
    Caller-side handle to the context's current engine.

    Every call resolves the engine at call time, so a handle taken before
    a reinitialize talks to the new engine afterwards.
    """

    def __init__(self, context: "EngineContext"):
        self._context = context

    @property
    def engine(self) -> STDSEngine:
        return self._context.engine

    @property
    def state(self) -> EngineState:
        return self._context.state

    def load_data(self, source) -> int:
        return self.engine.load_data(source)

    def train(self) -> TrainingReport:
        return self.engine.train()

    def train_async(self) -> TrainingJob:
        return self._context.train_async()

    def process_new_data(self, bar) -> str:
        return self.engine.process_new_data(bar)

    def get_tree_snapshot(self) -> TreeSnapshot:
        return self.engine.get_tree_snapshot()

    def get_node(self, node_id: int) -> Dict[str, Any]:
        return self.engine.get_node(node_id)


class EngineContext:
    """
    Process-wide owner of the engine and its training worker.

    Example:
        context = EngineContext()
        context.start()
        handle = context.initialize(EngineConfig(num_bins=8))
    """

    def __init__(
        self,
        channel: Optional[NotificationChannel] = None,
        data_dir: Optional[Union[str, Path]] = None,
        date_column: str = "Date",
    ):
        self.channel = channel
        self.data_dir = data_dir
        self.date_column = date_column

        self._engine: Optional[STDSEngine] = None
        self._engine_lock = threading.Lock()

        # Training worker
        self._jobs: Queue = Queue()
        self._job_ids = itertools.count(1)
        self._last_job: Optional[TrainingJob] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None

    # =========================================================================
    # ENGINE OWNERSHIP
    # =========================================================================

    @property
    def engine(self) -> STDSEngine:
        """The current engine. Raises InvalidStateError before initialize."""
        engine = self._engine
        if engine is None:
            raise InvalidStateError("Engine not initialized")
        return engine

    @property
    def state(self) -> EngineState:
        engine = self._engine
        return engine.state if engine is not None else EngineState.UNINITIALIZED

    def initialize(self, config: Union[EngineConfig, Mapping[str, Any], None] = None) -> EngineHandle:
        """
        Replace the engine with a fresh one built from `config`.

        A training job already running finishes against the old engine.

        Raises:
            InvalidConfigError: on malformed config (current engine kept)
        """
        engine = STDSEngine(
            channel=self.channel,
            data_dir=self.data_dir,
            date_column=self.date_column,
        )
        engine.initialize(config)

        with self._engine_lock:
            self._engine = engine

        return EngineHandle(self)

    def handle(self) -> EngineHandle:
        """A handle to the current (possibly not yet initialized) engine."""
        return EngineHandle(self)

    def get_status(self) -> dict:
        """Engine, worker, and event channel status."""
        engine = self._engine
        return {
            'engine': engine.get_status() if engine else {'state': self.state.value},
            'worker': {
                'running': self._running,
                'queued': self._jobs.qsize(),
                'lastJob': self._last_job.to_dict() if self._last_job else None,
            },
            'events': self.channel.get_status() if self.channel else None,
        }

    # =========================================================================
    # TRAINING WORKER
    # =========================================================================

    def start(self):
        """Start the background training worker."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(
            target=self._process_jobs,
            daemon=True,
            name="TrainingWorker"
        )
        self._thread.start()
        logger.info("Training worker started")

    def stop(self, timeout: float = 5.0):
        """Stop the worker after the current job."""
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Training worker stopped")

    @property
    def last_job(self) -> Optional[TrainingJob]:
        return self._last_job

    def train_async(self) -> TrainingJob:
        """
        Queue a training run of the current engine.

        State is checked up front so an obviously invalid request fails
        immediately instead of inside the worker.

        Raises:
            InvalidStateError: before initialize, with no staged data, or
                when the worker is not running
        """
        engine = self.engine
        if not engine.has_pending_data:
            raise InvalidStateError(
                f"train requires loaded data (state {engine.state.value}); call load_data first"
            )
        if not self._running:
            raise InvalidStateError("Training worker is not running")

        job = TrainingJob(id=next(self._job_ids), engine=engine)
        self._last_job = job
        self._jobs.put(job)
        logger.info(f"Training job {job.id} queued")
        return job

    def _process_jobs(self):
        while self._running:
            try:
                job = self._jobs.get(timeout=0.5)
            except Empty:
                continue

            try:
                self._run_job(job)
            finally:
                self._jobs.task_done()

    def _run_job(self, job: TrainingJob):
        job.status = JobStatus.RUNNING
        try:
            job.report = job.engine.train()
            job.status = JobStatus.SUCCEEDED
        except Exception as e:
            job.error = e
            job.status = JobStatus.FAILED
            logger.error(f"Training job {job.id} failed: {e}")
        finally:
            job.finished_at = time.time()
            job._done.set()
