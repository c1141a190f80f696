"""
=============================================================================
THREAD POOL
=============================================================================

A fixed set of worker threads pulling tasks from a bounded queue. The
Server uses it as its executor: the accept thread submits one task per
connection and goes straight back to accept().

    ┌──────────────┐  submit()   ┌──────────────────────────┐
    │ accept loop  │ ──────────► │ TASK QUEUE (bounded)     │
    └──────────────┘             │ [conn 1] [conn 2] ...    │
           ▲                     └────────────┬─────────────┘
           │ False when full                  │ get()
           │ (Server answers 503)             ▼
           │                     ┌──────────────────────────┐
           └──────────────────── │ Worker-0  Worker-1  ...  │
                                 └──────────────────────────┘

=============================================================================
WHY submit() RETURNS A BOOL
=============================================================================

An overloaded server should say so quickly instead of letting the accept
loop block on a full queue. submit() never blocks: it returns False when
the queue is full, and the caller decides what to tell the client.

=============================================================================
SHUTDOWN: THE POISON PILL
=============================================================================

    pool.shutdown()
        └─ wait for queued tasks (optional, bounded by timeout)
        └─ put one None per worker in the queue
        └─ each worker takes a None and exits its loop

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""

    func: Callable[..., Any]
    args: Tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread.

    Runs tasks until it receives a poison pill. A task that raises is
    logged and counted; the worker keeps going.
    """

    def __init__(self, task_queue: "queue.Queue[Optional[Task]]", worker_id: int, idle_timeout: float = 60.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s")
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Fixed-size thread pool with a bounded task queue.

    Usage:
        with ThreadPool(max_workers=3) as pool:
            accepted = pool.submit(handle, conn)
            if not accepted:
                ...  # overloaded

    Any object with a compatible submit() can stand in for it as the
    server executor, e.g. concurrent.futures.ThreadPoolExecutor.
    """

    def __init__(self, max_workers: int = 3, queue_size: int = 100, idle_timeout: float = 1.0):
        """
        Args:
            max_workers: Number of worker threads, started together.
            queue_size: Tasks that may wait for a free worker. Beyond
                        this submit() returns False.
            idle_timeout: How often an idle worker wakes to check for
                          shutdown, in seconds.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> "ThreadPool":
        """Start the workers. Starting twice is a no-op."""
        with self._lock:
            if self._started:
                return self
            if self._shutdown:
                raise RuntimeError("Thread pool was shut down")

            logger.info(f"Starting thread pool with {self.max_workers} workers")
            for worker_id in range(self.max_workers):
                worker = Worker(self._task_queue, worker_id, self.idle_timeout)
                self._workers.append(worker)
                worker.start()
            self._started = True
        return self

    def submit(self, func: Callable[..., Any], *args, **kwargs) -> bool:
        """
        Queue func(*args, **kwargs) without blocking.

        Returns:
            True if the task was queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._task_queue.put_nowait(Task(func=func, args=args, kwargs=kwargs))
        except queue.Full:
            return False
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop the pool.

        Args:
            wait: Let queued tasks run before stopping. If False, tasks
                  still in the queue are dropped.
            timeout: Upper bound in seconds on waiting for queued tasks
                     and for workers to exit. None waits as long as it
                     takes.
        """
        with self._lock:
            if not self._started or self._shutdown:
                return
            self._shutdown = True

        logger.info("Shutting down thread pool...")
        deadline = time.monotonic() + timeout if timeout is not None else None

        if wait:
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning("Thread pool shutdown timeout, abandoning queued tasks")
                    break
                time.sleep(0.05)

        if not wait or self._task_queue.unfinished_tasks:
            self._drop_queued()

        for worker in self._workers:
            worker.shutdown()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass  # the worker sees the shutdown flag on its next idle wake

        for worker in self._workers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(timeout=remaining)

        self._started = False
        logger.info("Thread pool shutdown complete")

    def _drop_queued(self) -> None:
        dropped = 0
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                break
            self._task_queue.task_done()
            if task is not None:
                dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} queued task(s)")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def stats(self) -> dict:
        """Worker and task counters, for logs and health checks."""
        return {
            "workers": {
                "total": len(self._workers),
                "alive": sum(1 for w in self._workers if w.is_alive()),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False
