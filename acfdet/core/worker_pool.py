"""Fixed-size worker pool with per-worker scratch state.

Each worker thread owns one scratch object, built lazily by ``scratch_factory``
the first time that worker runs a task and kept for the worker's lifetime.
Tasks receive the scratch of the worker that executes them, so mutable helper
state is never shared between threads. Scratch objects are handed out only
after the workers have been joined (:meth:`WorkerPool.scratch_states`).
"""

import threading
import queue
import time
import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Any, Optional, List, Iterable

logger = logging.getLogger(__name__)

_SHUTDOWN = object()


@dataclass
class Task:
    """Unit of work queued on the pool."""
    func: Callable
    args: tuple
    kwargs: dict
    future: Future = field(default_factory=Future)
    task_id: str = None

    def __post_init__(self):
        if self.task_id is None:
            self.task_id = f"task_{id(self)}"


@dataclass
class WorkerStats:
    tasks_completed: int = 0
    tasks_failed: int = 0
    total_processing_time: float = 0.0


class WorkerPool:
    """Thread pool whose workers each own a lazily constructed scratch object.

    ``func`` passed to :meth:`submit` is called as ``func(scratch, *args, **kwargs)``;
    ``scratch`` is ``None`` when the pool has no factory.
    """

    def __init__(self,
                 num_workers: int = 4,
                 scratch_factory: Optional[Callable[[int], Any]] = None,
                 thread_name_prefix: str = "AcfWorker"):
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")

        self.num_workers = num_workers
        self.thread_name_prefix = thread_name_prefix
        self._scratch_factory = scratch_factory

        self._tasks: "queue.Queue[Any]" = queue.Queue()
        self._scratch: List[Any] = [None] * num_workers
        self._stats: List[WorkerStats] = [WorkerStats() for _ in range(num_workers)]
        self._workers: List[threading.Thread] = []
        self._shutdown = False
        self._lock = threading.Lock()

        for worker_id in range(num_workers):
            worker = threading.Thread(
                target=self._worker_loop,
                args=(worker_id,),
                name=f"{self.thread_name_prefix}-{worker_id}",
                daemon=True
            )
            worker.start()
            self._workers.append(worker)

    def _worker_loop(self, worker_id: int):
        """Main worker loop."""
        stats = self._stats[worker_id]
        scratch = None
        scratch_ready = False

        while True:
            task = self._tasks.get()
            try:
                if task is _SHUTDOWN:
                    break
                if not task.future.set_running_or_notify_cancel():
                    continue

                start_time = time.time()
                try:
                    if not scratch_ready and self._scratch_factory is not None:
                        logger.debug("Creating scratch state for worker %d", worker_id)
                        scratch = self._scratch_factory(worker_id)
                        self._scratch[worker_id] = scratch
                    scratch_ready = True
                    result = task.func(scratch, *task.args, **task.kwargs)
                except Exception as e:
                    stats.tasks_failed += 1
                    logger.debug("Task %s failed in worker %d: %s", task.task_id, worker_id, e)
                    task.future.set_exception(e)
                else:
                    stats.tasks_completed += 1
                    task.future.set_result(result)
                finally:
                    stats.total_processing_time += time.time() - start_time
            finally:
                self._tasks.task_done()

    def submit(self, func: Callable, *args, **kwargs) -> Future:
        """Queue ``func(scratch, *args, **kwargs)`` and return its future."""
        with self._lock:
            if self._shutdown:
                raise RuntimeError("Worker pool is shut down")
            task = Task(func=func, args=args, kwargs=kwargs)
            self._tasks.put(task)
        return task.future

    def map(self, func: Callable, items: Iterable[Any]) -> List[Any]:
        """Run ``func(scratch, item)`` for every item; results keep input order.

        The first failure, in input order, is re-raised.
        """
        futures = [self.submit(func, item) for item in items]
        return [f.result() for f in futures]

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and let workers drain the queue."""
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            for _ in self._workers:
                self._tasks.put(_SHUTDOWN)
        if wait:
            for worker in self._workers:
                worker.join()
        logger.debug("Worker pool shut down: %s", self.get_stats())

    def scratch_states(self) -> List[Any]:
        """Scratch objects of workers that ran at least one task.

        Only available once the pool has been shut down and joined.
        """
        if not self._shutdown or any(w.is_alive() for w in self._workers):
            raise RuntimeError("scratch states are only available after shutdown(wait=True)")
        return [s for s in self._scratch if s is not None]

    def get_stats(self) -> dict:
        return {
            'workers': self.num_workers,
            'tasks_completed': sum(s.tasks_completed for s in self._stats),
            'tasks_failed': sum(s.tasks_failed for s in self._stats),
            'total_processing_time': sum(s.total_processing_time for s in self._stats),
        }

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)
