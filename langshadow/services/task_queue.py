"""
Replication task dispatch: Redis-backed durable queue, inline dispatcher
and the worker pool that consumes the queue.

Delivery is at-least-once. A task popped from the queue sits in a
processing list until it is acknowledged, so a crashed worker's task can be
recovered. Failed tasks are re-queued until TASK_MAX_TRIES attempts, then
moved to a dead-letter list; the reconciler repairs what they left partial.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import redis
from pydantic import ValidationError

from langshadow.core.monitoring import track_error
from langshadow.schemas.multilang import ReplicationResult, ReplicationTask

logger = logging.getLogger(__name__)

DEFAULT_MAX_TRIES = 3

TaskHandler = Callable[[ReplicationTask], ReplicationResult]


class RedisTaskQueue:
    """Durable FIFO of ReplicationTask messages stored in Redis lists."""

    def __init__(self, client: redis.Redis, name: str, max_tries: int = DEFAULT_MAX_TRIES):
        self.client = client
        self.name = name
        self.max_tries = max_tries

    @property
    def processing_name(self) -> str:
        return f"{self.name}:processing"

    @property
    def failed_name(self) -> str:
        return f"{self.name}:failed"

    def dispatch(self, task: ReplicationTask) -> None:
        """Append a task to the queue."""
        self.client.rpush(self.name, task.model_dump_json())
        logger.debug(f"Queued replication task {task.task_id} for {task.table} #{task.record_id}")

    def pop(self, timeout: int = 5) -> Optional[ReplicationTask]:
        """
        Take the next task, moving it to the processing list.

        Returns:
            Task, or None when the queue stayed empty for `timeout` seconds
        """
        payload = self.client.blmove(self.name, self.processing_name, timeout, "LEFT", "RIGHT")
        if payload is None:
            return None
        try:
            return ReplicationTask.model_validate_json(payload)
        except ValidationError as e:
            logger.error(f"Dropping malformed task payload {payload!r}: {e}")
            self.client.lrem(self.processing_name, 1, payload)
            self.client.rpush(self.failed_name, payload)
            return None

    def ack(self, task: ReplicationTask) -> None:
        """Remove a finished task from the processing list."""
        self.client.lrem(self.processing_name, 1, task.model_dump_json())

    def retry(self, task: ReplicationTask, error: Exception) -> bool:
        """
        Acknowledge a failed attempt and re-queue it.

        Returns:
            True if re-queued, False if the task was dead-lettered
        """
        self.ack(task)
        retried = task.model_copy(update={"attempt": task.attempt + 1, "last_error": str(error)})
        if retried.attempt >= self.max_tries:
            self.client.rpush(self.failed_name, retried.model_dump_json())
            logger.error(
                f"Replication task {task.task_id} abandoned after {retried.attempt} attempts: {error}"
            )
            return False
        self.client.rpush(self.name, retried.model_dump_json())
        return True

    def recover(self) -> int:
        """Move tasks left in the processing list (crashed workers) back to the queue."""
        moved = 0
        while self.client.lmove(self.processing_name, self.name, "RIGHT", "LEFT") is not None:
            moved += 1
        if moved:
            logger.warning(f"Recovered {moved} in-flight replication tasks")
        return moved

    def size(self) -> int:
        return self.client.llen(self.name)

    def failed(self) -> List[ReplicationTask]:
        return [
            ReplicationTask.model_validate_json(payload)
            for payload in self.client.lrange(self.failed_name, 0, -1)
        ]


class InlineDispatcher:
    """
    Runs tasks immediately in the calling thread with the same bounded
    retry policy as the queue. Used for synchronous replication.
    """

    def __init__(self, handler: TaskHandler, max_tries: int = DEFAULT_MAX_TRIES):
        self.handler = handler
        self.max_tries = max_tries
        self.abandoned: List[ReplicationTask] = []

    def dispatch(self, task: ReplicationTask) -> Optional[ReplicationResult]:
        while True:
            try:
                return self.handler(task)
            except Exception as e:
                task = task.model_copy(update={"attempt": task.attempt + 1, "last_error": str(e)})
                if task.attempt >= self.max_tries:
                    logger.error(f"Replication task {task.task_id} abandoned after {task.attempt} attempts: {e}")
                    track_error(
                        "replication.task_abandoned",
                        table=task.table,
                        record_id=task.record_id,
                        metadata={"error": str(e)}
                    )
                    self.abandoned.append(task)
                    return None
                logger.warning(f"Replication task {task.task_id} failed (attempt {task.attempt}): {e}")


class ReplicationWorker:
    """
    Pool of threads consuming a RedisTaskQueue.
    """

    def __init__(
        self,
        queue: RedisTaskQueue,
        handler: TaskHandler,
        concurrency: int = 1,
        poll_timeout: int = 5
    ):
        self.queue = queue
        self.handler = handler
        self.concurrency = max(1, concurrency)
        self.poll_timeout = poll_timeout
        self._stop = threading.Event()

    def process_one(self) -> bool:
        """
        Handle a single task if one is available.

        Returns:
            True if a task was taken from the queue
        """
        task = self.queue.pop(timeout=self.poll_timeout)
        if task is None:
            return False

        try:
            result = self.handler(task)
        except Exception as e:
            logger.warning(f"Replication task {task.task_id} failed (attempt {task.attempt + 1}): {e}")
            if not self.queue.retry(task, e):
                track_error(
                    "replication.task_abandoned",
                    table=task.table,
                    record_id=task.record_id,
                    metadata={"error": str(e)}
                )
            return True

        self.queue.ack(task)
        if result is not None and result.failures:
            logger.warning(
                f"Task {task.task_id} finished with {len(result.failures)} failed languages; "
                f"the reconciler will pick them up"
            )
        return True

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.process_one()
            except redis.RedisError as e:
                logger.error(f"Redis unavailable, backing off: {e}")
                self._stop.wait(self.poll_timeout)

    def run(self) -> None:
        """Block until stop() is called."""
        self.queue.recover()
        logger.info(f"Replication worker started on '{self.queue.name}' with {self.concurrency} threads")
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="replication") as pool:
            futures = [pool.submit(self._loop) for _ in range(self.concurrency)]
            for future in futures:
                future.result()
        logger.info("Replication worker stopped")

    def stop(self) -> None:
        self._stop.set()
