"""
Tests for the Redis task queue, inline dispatcher and worker
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from langshadow.schemas.multilang import ReplicationResult, ReplicationTask
from langshadow.services.task_queue import InlineDispatcher, RedisTaskQueue, ReplicationWorker


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def queue(client):
    return RedisTaskQueue(client, "langshadow:test", max_tries=3)


@pytest.fixture
def task():
    return ReplicationTask(table="products", record_id=1, languages=["en", "fr"])


def test_dispatch_pushes_json(queue, client, task):
    queue.dispatch(task)

    name, payload = client.rpush.call_args.args
    assert name == "langshadow:test"
    assert ReplicationTask.model_validate_json(payload) == task


def test_pop_moves_to_processing(queue, client, task):
    client.blmove.return_value = task.model_dump_json()

    popped = queue.pop(timeout=1)

    assert popped == task
    client.blmove.assert_called_once_with(
        "langshadow:test", "langshadow:test:processing", 1, "LEFT", "RIGHT"
    )


def test_pop_empty_queue(queue, client):
    client.blmove.return_value = None
    assert queue.pop(timeout=1) is None


def test_pop_dead_letters_malformed_payload(queue, client):
    client.blmove.return_value = "not json"

    assert queue.pop() is None
    client.lrem.assert_called_once_with("langshadow:test:processing", 1, "not json")
    client.rpush.assert_called_once_with("langshadow:test:failed", "not json")


def test_ack_removes_from_processing(queue, client, task):
    queue.ack(task)
    client.lrem.assert_called_once_with("langshadow:test:processing", 1, task.model_dump_json())


def test_retry_requeues_with_incremented_attempt(queue, client, task):
    assert queue.retry(task, RuntimeError("boom"))

    name, payload = client.rpush.call_args.args
    retried = ReplicationTask.model_validate_json(payload)
    assert name == "langshadow:test"
    assert retried.attempt == 1
    assert retried.last_error == "boom"


def test_retry_dead_letters_after_max_tries(queue, client, task):
    exhausted = task.model_copy(update={"attempt": 2})

    assert not queue.retry(exhausted, RuntimeError("boom"))

    name, payload = client.rpush.call_args.args
    assert name == "langshadow:test:failed"
    assert ReplicationTask.model_validate_json(payload).attempt == 3


def test_recover_moves_in_flight_tasks_back(queue, client):
    client.lmove.side_effect = ["a", "b", None]

    assert queue.recover() == 2
    client.lmove.assert_called_with("langshadow:test:processing", "langshadow:test", "RIGHT", "LEFT")


def test_failed_lists_dead_letters(queue, client, task):
    client.lrange.return_value = [task.model_dump_json()]
    assert queue.failed() == [task]


def test_inline_dispatcher_retries_until_success(task):
    handler = MagicMock(side_effect=[OperationalError("SELECT", {}, Exception("locked")), ReplicationResult(row_id=1)])
    dispatcher = InlineDispatcher(handler, max_tries=3)

    result = dispatcher.dispatch(task)

    assert result.row_id == 1
    assert handler.call_count == 2
    assert dispatcher.abandoned == []


def test_inline_dispatcher_abandons_after_max_tries(task):
    handler = MagicMock(side_effect=RuntimeError("boom"))
    dispatcher = InlineDispatcher(handler, max_tries=3)

    assert dispatcher.dispatch(task) is None
    assert handler.call_count == 3
    assert dispatcher.abandoned[0].attempt == 3
    assert dispatcher.abandoned[0].last_error == "boom"


def test_worker_acks_successful_task(task):
    queue = MagicMock()
    queue.pop.return_value = task
    handler = MagicMock(return_value=ReplicationResult(row_id=1))

    assert ReplicationWorker(queue, handler).process_one()

    handler.assert_called_once_with(task)
    queue.ack.assert_called_once_with(task)
    queue.retry.assert_not_called()


def test_worker_retries_failed_task(task):
    queue = MagicMock()
    queue.pop.return_value = task
    error = RuntimeError("boom")
    handler = MagicMock(side_effect=error)

    assert ReplicationWorker(queue, handler).process_one()

    queue.retry.assert_called_once_with(task, error)
    queue.ack.assert_not_called()


def test_worker_idle_poll(task):
    queue = MagicMock()
    queue.pop.return_value = None
    handler = MagicMock()

    assert not ReplicationWorker(queue, handler).process_one()
    handler.assert_not_called()


def test_worker_stop_ends_run():
    queue = MagicMock()
    queue.name = "langshadow:test"
    queue.pop.return_value = None
    worker = ReplicationWorker(queue, MagicMock(), concurrency=2, poll_timeout=0)
    worker.stop()

    worker.run()

    queue.recover.assert_called_once()
