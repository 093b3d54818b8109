"""Unit tests for TaskOrchestrator: validation, persistence failures and scheduler sync."""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from taskflow.errors import TaskErrorCode
from taskflow.models.task import TaskState, TaskType
from taskflow.schemas.task import TaskCreate, TaskReactivate, TaskUpdate
from taskflow.services.task_orchestrator import TaskOrchestrator
from tests.fakes import NOW, make_task

FUTURE = "2025-01-15T14:00:00Z"


def _create(**overrides) -> TaskCreate:
    data = {
        "text": "Pay rent",
        "type": TaskType.one_time,
        "due_at": FUTURE,
        "notification": {"enabled": True, "reminder_minutes": 30},
    }
    data.update(overrides)
    return TaskCreate(**data)


# ---- create ----


@pytest.mark.asyncio
async def test_create_persists_and_arms(orchestrator, repo, scheduler):
    result = await orchestrator.create_task(_create(text="  Pay rent  "))

    assert result.success
    assert result.task.text == "Pay rent"
    assert result.task.state == TaskState.pending
    assert result.task.id in repo.tasks
    assert scheduler.armed_ids == {result.task.id}


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides,code,message", [
    ({"text": "   "}, TaskErrorCode.empty_text, "Task text cannot be empty"),
    ({"text": "x" * 501}, TaskErrorCode.text_too_long, "Task text cannot exceed 500 characters"),
    ({"due_at": None}, TaskErrorCode.due_date_required, "Due date is required for one-time tasks"),
    ({"due_at": "soon"}, TaskErrorCode.invalid_date_format, "Invalid due date format"),
    ({"due_at": "9999-12-31T23:00:00-05:00"}, TaskErrorCode.invalid_date_format,
     "Invalid due date format"),
    ({"due_at": "2025-01-15T11:00:00Z"}, TaskErrorCode.due_date_in_past,
     "Due date cannot be in the past"),
    ({"notification": {"enabled": True, "reminder_minutes": 10081}},
     TaskErrorCode.invalid_reminder, "Reminder time must be between 0 and 10080 minutes"),
])
async def test_create_validation_failures(orchestrator, repo, overrides, code, message):
    result = await orchestrator.create_task(_create(**overrides))

    assert not result.success
    assert result.code == code
    assert result.error == message
    assert "create" not in repo.calls


@pytest.mark.asyncio
async def test_create_daily_task_without_due_date(orchestrator, scheduler):
    result = await orchestrator.create_task(_create(type=TaskType.daily, due_at=None))

    assert result.success
    assert result.task.due_at is None
    assert scheduler.armed_ids == frozenset()


@pytest.mark.asyncio
async def test_create_persistence_failure(orchestrator, repo, scheduler):
    repo.fail_on.add("create")

    result = await orchestrator.create_task(_create())

    assert result.code == TaskErrorCode.persistence_failed
    assert result.error == "Failed to create task"
    assert scheduler.armed_ids == frozenset()


@pytest.mark.asyncio
async def test_scheduler_error_does_not_fail_create(repo, clock):
    scheduler = MagicMock()
    scheduler.schedule_one.side_effect = RuntimeError("timer backend down")
    orch = TaskOrchestrator(repo, scheduler, clock=clock)

    result = await orch.create_task(_create())

    assert result.success
    assert result.task.id in repo.tasks


# ---- update ----


@pytest.mark.asyncio
async def test_update_rearms_reminder(orchestrator, repo, scheduler):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])

    result = await orchestrator.update_task("1", TaskUpdate(due_at="2025-01-15T18:00:00Z"))

    assert result.success
    assert scheduler.armed_timer("1").fire_at == NOW + timedelta(hours=5, minutes=30)


@pytest.mark.asyncio
async def test_update_text_only(orchestrator, repo):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))

    result = await orchestrator.update_task("1", TaskUpdate(text=" Pay rent today "))

    assert result.task.text == "Pay rent today"
    assert result.task.due_at == NOW + timedelta(hours=2)


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [TaskState.completed, TaskState.failed])
async def test_update_rejected_for_finished_task(orchestrator, repo, state):
    repo.add(make_task("1", state=state))

    result = await orchestrator.update_task("1", TaskUpdate(text="New"))

    assert result.code == TaskErrorCode.not_editable
    assert result.error == "Task cannot be edited in its current state"
    assert "update" not in repo.calls


@pytest.mark.asyncio
async def test_update_validates_due_date_against_task_type(orchestrator, repo):
    repo.add(make_task("1", task_type=TaskType.daily))

    result = await orchestrator.update_task("1", TaskUpdate(due_at="2020-01-01T00:00:00Z"))

    assert result.code == TaskErrorCode.due_date_in_past


@pytest.mark.asyncio
async def test_update_missing_task(orchestrator):
    result = await orchestrator.update_task("404", TaskUpdate(text="x"))
    assert result.code == TaskErrorCode.not_found
    assert result.error == "Task not found"


@pytest.mark.asyncio
async def test_update_persistence_failure_keeps_timer(orchestrator, repo, scheduler):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])
    repo.fail_on.add("update")

    result = await orchestrator.update_task("1", TaskUpdate(text="x"))

    assert result.error == "Failed to update task"
    assert scheduler.armed_timer("1").fire_at == NOW + timedelta(minutes=90)


@pytest.mark.asyncio
async def test_load_failure_is_reported(orchestrator, repo):
    repo.fail_on.add("find_by_id")

    result = await orchestrator.update_task("1", TaskUpdate(text="x"))

    assert result.code == TaskErrorCode.persistence_failed
    assert result.error == "Failed to load task"


# ---- delete ----


@pytest.mark.asyncio
async def test_delete_clears_timer_before_delete(orchestrator, repo, scheduler, presenter):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])

    result = await orchestrator.delete_task("1")

    assert result.success
    assert result.task is None
    assert "1" not in repo.tasks
    assert presenter.cancelled == ["1"]
    assert scheduler.armed_ids == frozenset()


@pytest.mark.asyncio
async def test_delete_failure_rearms(orchestrator, repo, scheduler):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])
    repo.fail_on.add("delete")

    result = await orchestrator.delete_task("1")

    assert result.error == "Failed to delete task"
    assert scheduler.armed_ids == {"1"}


@pytest.mark.asyncio
async def test_delete_missing_task(orchestrator):
    result = await orchestrator.delete_task("404")
    assert result.code == TaskErrorCode.not_found


# ---- transitions ----


@pytest.mark.asyncio
async def test_activate_then_complete(orchestrator, repo, scheduler, clock):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])

    activated = await orchestrator.activate_task("1")
    assert activated.task.state == TaskState.active
    assert activated.task.activated_at == NOW
    assert scheduler.armed_ids == {"1"}

    clock.advance(timedelta(minutes=5))
    completed = await orchestrator.complete_task("1")
    assert completed.task.state == TaskState.completed
    assert completed.task.completed_at == NOW + timedelta(minutes=5)
    assert scheduler.armed_ids == frozenset()


@pytest.mark.asyncio
async def test_fail_clears_timer(orchestrator, repo, scheduler):
    repo.add(make_task("1", state=TaskState.active, due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])

    result = await orchestrator.fail_task("1")

    assert result.task.state == TaskState.failed
    assert result.task.failed_at == NOW
    assert scheduler.armed_ids == frozenset()


@pytest.mark.asyncio
@pytest.mark.parametrize("state,action,message", [
    (TaskState.active, "activate_task", "Task cannot be activated in its current state"),
    (TaskState.pending, "complete_task", "Task cannot be completed in its current state"),
    (TaskState.pending, "fail_task", "Task cannot be failed in its current state"),
    (TaskState.completed, "fail_task", "Task cannot be failed in its current state"),
    (TaskState.active, "reactivate_task", "Task cannot be reactivated in its current state"),
])
async def test_invalid_transitions(orchestrator, repo, state, action, message):
    repo.add(make_task("1", state=state))

    result = await getattr(orchestrator, action)("1")

    assert result.code == TaskErrorCode.invalid_transition
    assert result.error == message
    assert repo.tasks["1"].state == state


@pytest.mark.asyncio
@pytest.mark.parametrize("action,repo_method,label", [
    ("activate_task", "activate", "Failed to activate task"),
    ("complete_task", "complete", "Failed to complete task"),
    ("fail_task", "fail", "Failed to mark task as failed"),
])
async def test_transition_persistence_failure(
    orchestrator, repo, scheduler, action, repo_method, label
):
    state = TaskState.pending if action == "activate_task" else TaskState.active
    repo.add(make_task("1", state=state, due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])
    repo.fail_on.add(repo_method)

    result = await getattr(orchestrator, action)("1")

    assert result.error == label
    assert scheduler.armed_ids == {"1"}


@pytest.mark.asyncio
async def test_transition_missing_task(orchestrator):
    result = await orchestrator.activate_task("404")
    assert result.code == TaskErrorCode.not_found


# ---- reactivate ----


@pytest.mark.asyncio
async def test_reactivate_with_new_due_date(orchestrator, repo, scheduler):
    yesterday = NOW - timedelta(days=1)
    repo.add(make_task("1", state=TaskState.completed, due_at=yesterday, notified_at=yesterday))

    result = await orchestrator.reactivate_task(
        "1", TaskReactivate(new_due_at="2025-01-16T09:00:00Z")
    )

    clone = result.task
    assert result.success
    assert clone.id != "1"
    assert clone.state == TaskState.pending
    assert clone.is_reactivation is True
    assert clone.original_id == "1"
    assert clone.notification.notified_at is None
    assert repo.tasks["1"].state == TaskState.completed
    assert scheduler.armed_ids == {clone.id}


@pytest.mark.asyncio
async def test_reactivate_keeps_due_date_when_not_given(orchestrator, repo):
    due = NOW + timedelta(days=2)
    repo.add(make_task("1", state=TaskState.failed, due_at=due))

    result = await orchestrator.reactivate_task("1")

    assert result.task.due_at == due


@pytest.mark.asyncio
async def test_reactivate_rejects_past_due_date(orchestrator, repo):
    repo.add(make_task("1", state=TaskState.failed))

    result = await orchestrator.reactivate_task(
        "1", TaskReactivate(new_due_at="2025-01-01T00:00:00Z")
    )

    assert result.code == TaskErrorCode.due_date_in_past
    assert "reactivate" not in repo.calls


@pytest.mark.asyncio
async def test_reactivate_persistence_failure(orchestrator, repo):
    repo.add(make_task("1", state=TaskState.failed))
    repo.fail_on.add("reactivate")

    result = await orchestrator.reactivate_task("1")

    assert result.error == "Failed to reactivate task"


# ---- bulk delete ----


@pytest.mark.asyncio
async def test_delete_all_completed(orchestrator, repo, presenter):
    repo.add(make_task("1", state=TaskState.completed))
    repo.add(make_task("2", state=TaskState.completed))
    repo.add(make_task("3", state=TaskState.pending))

    result = await orchestrator.delete_all_completed()

    assert result.success
    assert set(repo.tasks) == {"3"}


@pytest.mark.asyncio
async def test_delete_all_failed(orchestrator, repo):
    repo.add(make_task("1", state=TaskState.failed))
    repo.add(make_task("2", state=TaskState.completed))

    result = await orchestrator.delete_all_failed()

    assert result.success
    assert set(repo.tasks) == {"2"}


@pytest.mark.asyncio
async def test_bulk_delete_failure(orchestrator, repo):
    repo.add(make_task("1", state=TaskState.failed))
    repo.fail_on.add("delete_failed")

    result = await orchestrator.delete_all_failed()

    assert result.code == TaskErrorCode.persistence_failed
    assert result.error == "Failed to delete failed tasks"
    assert "1" in repo.tasks


@pytest.mark.asyncio
async def test_bulk_delete_load_failure_leaves_timers(orchestrator, repo, scheduler):
    repo.add(make_task("1", state=TaskState.active, due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])
    repo.fail_on.add("find_by_state")

    result = await orchestrator.delete_all_completed()

    assert result.error == "Failed to delete completed tasks"
    assert "delete_completed" not in repo.calls
    assert scheduler.armed_ids == {"1"}


# ---- queries ----


@pytest.mark.asyncio
async def test_get_all_tasks_sorted_by_priority(orchestrator, repo):
    repo.add(make_task("done", state=TaskState.completed))
    repo.add(make_task("todo", state=TaskState.pending))
    repo.add(make_task("doing", state=TaskState.active))
    repo.add(make_task("late", state=TaskState.pending, due_at=NOW - timedelta(hours=1)))

    tasks = await orchestrator.get_all_tasks()

    assert [t.id for t in tasks] == ["late", "doing", "todo", "done"]


@pytest.mark.asyncio
async def test_get_tasks_by_state(orchestrator, repo):
    repo.add(make_task("1", state=TaskState.failed))
    repo.add(make_task("2", state=TaskState.pending))

    tasks = await orchestrator.get_tasks_by_state(TaskState.failed)

    assert [t.id for t in tasks] == ["1"]
    assert "find_by_state" in repo.calls
    assert "find_all" not in repo.calls


@pytest.mark.asyncio
async def test_get_task_badges(orchestrator, repo):
    repo.add(make_task("1", is_reactivation=True, due_at=NOW + timedelta(hours=1)))

    badges = await orchestrator.get_task_badges("1")

    assert [b.text for b in badges] == ["one-time", "Re-activated"]
    assert await orchestrator.get_task_badges("404") is None


@pytest.mark.asyncio
async def test_get_notification_status(orchestrator, repo, scheduler):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))
    scheduler.schedule_one(repo.tasks["1"])

    assert orchestrator.get_notification_status("1").is_scheduled
    assert not orchestrator.get_notification_status("2").is_scheduled


# ---- reminders ----


@pytest.mark.asyncio
async def test_load_and_schedule(orchestrator, repo, scheduler):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))
    repo.add(make_task("2", due_at=NOW + timedelta(hours=2), state=TaskState.completed))

    assert await orchestrator.load_and_schedule() == 1
    assert scheduler.armed_ids == {"1"}


@pytest.mark.asyncio
async def test_load_and_schedule_failure(orchestrator, repo):
    repo.fail_on.add("find_all")
    assert await orchestrator.load_and_schedule() == 0


@pytest.mark.asyncio
async def test_record_notification(orchestrator, repo, clock):
    repo.add(make_task("1", due_at=NOW + timedelta(hours=2)))

    result = await orchestrator.record_notification("1")

    assert result.task.notification.notified_at == clock.now


@pytest.mark.asyncio
async def test_record_notification_failure(orchestrator, repo):
    repo.add(make_task("1"))
    repo.fail_on.add("mark_notified")

    result = await orchestrator.record_notification("1")

    assert result.error == "Failed to record notification"
