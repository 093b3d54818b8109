"""Task lifecycle rules: validation, transition guards and derived predicates.

Everything here is pure. Functions take a task value (``TaskRead`` or any
object exposing the same attributes) and, where the answer depends on the
current time, an optional ``now`` (naive UTC). Nothing here raises for bad
data; malformed due dates are treated as absent.
"""

from datetime import datetime, timedelta
from typing import Iterable, NamedTuple, Optional

from taskflow.clock import Timestamp, now_utc, try_parse_timestamp
from taskflow.errors import TaskError, TaskErrorCode
from taskflow.models.task import TaskState, TaskType
from taskflow.schemas.task import TaskBadge

MAX_TEXT_LENGTH = 500
MAX_REMINDER_MINUTES = 7 * 24 * 60

EDITABLE_STATES = frozenset({TaskState.pending, TaskState.active})
ARMABLE_STATES = EDITABLE_STATES

# action -> (allowed source states, target state)
TRANSITIONS: dict[str, tuple[frozenset[TaskState], TaskState]] = {
    "activate": (frozenset({TaskState.pending}), TaskState.active),
    "complete": (frozenset({TaskState.active}), TaskState.completed),
    "fail": (frozenset({TaskState.active}), TaskState.failed),
    "reactivate": (frozenset({TaskState.completed, TaskState.failed}), TaskState.pending),
}

_PRIORITY_BY_STATE = {
    TaskState.active: 2,
    TaskState.pending: 3,
    TaskState.failed: 4,
    TaskState.completed: 5,
}
UNKNOWN_STATE_PRIORITY = 6
OVERDUE_PRIORITY = 1


class ValidationResult(NamedTuple):
    is_valid: bool
    error: Optional[TaskError] = None


VALID = ValidationResult(True)


def _invalid(code: TaskErrorCode, message: str) -> ValidationResult:
    return ValidationResult(False, TaskError(code, message))


def _state(task) -> Optional[TaskState]:
    raw = getattr(task, "state", None)
    try:
        return TaskState(raw)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Type / state predicates
# ---------------------------------------------------------------------------


def is_one_time_task(task_type) -> bool:
    return task_type == TaskType.one_time


def is_daily_task(task_type) -> bool:
    return task_type == TaskType.daily


def requires_due_date(task_type) -> bool:
    return is_one_time_task(task_type)


def next_state(state, action: str) -> Optional[TaskState]:
    """Target state for ``action`` from ``state``, or None if the edge does not exist."""
    rule = TRANSITIONS.get(action)
    if rule is None:
        return None
    sources, target = rule
    try:
        return target if TaskState(state) in sources else None
    except ValueError:
        return None


def can_transition(task, action: str) -> bool:
    return next_state(getattr(task, "state", None), action) is not None


def can_be_activated(task) -> bool:
    return can_transition(task, "activate")


def can_be_completed(task) -> bool:
    return can_transition(task, "complete")


def can_be_failed(task) -> bool:
    return can_transition(task, "fail")


def can_be_reactivated(task) -> bool:
    return can_transition(task, "reactivate")


def can_be_edited(task) -> bool:
    return _state(task) in EDITABLE_STATES


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_text(text: Optional[str]) -> ValidationResult:
    trimmed = (text or "").strip()
    if not trimmed:
        return _invalid(TaskErrorCode.empty_text, "Task text cannot be empty")
    if len(trimmed) > MAX_TEXT_LENGTH:
        return _invalid(
            TaskErrorCode.text_too_long,
            f"Task text cannot exceed {MAX_TEXT_LENGTH} characters",
        )
    return VALID


def validate_due_date(
    due_at: Timestamp, task_type, now: Optional[datetime] = None
) -> ValidationResult:
    absent = due_at is None or (isinstance(due_at, str) and not due_at.strip())
    if absent:
        if requires_due_date(task_type):
            return _invalid(
                TaskErrorCode.due_date_required, "Due date is required for one-time tasks"
            )
        return VALID

    parsed = try_parse_timestamp(due_at)
    if parsed is None:
        return _invalid(TaskErrorCode.invalid_date_format, "Invalid due date format")

    if parsed <= (now or now_utc()):
        return _invalid(TaskErrorCode.due_date_in_past, "Due date cannot be in the past")
    return VALID


def validate_reminder_minutes(minutes) -> ValidationResult:
    if minutes is None:
        return VALID
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        return _invalid(
            TaskErrorCode.invalid_reminder, "Reminder time must be a whole number of minutes"
        )
    if minutes < 0 or minutes > MAX_REMINDER_MINUTES:
        return _invalid(
            TaskErrorCode.invalid_reminder,
            f"Reminder time must be between 0 and {MAX_REMINDER_MINUTES} minutes",
        )
    return VALID


# ---------------------------------------------------------------------------
# Derived properties
# ---------------------------------------------------------------------------


def is_overdue(task, now: Optional[datetime] = None) -> bool:
    due = try_parse_timestamp(getattr(task, "due_at", None))
    if due is None:
        return False
    return due < (now or now_utc())


def get_task_priority(task, now: Optional[datetime] = None) -> int:
    """Sort key within a state group: lower ranks first."""
    if is_overdue(task, now):
        return OVERDUE_PRIORITY
    return _PRIORITY_BY_STATE.get(_state(task), UNKNOWN_STATE_PRIORITY)


def sort_by_priority(tasks: Iterable, now: Optional[datetime] = None) -> list:
    now = now or now_utc()
    return sorted(tasks, key=lambda t: get_task_priority(t, now))


def get_task_display_badges(task, now: Optional[datetime] = None) -> list[TaskBadge]:
    task_type = getattr(task, "type", None)
    badges = [TaskBadge(variant="success", text=getattr(task_type, "value", str(task_type)))]
    if getattr(task, "is_reactivation", False):
        badges.append(TaskBadge(variant="purple", text="Re-activated"))
    if is_overdue(task, now):
        badges.append(TaskBadge(variant="danger", text="Overdue"))
    return badges


# ---------------------------------------------------------------------------
# Notification predicates
# ---------------------------------------------------------------------------


def _notification(task):
    return getattr(task, "notification", None)


def has_notifications(task) -> bool:
    notification = _notification(task)
    return notification is not None and getattr(notification, "enabled", False) is True


def _notified_at(task):
    return getattr(_notification(task), "notified_at", None)


def is_notification_scheduled(task) -> bool:
    return (
        has_notifications(task)
        and getattr(task, "due_at", None) is not None
        and _notified_at(task) is None
    )


def get_notification_time(task) -> Optional[datetime]:
    """``due_at - reminder_minutes``, or None when there is nothing to remind about."""
    if not has_notifications(task):
        return None
    reminder = getattr(_notification(task), "reminder_minutes", None)
    if reminder is None:
        return None
    due = try_parse_timestamp(getattr(task, "due_at", None))
    if due is None:
        return None
    try:
        return due - timedelta(minutes=reminder)
    except OverflowError:
        return None


def is_notification_due(task, now: Optional[datetime] = None) -> bool:
    when = get_notification_time(task)
    if when is None:
        return False
    return when <= (now or now_utc()) and _notified_at(task) is None


def is_armable(task, now: Optional[datetime] = None) -> bool:
    """Whether the scheduler should hold a timer for ``task`` right now."""
    if _state(task) not in ARMABLE_STATES:
        return False
    if _notified_at(task) is not None:
        return False
    when = get_notification_time(task)
    return when is not None and when > (now or now_utc())


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_time_until_notification(when: datetime, now: Optional[datetime] = None) -> str:
    diff = when - (now or now_utc())
    if diff <= timedelta(0):
        return "Now"
    minutes = int(diff.total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"in {days} day{'s' if days > 1 else ''}"
    if hours > 0:
        rest = minutes % 60
        return f"in {hours}h {rest}m" if rest else f"in {hours}h"
    return f"in {minutes} minute{'s' if minutes != 1 else ''}"


def format_reminder_body(task) -> str:
    due = try_parse_timestamp(getattr(task, "due_at", None))
    text = getattr(task, "text", "")
    if due is None:
        return f'"{text}" is due soon'
    return f'"{text}" is due at {due:%H:%M} UTC'
