import enum
from typing import NamedTuple


class TaskErrorCode(str, enum.Enum):
    empty_text = "empty_text"
    text_too_long = "text_too_long"
    due_date_required = "due_date_required"
    invalid_date_format = "invalid_date_format"
    due_date_in_past = "due_date_in_past"
    invalid_reminder = "invalid_reminder"
    not_found = "not_found"
    invalid_transition = "invalid_transition"
    not_editable = "not_editable"
    persistence_failed = "persistence_failed"


class TaskError(NamedTuple):
    code: TaskErrorCode
    message: str


class TaskNotFoundError(LookupError):
    """Raised by the repository when an id does not resolve to a task."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id
