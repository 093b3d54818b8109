from taskflow.crud.tasks import crud_task

__all__ = [
    "crud_task",
]
