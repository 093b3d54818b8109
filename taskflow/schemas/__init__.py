from taskflow.schemas.task import (
    NotificationSettings,
    NotificationStatus,
    TaskActionResult,
    TaskBadge,
    TaskCreate,
    TaskNotification,
    TaskRead,
    TaskReactivate,
    TaskUpdate,
)
