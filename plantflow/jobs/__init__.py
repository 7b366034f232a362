# Jobs Package - Scheduled background tasks
from .outbox_dispatcher import OutboxDispatcher, start_scheduler, stop_scheduler

__all__ = ["OutboxDispatcher", "start_scheduler", "stop_scheduler"]
