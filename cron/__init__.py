from cron.tasks import reconcile_task

__all__ = ["reconcile_task"]
