from marketplace.services.tasks.background import BackgroundTaskRunner

__all__ = ["BackgroundTaskRunner"]
