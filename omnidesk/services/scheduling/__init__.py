"""Timed job scheduling."""

from omnidesk.services.scheduling.scheduler import Clock, ScheduledJob, Scheduler, SystemClock

__all__ = ["Clock", "ScheduledJob", "Scheduler", "SystemClock"]
