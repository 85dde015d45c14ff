"""Scheduler subsystem: recurrence, HTTP execution, registry, and service."""

from cronx.scheduler.exceptions import InvalidExpression, InvalidTimezone, ShutdownInProgress
from cronx.scheduler.models import ExecutionResult, HttpTemplate, Job
from cronx.scheduler.service import SchedulerService, ServiceState
from cronx.scheduler.store import ExecutionStore, JsonStore

__all__ = [
    "ExecutionResult",
    "ExecutionStore",
    "HttpTemplate",
    "InvalidExpression",
    "InvalidTimezone",
    "Job",
    "JsonStore",
    "SchedulerService",
    "ServiceState",
    "ShutdownInProgress",
]
