"""Exceptions raised by the task manager."""

from __future__ import annotations


class TaskManagerError(Exception):
    """Base class for task manager errors."""


class TaskRegistrationError(TaskManagerError, ValueError):
    """A task could not be registered (missing name or handler)."""


class UnknownHandlerError(TaskManagerError, KeyError):
    """No task handler is registered under the requested name."""
