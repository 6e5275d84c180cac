"""Exceptions raised by the automation rule engine."""


class AutomationError(Exception):
    """Base exception for automation engine errors"""
    pass


class ValidationError(AutomationError):
    """Raised when rule input is malformed at create/update time"""
    pass


class ResourceFetchError(AutomationError):
    """Raised when the triggering issue or pull request cannot be fetched"""

    def __init__(self, message: str, owner: str = "", repo: str = "", number: int | None = None):
        super().__init__(message)
        self.owner = owner
        self.repo = repo
        self.number = number


class ActionExecutionError(AutomationError):
    """Raised inside an action handler; captured by the executor"""
    pass


class StorageError(AutomationError):
    """Raised when the rule persistence medium cannot be read or written"""
    pass
