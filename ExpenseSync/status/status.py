"""Status definitions and exceptions for ExpenseSync.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., StorageException) for error handling in services
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    SettingsNotFound = enum.auto()
    SettingsInvalid = enum.auto()

    # Input validation
    ExpenseInvalid = enum.auto()
    CategoryInvalid = enum.auto()
    CategoryExists = enum.auto()

    # Local persistence
    StorageFailed = enum.auto()
    BackupInvalid = enum.auto()

    # Authentication status
    NotAuthenticated = enum.auto()

    # Remote service status
    ServiceUnavailable = enum.auto()
    RequestInvalid = enum.auto()
    NotFound = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.SettingsNotFound: 'Could not find the settings file.',
    Status.SettingsInvalid: 'The settings file seems to be incomplete, or contains invalid values.',

    Status.ExpenseInvalid: 'The expense is invalid.',
    Status.CategoryInvalid: 'The category is invalid.',
    Status.CategoryExists: 'A category with this name already exists.',

    Status.StorageFailed: 'Could not save data on this device.',
    Status.BackupInvalid: 'The backup could not be created or restored.',

    Status.NotAuthenticated: 'Authentication error. Please sign in again.',

    Status.ServiceUnavailable: 'The expense service is unavailable. Please check your connection.',
    Status.RequestInvalid: 'The expense service rejected the request.',
    Status.NotFound: 'The requested record was not found.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in ExpenseSync.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.detail = message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..core.signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class SettingsNotFoundException(BaseStatusException):
    """Exception raised when the settings file cannot be found."""
    status = Status.SettingsNotFound


class SettingsInvalidException(BaseStatusException):
    """Exception raised when the settings file is invalid or malformed."""
    status = Status.SettingsInvalid


class ExpenseInvalidException(BaseStatusException):
    """Exception raised when expense input fails validation."""
    status = Status.ExpenseInvalid


class CategoryInvalidException(BaseStatusException):
    """Exception raised when category input fails validation."""
    status = Status.CategoryInvalid


class CategoryExistsException(BaseStatusException):
    """Exception raised when a category name is already taken."""
    status = Status.CategoryExists


class StorageException(BaseStatusException):
    """Exception raised when the local store cannot be read or written."""
    status = Status.StorageFailed


class BackupInvalidException(BaseStatusException):
    """Exception raised when a backup file cannot be written or restored."""
    status = Status.BackupInvalid


class NotAuthenticatedException(BaseStatusException):
    """Exception raised when the user is not authenticated or the token was rejected."""
    status = Status.NotAuthenticated


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when the remote expense service cannot be reached."""
    status = Status.ServiceUnavailable


class RequestInvalidException(BaseStatusException):
    """Exception raised when the remote service rejects a request as malformed."""
    status = Status.RequestInvalid


class NotFoundException(BaseStatusException):
    """Exception raised when the remote service does not know the requested record."""
    status = Status.NotFound
