"""
Error taxonomy for LDAP Reconcile.

Every failure raised by the reconciliation and sync logic is a subclass of
ReconcileError and carries an HTTP-equivalent status code so that callers
(CLI, web handlers) can translate it into a user-visible response.
"""

from typing import Optional


class ReconcileError(Exception):
    """Base exception for all reconciliation errors."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigurationError(ReconcileError):
    """Raised when LDAP is disabled or the configuration is invalid or missing."""

    status_code = 400


class ValidationError(ReconcileError):
    """Raised when request input is invalid."""

    status_code = 400


class NotFoundError(ReconcileError):
    """Raised when a user or organization does not exist."""

    status_code = 404


class UserNotFound(NotFoundError):
    """Raised when a user is absent from every configured directory server."""

    def __init__(self, username: str):
        super().__init__(f"Unable to find user '{username}' in the directory")
        self.username = username


class OrganizationNotFound(NotFoundError):
    """Raised when a mapping rule references an organization that does not exist."""

    def __init__(self, org_id: int):
        super().__init__(f"Unable to find organization with ID '{org_id}'")
        self.org_id = org_id


class UpstreamError(ReconcileError):
    """Raised when the directory or a store is unreachable or misbehaves."""

    status_code = 500


class RefusedOperation(ReconcileError):
    """Raised when an operation is refused to protect the super administrator."""

    status_code = 400
