"""
Sync of a single internal user against the directory.

A user that is present in the directory has its attributes and roles
upserted. A user that has left the directory is disabled, except for the
configured super administrator, whose sync is refused.
"""

import logging
from typing import Optional

from ldap_reconcile.errors import RefusedOperation, UserNotFound
from ldap_reconcile.logging_setup import security_logger
from ldap_reconcile.models import ExternalUserRecord, SyncDecision, SyncResult
from ldap_reconcile.stores.base import UserStore

logger = logging.getLogger(__name__)


class UserSyncer:
    """Decides and applies the sync action for one user."""

    def __init__(self, directory, user_store: UserStore, admin_user: str, allow_sign_up: bool):
        """
        Args:
            directory: Directory client exposing user(username) -> (ExternalUserRecord, ServerConfig)
            user_store: Store holding internal users
            admin_user: Login of the super administrator
            allow_sign_up: Whether upserts may create users
        """
        self.directory = directory
        self.user_store = user_store
        self.admin_user = admin_user
        self.allow_sign_up = allow_sign_up

    def decide(self, login: str, lookup_error: Optional[Exception] = None) -> SyncDecision:
        """
        Map a directory lookup outcome onto a sync decision.

        Args:
            login: Login of the internal user
            lookup_error: Error raised by the directory lookup, if any

        Raises:
            The lookup error itself when it is anything but UserNotFound
        """
        if lookup_error is None:
            return SyncDecision.UPSERT
        if not isinstance(lookup_error, UserNotFound):
            raise lookup_error
        if login == self.admin_user:
            return SyncDecision.REFUSE
        return SyncDecision.DISABLE

    def sync(self, user_id: int) -> SyncResult:
        """
        Sync the user with the given internal id.

        Returns:
            SyncResult describing the applied decision

        Raises:
            NotFoundError: If the internal user does not exist
            RefusedOperation: If the super administrator would be disabled
            UpstreamError: If the directory or store cannot be reached
        """
        user = self.user_store.get_by_id(user_id)
        login = user.login

        external_user: Optional[ExternalUserRecord] = None
        lookup_error: Optional[Exception] = None
        try:
            external_user, _ = self.directory.user(login)
        except UserNotFound as e:
            lookup_error = e

        decision = self.decide(login, lookup_error)

        if decision is SyncDecision.REFUSE:
            message = f'Refusing to sync super admin "{login}" - it would be disabled'
            logger.error(message)
            security_logger.log_sync_refused(login, "absent from directory")
            raise RefusedOperation(message, lookup_error)

        if decision is SyncDecision.DISABLE:
            logger.info(f"User {login} not found in directory, disabling")
            self.user_store.disable(login)
            security_logger.log_user_disabled(login)
            return SyncResult(decision, login, "User disabled without any updates in the information")

        self.user_store.upsert(external_user, signup_allowed=self.allow_sign_up)
        security_logger.log_user_synced(login, self.allow_sign_up)
        logger.info(f"User {login} synced from directory")
        return SyncResult(decision, login, "User synced")
