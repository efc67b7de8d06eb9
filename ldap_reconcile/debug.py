"""
Debug and administration operations for the LDAP integration.

Shows the health of the configured directory servers, illustrates how a
directory user would be mapped onto organizations, roles and teams, syncs a
single user, and reloads the LDAP configuration.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ldap_reconcile.config import LDAPConfigProvider
from ldap_reconcile.errors import ConfigurationError, NotFoundError, OrganizationNotFound, UserNotFound, ValidationError
from ldap_reconcile.ldap_client import MultiLDAP
from ldap_reconcile.logging_setup import security_logger
from ldap_reconcile.models import LDAPAttribute, LDAPConfig, LDAPUserView, ServerStatus, SyncResult
from ldap_reconcile.reconcile import compute_org_roles, resolve_org_names, split_display_name
from ldap_reconcile.stores.base import OrgStore, TeamServiceUnavailable, TeamStore, UserStore
from ldap_reconcile.sync import UserSyncer

logger = logging.getLogger(__name__)


class LDAPDebugService:
    """Entry point for the debug/administration operations."""

    def __init__(self, config_provider: LDAPConfigProvider, org_store: OrgStore, user_store: UserStore,
                 team_store: Optional[TeamStore] = None, directory_factory: Optional[Callable] = None,
                 error_handling: Optional[Dict[str, Any]] = None):
        """
        Args:
            config_provider: Source of the LDAP configuration
            org_store: Organization lookup
            user_store: Internal user store
            team_store: Team lookup; None when no team sync is configured
            directory_factory: Builds a directory client from a list of ServerConfig
            error_handling: Retry settings handed to the default directory client
        """
        self.config_provider = config_provider
        self.org_store = org_store
        self.user_store = user_store
        self.team_store = team_store
        self.directory_factory = directory_factory or (lambda servers: MultiLDAP(servers, error_handling))

    def _get_config(self) -> LDAPConfig:
        try:
            config = self.config_provider.get()
        except ConfigurationError as e:
            raise ConfigurationError(
                "Failed to obtain the LDAP configuration. Please verify the configuration and try again.", e)

        if not config.enabled:
            raise ConfigurationError("LDAP is not enabled")
        return config

    def reload_config(self) -> LDAPConfig:
        """
        Reload the LDAP configuration from disk.

        Raises:
            ConfigurationError: If LDAP is disabled or the new file is invalid;
                the previous configuration stays in effect
        """
        try:
            current = self.config_provider.get()
        except ConfigurationError as e:
            # An unreadable file can still be fixed by a reload
            logger.warning(f"Current LDAP configuration unavailable before reload: {e.message}")
            current = None
        if current is not None and not current.enabled:
            raise ConfigurationError("LDAP is not enabled")

        try:
            config = self.config_provider.reload()
        except ConfigurationError as e:
            security_logger.log_configuration_reload(self.config_provider.config_path, False)
            raise ConfigurationError("Failed to reload LDAP config.", e)

        security_logger.log_configuration_reload(self.config_provider.config_path, True)
        if not config.enabled:
            raise ConfigurationError("LDAP is not enabled")
        return config

    def get_status(self) -> List[ServerStatus]:
        """Health of every configured directory server."""
        config = self._get_config()
        directory = self.directory_factory(config.servers)
        statuses = directory.ping()
        logger.info(f"LDAP status: {sum(1 for s in statuses if s.available)}/{len(statuses)} servers available")
        return statuses

    def get_user(self, username: str) -> LDAPUserView:
        """
        Show how a directory user maps onto organizations, roles and teams.

        Raises:
            ValidationError: If username is empty
            NotFoundError: If the user or a mapped organization does not exist
        """
        config = self._get_config()

        if not username:
            raise ValidationError("Validation error. You must specify an username")

        directory = self.directory_factory(config.servers)
        try:
            user, server_config = directory.user(username)
        except UserNotFound as e:
            raise NotFoundError("No user was found on the LDAP server(s)", e)

        logger.debug(f"User found: {user}")

        name, surname = split_display_name(user.name)
        attributes = server_config.attributes
        view = LDAPUserView(
            name=LDAPAttribute(attributes.name, name),
            surname=LDAPAttribute(attributes.surname, surname),
            email=LDAPAttribute(attributes.email, user.email),
            login=LDAPAttribute(attributes.username, user.login),
            is_admin=user.is_admin,
            is_disabled=user.is_disabled
        )

        view.org_roles = compute_org_roles(user, server_config.groups)
        logger.debug(f"Mapping org roles: {view.org_roles}")

        try:
            resolve_org_names(view.org_roles, self.org_store)
        except OrganizationNotFound as e:
            raise NotFoundError("An organization was not found - Please verify your LDAP configuration", e)

        view.teams = self._get_teams(user.groups)
        return view

    def _get_teams(self, groups: List[str]):
        if self.team_store is None:
            logger.debug("No teams service configured")
            return []
        try:
            return self.team_store.teams_for_directory_groups(groups)
        except TeamServiceUnavailable as e:
            logger.debug(f"No teams service configured: {e}")
            return []

    def sync_user(self, user_id: int) -> SyncResult:
        """Sync one internal user against the directory."""
        config = self._get_config()
        syncer = UserSyncer(
            directory=self.directory_factory(config.servers),
            user_store=self.user_store,
            admin_user=config.admin_user,
            allow_sign_up=config.allow_sign_up
        )
        return syncer.sync(user_id)
