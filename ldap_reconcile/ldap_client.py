"""
LDAP client for looking up users and checking the health of directory servers.

This module connects to one or more LDAP servers, finds a single user by
username, resolves the user's group memberships and maps them onto
organization roles using the configured group mappings.
"""

import logging
import ssl
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Any, Optional, Tuple
from ldap3 import Server, Connection, SUBTREE, Tls
from ldap3.core.exceptions import LDAPException, LDAPBindError
from ldap3.utils.conv import escape_filter_chars

from ldap_reconcile.errors import UpstreamError, UserNotFound
from ldap_reconcile.models import ExternalUserRecord, ServerConfig, ServerStatus

logger = logging.getLogger(__name__)

WILDCARD_GROUP = '*'


class LDAPConnectionError(UpstreamError):
    """Raised when LDAP connection fails."""
    pass


class LDAPQueryError(UpstreamError):
    """Raised when LDAP query fails."""
    pass


class LDAPServerClient:
    """
    Client for a single LDAP server.

    Supports group resolution through either a group search filter or the
    user's memberOf attribute.
    """

    def __init__(self, server_config: ServerConfig, error_handling: Optional[Dict[str, Any]] = None):
        """
        Initialize LDAP client with configuration.

        Args:
            server_config: Settings of the server to talk to
            error_handling: Retry settings (max_retries, retry_wait_seconds)
        """
        self.config = server_config
        self.attributes = server_config.attributes

        error_config = error_handling or {}
        self.max_retries = error_config.get('max_retries', 3)
        self.retry_wait = error_config.get('retry_wait_seconds', 5)

        self.server = None
        self.connection = None
        self._connected = False

    @property
    def address(self) -> str:
        return f"{self.config.host}:{self.config.port}"

    def connect(self, max_retries: Optional[int] = None, retry_wait: Optional[int] = None) -> bool:
        """
        Establish connection to LDAP server with retry logic.

        Args:
            max_retries: Maximum number of connection attempts (uses config default if None)
            retry_wait: Seconds to wait between retries (uses config default if None)

        Returns:
            True if connection successful

        Raises:
            LDAPConnectionError: If connection fails after all retries
        """
        max_retries = max(1, max_retries or self.max_retries or 1)
        retry_wait = self.retry_wait if retry_wait is None else retry_wait

        try:
            tls_config = self._create_tls_config()
            self.server = Server(
                self.config.host,
                port=self.config.port,
                use_ssl=self.config.use_ssl,
                tls=tls_config,
                connect_timeout=self.config.timeout
            )
            logger.debug(f"Created LDAP server object for {self.address} "
                         f"(SSL: {self.config.use_ssl}, StartTLS: {self.config.start_tls})")
        except LDAPConnectionError:
            raise
        except Exception as e:
            raise LDAPConnectionError(f"Failed to create LDAP server {self.address}: {e}", e)

        last_exception = None
        for attempt in range(max_retries):
            try:
                self.connection = Connection(
                    self.server,
                    user=self.config.bind_dn or None,
                    password=self.config.bind_password or None,
                    auto_bind=False,
                    receive_timeout=self.config.timeout
                )

                # open() raises LDAPSocketOpenError when the server is unreachable
                self.connection.open()

                if self.config.start_tls and not self.config.use_ssl:
                    if not self.connection.start_tls():
                        raise LDAPException(f"Failed to start TLS: {self.connection.result}")
                    logger.debug("StartTLS negotiation successful")

                if not self.connection.bind():
                    raise LDAPBindError(f"Bind failed: {self.connection.result}")

                self._connected = True
                logger.info(f"Connected and bound to LDAP server {self.address}")
                return True

            except LDAPException as e:
                last_exception = e
                logger.warning(f"LDAP connection attempt {attempt + 1}/{max_retries} to {self.address} failed: {e}")
                self._drop_connection()
                if attempt < max_retries - 1:
                    time.sleep(retry_wait)

        error_msg = f"Failed to connect to LDAP server {self.address} after {max_retries} attempts"
        if last_exception:
            error_msg += f": {last_exception}"
        raise LDAPConnectionError(error_msg, last_exception)

    def _create_tls_config(self) -> Optional[Tls]:
        """
        Create TLS configuration for LDAP connection.

        Returns:
            Tls configuration object or None if not needed
        """
        if not (self.config.use_ssl or self.config.start_tls):
            return None

        tls_config = {}

        if self.config.ssl_skip_verify:
            tls_config['validate'] = ssl.CERT_NONE
            logger.warning(f"SSL certificate verification disabled for {self.address}")
        else:
            tls_config['validate'] = ssl.CERT_REQUIRED

        if self.config.root_ca_cert:
            tls_config['ca_certs_file'] = self.config.root_ca_cert
            logger.debug(f"Using CA certificate file: {self.config.root_ca_cert}")

        if self.config.client_cert and self.config.client_key:
            tls_config['local_certificate_file'] = self.config.client_cert
            tls_config['local_private_key_file'] = self.config.client_key
            logger.debug("Client certificate configured for mutual TLS")

        try:
            return Tls(**tls_config)
        except Exception as e:
            raise LDAPConnectionError(f"Failed to create TLS configuration: {e}", e)

    def _drop_connection(self):
        if self.connection:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logger.debug(f"Ignoring unbind failure on {self.address}: {e}")
            self.connection = None

    def disconnect(self):
        """Close LDAP connection."""
        if self.connection and self._connected:
            try:
                self.connection.unbind()
                logger.debug(f"LDAP connection to {self.address} closed")
            except LDAPException as e:
                logger.warning(f"Error closing LDAP connection: {e}")
            finally:
                self._connected = False
                self.connection = None

    def ping(self) -> ServerStatus:
        """
        Check whether the server accepts a connection and bind.

        Returns:
            ServerStatus; failures are reported in it instead of raised
        """
        status = ServerStatus(host=self.config.host, port=self.config.port, available=False)
        try:
            self.connect(max_retries=1)
            status.available = True
        except LDAPConnectionError as e:
            status.error = str(e)
            logger.debug(f"Ping to {self.address} failed: {e}")
        finally:
            self.disconnect()
        return status

    def find_user(self, username: str) -> Optional[ExternalUserRecord]:
        """
        Look up a single user by username.

        Args:
            username: Login to search for

        Returns:
            ExternalUserRecord, or None if the user is not on this server

        Raises:
            LDAPQueryError: If the search fails
        """
        if not self._connected:
            raise LDAPQueryError("Not connected to LDAP server")

        search_filter = self.config.search_filter.replace('%s', escape_filter_chars(username))
        search_attributes = self.attributes.search_attributes()

        try:
            for base_dn in self.config.search_base_dns:
                logger.debug(f"Searching {base_dn} with filter {search_filter}")
                self._search(base_dn, search_filter, search_attributes)
                if self.connection.entries:
                    entry = self.connection.entries[0]
                    if len(self.connection.entries) > 1:
                        logger.warning(f"Search for {username} in {base_dn} returned "
                                       f"{len(self.connection.entries)} entries, using {entry.entry_dn}")
                    return self._build_user(entry, username)
        except LDAPException as e:
            raise LDAPQueryError(f"LDAP user search failed on {self.address}: {e}", e)

        logger.debug(f"User {username} not found on {self.address}")
        return None

    def _search(self, base_dn: str, search_filter: str, attributes: List[str]):
        """
        Run a subtree search and check its result code.

        ldap3 reports server-side failures (access rights, busy, size limits,
        bad base DN) through the result instead of raising, and returns False
        for an empty result as well. Only result code 0 counts as a completed
        search.

        Raises:
            LDAPQueryError: If the server did not complete the search
        """
        self.connection.search(
            search_base=base_dn,
            search_filter=search_filter,
            search_scope=SUBTREE,
            attributes=attributes
        )
        result = self.connection.result or {}
        if result.get('result') != 0:
            raise LDAPQueryError(f"LDAP search in {base_dn} failed on {self.address}: "
                                 f"{result.get('description', 'unknown error')} ({result.get('message', '')})")

    def _build_user(self, entry, username: str) -> ExternalUserRecord:
        """Map a directory entry onto an ExternalUserRecord."""
        values = _entry_values(entry)
        dn = str(entry.entry_dn)

        given_name = _first(values, self.attributes.name)
        surname = _first(values, self.attributes.surname)
        login = _first(values, self.attributes.username) or username

        user = ExternalUserRecord(
            login=login,
            name=f"{given_name} {surname}".strip(),
            email=_first(values, self.attributes.email),
            auth_id=dn,
            groups=self._get_groups(values, username)
        )
        self._apply_group_mappings(user)
        return user

    def _get_groups(self, values: Dict[str, List[Any]], username: str) -> List[str]:
        """Resolve group DNs via group search, falling back to the memberOf attribute."""
        if not self.config.group_search_filter:
            return [str(value) for value in _all(values, self.attributes.member_of)]

        filter_value = username
        user_attribute = self.config.group_search_filter_user_attribute
        if user_attribute:
            filter_value = _first(values, user_attribute) or username
        group_filter = self.config.group_search_filter.replace('%s', escape_filter_chars(filter_value))

        groups = []
        for base_dn in self.config.group_search_base_dns:
            logger.debug(f"Searching groups in {base_dn} with filter {group_filter}")
            self._search(base_dn, group_filter, [])
            for group_entry in self.connection.entries:
                group_dn = str(group_entry.entry_dn)
                if group_dn not in groups:
                    groups.append(group_dn)
        return groups

    def _apply_group_mappings(self, user: ExternalUserRecord):
        """
        Assign organization roles from group mappings.

        The first matching mapping for an organization wins, so a user never
        carries more than one role per organization.
        """
        for rule in self.config.groups:
            if not is_member_of(user.groups, rule.group_dn):
                continue
            if rule.org_id in user.org_roles:
                continue
            user.org_roles[rule.org_id] = rule.org_role
            if rule.is_admin is not None:
                user.is_admin = rule.is_admin

        # Users outside every mapped group lose access
        if self.config.groups and not user.org_roles:
            user.is_disabled = True

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()


class MultiLDAP:
    """Directory client spanning every configured LDAP server."""

    def __init__(self, servers: List[ServerConfig], error_handling: Optional[Dict[str, Any]] = None):
        self.servers = servers
        self.error_handling = error_handling or {}

    def _client(self, server_config: ServerConfig) -> LDAPServerClient:
        return LDAPServerClient(server_config, self.error_handling)

    def ping(self) -> List[ServerStatus]:
        """
        Health-check every server in parallel.

        Returns:
            One ServerStatus per server, in configured order
        """
        if not self.servers:
            return []
        with ThreadPoolExecutor(max_workers=len(self.servers)) as executor:
            return list(executor.map(lambda cfg: self._client(cfg).ping(), self.servers))

    def user(self, username: str) -> Tuple[ExternalUserRecord, ServerConfig]:
        """
        Find a user on the first server that knows it.

        Returns:
            Tuple of the user record and the config of the server it came from

        Raises:
            UserNotFound: If no server has the user
            LDAPConnectionError, LDAPQueryError: If a server cannot be queried
        """
        for server_config in self.servers:
            with self._client(server_config) as client:
                client.connect()
                user = client.find_user(username)
            if user is not None:
                logger.debug(f"Found user {username} on {server_config.host}:{server_config.port}")
                return user, server_config

        raise UserNotFound(username)


def is_member_of(groups: List[str], group_dn: str) -> bool:
    """Return True if group_dn is among groups (case-insensitive) or is the wildcard."""
    if group_dn == WILDCARD_GROUP:
        return True
    wanted = group_dn.lower()
    return any(group.lower() == wanted for group in groups)


def _entry_values(entry) -> Dict[str, List[Any]]:
    """Attribute values of an entry keyed by lower-cased attribute name."""
    return {key.lower(): list(value) for key, value in entry.entry_attributes_as_dict.items()}


def _all(values: Dict[str, List[Any]], attribute: str) -> List[Any]:
    if not attribute:
        return []
    return values.get(attribute.lower(), [])


def _first(values: Dict[str, List[Any]], attribute: str) -> str:
    found = _all(values, attribute)
    return str(found[0]) if found else ''
