"""
REST client for the authorization service.

Implements the organization, team and user stores on top of the service's
JSON API using http.client, with TLS and Basic/Bearer authentication handling.
"""

import json
import ssl
import base64
import logging
from dataclasses import asdict
from typing import Dict, List, Any, Optional, Union
from urllib.parse import urlparse, urlencode
from http.client import HTTPSConnection, HTTPConnection

from ldap_reconcile.errors import ConfigurationError, NotFoundError
from ldap_reconcile.models import ExternalUserRecord, InternalUser, Organization, TeamMembership
from ldap_reconcile.stores.base import OrgStore, StoreAPIError, TeamServiceUnavailable, TeamStore, UserStore

logger = logging.getLogger(__name__)


class RestStoreClient(OrgStore, TeamStore, UserStore):
    """
    Authorization service client backing all three stores.

    Endpoints (relative to base_url):
        GET  /orgs?ids=1,2        -> [{"id", "name"}]
        POST /teams/search        -> [{"orgId", "orgName", "teamId", "teamName", "groupDN"}]
        GET  /users/{id}          -> {"id", "login", "email", "name", "isAdmin", "isDisabled"}
        POST /users/upsert        -> user
        POST /users/disable       -> {}
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the REST client.

        Args:
            config: 'store' section of the configuration
        """
        if not config.get('base_url'):
            raise ConfigurationError("Missing required field store.base_url")

        self.config = config
        self.base_url = config['base_url']
        self.auth_config = config.get('auth') or {}
        self.verify_ssl = config.get('verify_ssl', True)
        self.timeout = config.get('timeout', 30)

        self.parsed_url = urlparse(self.base_url)
        self.host = self.parsed_url.netloc
        self.base_path = self.parsed_url.path.rstrip('/')

        self.connection = None
        self.ssl_context = None
        self.auth_headers = {}

        self._setup_ssl_context()
        self._setup_authentication()

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if self.parsed_url.scheme != 'https':
            return

        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.host}")
            return

        self.ssl_context = ssl.create_default_context()
        ca_file = self.config.get('ca_cert_file')
        if ca_file:
            try:
                self.ssl_context.load_verify_locations(cafile=ca_file)
                logger.info(f"Loaded CA certificates: {ca_file}")
            except (OSError, ssl.SSLError) as e:
                raise ConfigurationError(f"Failed to load CA certificates {ca_file}: {e}", e)

    def _setup_authentication(self):
        """Set up authentication headers based on configuration."""
        auth_method = str(self.auth_config.get('method', '')).lower()

        if auth_method == 'basic':
            username = self.auth_config.get('username')
            password = self.auth_config.get('password')
            if not (username and password):
                raise ConfigurationError(f"Basic auth configured but missing username or password for {self.host}")
            credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
            self.auth_headers['Authorization'] = f"Basic {credentials}"
            logger.debug(f"Configured Basic authentication for {self.host}")

        elif auth_method in ('token', 'bearer'):
            token = self.auth_config.get('token')
            if not token:
                raise ConfigurationError(f"Token auth configured but missing token for {self.host}")
            self.auth_headers['Authorization'] = f"Bearer {token}"
            logger.debug(f"Configured Bearer token authentication for {self.host}")

        elif auth_method:
            raise ConfigurationError(f"Unknown authentication method '{auth_method}' for {self.host}")

    def _get_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        """Get or create HTTP connection."""
        if self.connection:
            return self.connection

        if self.parsed_url.scheme == 'https':
            self.connection = HTTPSConnection(self.host, context=self.ssl_context, timeout=self.timeout)
        else:
            self.connection = HTTPConnection(self.host, timeout=self.timeout)

        return self.connection

    def request(self, method: str, path: str, body: Optional[Dict] = None) -> Any:
        """
        Make HTTP request to the authorization service.

        Args:
            method: HTTP method (GET, POST)
            path: API endpoint path (relative to base_url)
            body: Request body data

        Returns:
            Parsed JSON response

        Raises:
            NotFoundError: On HTTP 404
            StoreAPIError: If the request fails for any other reason
        """
        full_path = f"{self.base_path}/{path.lstrip('/')}"

        request_headers = dict(self.auth_headers)
        request_headers['Accept'] = 'application/json'
        request_body = None
        if body is not None:
            request_body = json.dumps(body)
            request_headers['Content-Type'] = 'application/json'

        try:
            conn = self._get_connection()
            logger.debug(f"Making {method} request to {self.host}{full_path}")
            conn.request(method, full_path, request_body, request_headers)

            response = conn.getresponse()
            response_data = response.read().decode('utf-8')
        except (ConnectionError, OSError) as e:
            self.close_connection()
            raise StoreAPIError(f"Connection error to {self.host}: {e}", e)

        logger.debug(f"Response status: {response.status} {response.reason}")

        if response.status == 404:
            raise NotFoundError(f"Not found: {method} {full_path}")
        if response.status >= 400:
            raise StoreAPIError(f"HTTP {response.status}: {response.reason} ({method} {full_path})")

        try:
            return json.loads(response_data) if response_data else {}
        except json.JSONDecodeError as e:
            raise StoreAPIError(f"Invalid JSON response from {self.host}: {e}", e)

    def close_connection(self):
        """Close HTTP connection."""
        if self.connection:
            try:
                self.connection.close()
            except OSError as e:
                logger.warning(f"Error closing connection to {self.host}: {e}")
            finally:
                self.connection = None

    def search_by_ids(self, ids: List[int]) -> List[Organization]:
        query = urlencode({'ids': ','.join(str(org_id) for org_id in ids)})
        response = self.request('GET', f'/orgs?{query}')
        return [Organization(id=int(org['id']), name=org.get('name', '')) for org in response or []]

    def teams_for_directory_groups(self, groups: List[str]) -> List[TeamMembership]:
        try:
            response = self.request('POST', '/teams/search', {'groups': groups})
        except NotFoundError:
            raise TeamServiceUnavailable(f"No team sync service available on {self.host}")

        return [
            TeamMembership(
                org_id=int(team['orgId']),
                org_name=team.get('orgName', ''),
                team_id=int(team['teamId']),
                team_name=team.get('teamName', ''),
                group_dn=team.get('groupDN', '')
            )
            for team in response or []
        ]

    def get_by_id(self, user_id: int) -> InternalUser:
        try:
            response = self.request('GET', f'/users/{int(user_id)}')
        except NotFoundError:
            raise NotFoundError(f"User not found: {user_id}")
        return self._parse_user(response)

    def upsert(self, external_user: ExternalUserRecord, signup_allowed: bool) -> InternalUser:
        payload = asdict(external_user)
        # JSON object keys must be strings
        payload['org_roles'] = {str(org_id): role for org_id, role in external_user.org_roles.items()}
        response = self.request('POST', '/users/upsert', {
            'externalUser': payload,
            'signupAllowed': signup_allowed
        })
        return self._parse_user(response)

    def disable(self, login: str) -> None:
        self.request('POST', '/users/disable', {'login': login})

    def _parse_user(self, data: Dict[str, Any]) -> InternalUser:
        try:
            return InternalUser(
                id=int(data['id']),
                login=data['login'],
                email=data.get('email', ''),
                name=data.get('name', ''),
                is_admin=bool(data.get('isAdmin', False)),
                is_disabled=bool(data.get('isDisabled', False))
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StoreAPIError(f"Malformed user in response from {self.host}: {e}", e)

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close_connection()
