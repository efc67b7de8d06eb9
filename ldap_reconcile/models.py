"""
Data model for LDAP Reconcile.

Value objects passed between the directory client, the reconciliation engine,
the stores and the debug layer. All of them are built per request and
discarded afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Any, Optional


ROLE_VIEWER = 'Viewer'
ROLE_EDITOR = 'Editor'
ROLE_ADMIN = 'Admin'

VALID_ROLES = (ROLE_VIEWER, ROLE_EDITOR, ROLE_ADMIN)


class SyncDecision(Enum):
    """Action taken for one user based on its presence in the directory."""

    DISABLE = 'disable'
    UPSERT = 'upsert'
    REFUSE = 'refuse'


@dataclass
class RoleMappingRule:
    """Binds a directory group to a single (organization, role) pair."""

    group_dn: str
    org_id: int
    org_role: str
    is_admin: Optional[bool] = None


@dataclass
class AttributeMap:
    """Directory attribute names used to read a user entry."""

    name: str = 'givenName'
    surname: str = 'sn'
    username: str = 'cn'
    member_of: str = 'memberOf'
    email: str = 'email'

    def search_attributes(self) -> List[str]:
        """Return the distinct non-empty attribute names to request."""
        attributes = []
        for value in (self.username, self.surname, self.email, self.name, self.member_of):
            if value and value not in attributes:
                attributes.append(value)
        return attributes


@dataclass
class ServerConfig:
    """Configuration of a single directory server."""

    host: str
    port: int = 389
    use_ssl: bool = False
    start_tls: bool = False
    ssl_skip_verify: bool = False
    root_ca_cert: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None
    bind_dn: str = ''
    bind_password: str = ''
    timeout: int = 10
    search_filter: str = '(cn=%s)'
    search_base_dns: List[str] = field(default_factory=list)
    group_search_filter: str = ''
    group_search_base_dns: List[str] = field(default_factory=list)
    group_search_filter_user_attribute: str = ''
    attributes: AttributeMap = field(default_factory=AttributeMap)
    groups: List[RoleMappingRule] = field(default_factory=list)


@dataclass
class LDAPConfig:
    """Complete LDAP integration settings."""

    enabled: bool = False
    allow_sign_up: bool = True
    admin_user: str = 'admin'
    servers: List[ServerConfig] = field(default_factory=list)


@dataclass
class ExternalUserRecord:
    """
    A user as reported by the directory.

    org_roles holds at most one role per organization; the directory client
    guarantees this when it builds the record.
    """

    login: str
    name: str = ''
    email: str = ''
    auth_module: str = 'ldap'
    auth_id: str = ''
    is_admin: Optional[bool] = None
    is_disabled: bool = False
    org_roles: Dict[int, str] = field(default_factory=dict)
    groups: List[str] = field(default_factory=list)


@dataclass
class OrgRoleAssignment:
    """Outcome of evaluating one mapping rule; org_role is empty when unmatched."""

    org_id: int
    group_dn: str
    org_role: str = ''
    org_name: str = ''

    @property
    def matched(self) -> bool:
        return bool(self.org_role)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'orgId': self.org_id,
            'orgName': self.org_name,
            'orgRole': self.org_role,
            'groupDN': self.group_dn,
        }


@dataclass
class ServerStatus:
    """Health of one configured directory server."""

    host: str
    port: int
    available: bool
    error: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'port': self.port,
            'available': self.available,
            'error': self.error,
        }


@dataclass
class Organization:
    id: int
    name: str


@dataclass
class TeamMembership:
    """Internal team a directory group is synced into."""

    org_id: int
    team_id: int
    team_name: str
    group_dn: str
    org_name: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'orgId': self.org_id,
            'orgName': self.org_name,
            'teamId': self.team_id,
            'teamName': self.team_name,
            'groupDN': self.group_dn,
        }


@dataclass
class InternalUser:
    """A user as known to the authorization service."""

    id: int
    login: str
    email: str = ''
    name: str = ''
    is_admin: bool = False
    is_disabled: bool = False


@dataclass
class SyncResult:
    decision: SyncDecision
    login: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'decision': self.decision.value,
            'login': self.login,
            'message': self.message,
        }


@dataclass
class LDAPAttribute:
    """A mapped value paired with the directory attribute it was read from."""

    config_attribute: str
    ldap_value: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'cfgAttrValue': self.config_attribute,
            'ldapValue': self.ldap_value,
        }


@dataclass
class LDAPUserView:
    """Display record showing how a directory user maps onto organizations and teams."""

    name: LDAPAttribute
    surname: LDAPAttribute
    email: LDAPAttribute
    login: LDAPAttribute
    is_admin: Optional[bool] = None
    is_disabled: bool = False
    org_roles: List[OrgRoleAssignment] = field(default_factory=list)
    teams: List[TeamMembership] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name.to_dict(),
            'surname': self.surname.to_dict(),
            'email': self.email.to_dict(),
            'login': self.login.to_dict(),
            'isAdmin': self.is_admin,
            'isDisabled': self.is_disabled,
            'roles': [role.to_dict() for role in self.org_roles],
            'teams': [team.to_dict() for team in self.teams],
        }
