"""
Store interfaces consumed by the reconciliation and sync logic.

Organizations, teams and users live in an external authorization service.
Implementations of these interfaces wrap that service; the core only ever
talks to them through the methods below.
"""

from abc import ABC, abstractmethod
from typing import List

from ldap_reconcile.errors import ReconcileError, UpstreamError
from ldap_reconcile.models import ExternalUserRecord, InternalUser, Organization, TeamMembership


class StoreAPIError(UpstreamError):
    """Raised when the authorization service cannot be reached or answers with an error."""
    pass


class TeamServiceUnavailable(ReconcileError):
    """Raised by a team store when no team sync service is configured."""

    status_code = 501


class OrgStore(ABC):

    @abstractmethod
    def search_by_ids(self, ids: List[int]) -> List[Organization]:
        """
        Fetch the organizations with the given ids in a single round trip.

        Ids without an organization are simply absent from the result.
        """
        pass


class TeamStore(ABC):

    @abstractmethod
    def teams_for_directory_groups(self, groups: List[str]) -> List[TeamMembership]:
        """
        Resolve directory group DNs to the teams synced from them.

        Raises:
            TeamServiceUnavailable: If team sync is not available
        """
        pass


class UserStore(ABC):

    @abstractmethod
    def get_by_id(self, user_id: int) -> InternalUser:
        """
        Raises:
            NotFoundError: If no user has this id
        """
        pass

    @abstractmethod
    def upsert(self, external_user: ExternalUserRecord, signup_allowed: bool) -> InternalUser:
        """
        Merge directory attributes and roles into the internal user.

        Args:
            external_user: Freshly fetched directory record
            signup_allowed: Whether a missing user may be created
        """
        pass

    @abstractmethod
    def disable(self, login: str) -> None:
        """Disable the externally authenticated account with this login."""
        pass
