"""
Stores for organizations, teams and users held by the authorization service.
"""

from ldap_reconcile.stores.base import (
    OrgStore,
    StoreAPIError,
    TeamServiceUnavailable,
    TeamStore,
    UserStore,
)

__all__ = ['OrgStore', 'StoreAPIError', 'TeamServiceUnavailable', 'TeamStore', 'UserStore']
