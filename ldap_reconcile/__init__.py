"""
LDAP Reconcile - Reconcile LDAP users and groups with organizations, roles and teams.

This package provides a debug/administration surface for inspecting how a
directory user maps onto an internal multi-tenant authorization model and for
syncing (or disabling) a single user against the current directory state.
"""

__version__ = "1.0.0"
__author__ = "LDAP Reconcile Team"
