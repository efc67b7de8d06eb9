"""
Reconciliation of directory state with organizations and roles.

Determines which configured group mappings apply to a directory user and
fills in the names of the organizations they reference.
"""

import logging
from typing import Dict, List, Tuple

from ldap_reconcile.errors import OrganizationNotFound
from ldap_reconcile.models import ExternalUserRecord, OrgRoleAssignment, RoleMappingRule
from ldap_reconcile.stores.base import OrgStore

logger = logging.getLogger(__name__)


def is_match(user: ExternalUserRecord, rule: RoleMappingRule) -> bool:
    """
    Determine if a mapping rule applies to the user.

    A user holds at most one role per organization, so the rule applies
    exactly when that role is the one the rule grants.
    """
    return user.org_roles.get(rule.org_id) == rule.org_role


def compute_org_roles(user: ExternalUserRecord, rules: List[RoleMappingRule]) -> List[OrgRoleAssignment]:
    """
    Evaluate every mapping rule against a user.

    Args:
        user: Directory user
        rules: Mapping rules in configured order

    Returns:
        One assignment per rule, in rule order. Rules that do not apply
        produce an assignment with an empty role.
    """
    assignments = []
    for rule in rules:
        role = rule.org_role if is_match(user, rule) else ''
        assignments.append(OrgRoleAssignment(org_id=rule.org_id, group_dn=rule.group_dn, org_role=role))

    logger.debug(f"Mapped org roles for {user.login}: "
                 f"{sum(1 for a in assignments if a.matched)}/{len(assignments)} rules matched")
    return assignments


def resolve_org_names(assignments: List[OrgRoleAssignment], org_store: OrgStore) -> None:
    """
    Fill in organization names with a single store lookup.

    Every organization id is validated before any assignment is touched, so
    on failure no assignment has been modified.

    Raises:
        OrganizationNotFound: If an assignment references an unknown organization
    """
    if not assignments:
        return

    org_ids = []
    for assignment in assignments:
        if assignment.org_id not in org_ids:
            org_ids.append(assignment.org_id)

    names_by_id: Dict[int, str] = {org.id: org.name for org in org_store.search_by_ids(org_ids)}

    for org_id in org_ids:
        if not names_by_id.get(org_id):
            logger.error(f"Mapping rule references unknown organization {org_id}")
            raise OrganizationNotFound(org_id)

    for assignment in assignments:
        assignment.org_name = names_by_id[assignment.org_id]


def split_display_name(full: str) -> Tuple[str, str]:
    """
    Split a display name into first name and surname.

    Only the first two whitespace-separated tokens are used.
    """
    names = full.split()
    if not names:
        return '', ''
    if len(names) == 1:
        return names[0], ''
    return names[0], names[1]
