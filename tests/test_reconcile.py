#!/usr/bin/env python3
"""
Unit tests for the reconciliation engine.

Covers group-to-role matching, organization name resolution and display
name splitting.
"""

import os
import sys
import unittest
from unittest.mock import Mock

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_reconcile.errors import NotFoundError, OrganizationNotFound, UpstreamError
from ldap_reconcile.models import ExternalUserRecord, OrgRoleAssignment, Organization, RoleMappingRule
from ldap_reconcile.reconcile import compute_org_roles, is_match, resolve_org_names, split_display_name


class TestComputeOrgRoles(unittest.TestCase):
    """Test cases for compute_org_roles."""

    def setUp(self):
        """Set up test fixtures."""
        self.rules = [
            RoleMappingRule(group_dn='cn=admins,dc=example,dc=com', org_id=1, org_role='Admin'),
            RoleMappingRule(group_dn='cn=editors,dc=example,dc=com', org_id=2, org_role='Editor'),
            RoleMappingRule(group_dn='cn=users,dc=example,dc=com', org_id=1, org_role='Viewer'),
            RoleMappingRule(group_dn='*', org_id=3, org_role='Viewer'),
        ]
        self.user = ExternalUserRecord(
            login='ada',
            name='Ada Lovelace',
            email='ada@example.com',
            org_roles={1: 'Admin', 3: 'Viewer'},
            groups=['cn=admins,dc=example,dc=com']
        )

    def test_one_assignment_per_rule_in_order(self):
        """Every rule yields exactly one assignment, in rule order."""
        assignments = compute_org_roles(self.user, self.rules)

        self.assertEqual(len(assignments), len(self.rules))
        self.assertEqual([a.group_dn for a in assignments], [r.group_dn for r in self.rules])
        self.assertEqual([a.org_id for a in assignments], [r.org_id for r in self.rules])

    def test_matched_and_unmatched_roles(self):
        """Matched rules carry their role, unmatched ones an empty role."""
        assignments = compute_org_roles(self.user, self.rules)

        self.assertEqual([a.org_role for a in assignments], ['Admin', '', '', 'Viewer'])
        self.assertEqual([a.matched for a in assignments], [True, False, False, True])
        self.assertTrue(all(a.org_name == '' for a in assignments))

    def test_no_rules(self):
        """No rules produce no assignments."""
        self.assertEqual(compute_org_roles(self.user, []), [])

    def test_user_without_roles_matches_nothing(self):
        """A user with no org roles leaves every rule unmatched."""
        user = ExternalUserRecord(login='nobody')
        assignments = compute_org_roles(user, self.rules)

        self.assertEqual(len(assignments), 4)
        self.assertFalse(any(a.matched for a in assignments))

    def test_other_organization_role_does_not_interfere(self):
        """Changing the role held in another organization never changes a rule's outcome."""
        rule = RoleMappingRule(group_dn='cn=editors,dc=example,dc=com', org_id=2, org_role='Editor')
        user = ExternalUserRecord(login='ada', org_roles={2: 'Editor', 5: 'Viewer'})
        self.assertTrue(is_match(user, rule))

        for other_role in ('Admin', 'Editor', 'Viewer'):
            user.org_roles[5] = other_role
            self.assertTrue(is_match(user, rule))

        user.org_roles[2] = 'Viewer'
        self.assertFalse(is_match(user, rule))

    def test_input_is_not_modified(self):
        """The engine does not mutate the user or the rules."""
        before_roles = dict(self.user.org_roles)
        before_rules = [RoleMappingRule(r.group_dn, r.org_id, r.org_role) for r in self.rules]

        compute_org_roles(self.user, self.rules)

        self.assertEqual(self.user.org_roles, before_roles)
        self.assertEqual(self.rules, before_rules)


class TestResolveOrgNames(unittest.TestCase):
    """Test cases for resolve_org_names."""

    def setUp(self):
        """Set up test fixtures."""
        self.assignments = [
            OrgRoleAssignment(org_id=1, group_dn='cn=admins,dc=example,dc=com', org_role='Admin'),
            OrgRoleAssignment(org_id=2, group_dn='cn=editors,dc=example,dc=com'),
            OrgRoleAssignment(org_id=1, group_dn='cn=users,dc=example,dc=com'),
        ]
        self.org_store = Mock()

    def test_fills_names_with_single_lookup(self):
        """Distinct ids are fetched in one call and names filled in."""
        self.org_store.search_by_ids.return_value = [
            Organization(id=2, name='Research'),
            Organization(id=1, name='Main Org.'),
        ]

        resolve_org_names(self.assignments, self.org_store)

        self.org_store.search_by_ids.assert_called_once_with([1, 2])
        self.assertEqual([a.org_name for a in self.assignments], ['Main Org.', 'Research', 'Main Org.'])

    def test_missing_organization_fails_without_mutation(self):
        """An unknown org id fails the whole resolution and leaves every assignment untouched."""
        self.org_store.search_by_ids.return_value = [Organization(id=1, name='Main Org.')]

        with self.assertRaises(OrganizationNotFound) as ctx:
            resolve_org_names(self.assignments, self.org_store)

        self.assertIsInstance(ctx.exception, NotFoundError)
        self.assertEqual(ctx.exception.org_id, 2)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("Unable to find organization with ID '2'", str(ctx.exception))
        self.assertTrue(all(a.org_name == '' for a in self.assignments))

    def test_missing_organization_fails_regardless_of_others(self):
        """Failure does not depend on how many other ids resolved."""
        self.org_store.search_by_ids.return_value = []

        with self.assertRaises(NotFoundError):
            resolve_org_names(self.assignments, self.org_store)

    def test_empty_name_is_treated_as_missing(self):
        """An organization without a name counts as unresolved."""
        self.org_store.search_by_ids.return_value = [
            Organization(id=1, name='Main Org.'),
            Organization(id=2, name=''),
        ]

        with self.assertRaises(OrganizationNotFound):
            resolve_org_names(self.assignments, self.org_store)

    def test_empty_assignments_skip_lookup(self):
        """Nothing to resolve means no store call."""
        resolve_org_names([], self.org_store)
        self.org_store.search_by_ids.assert_not_called()

    def test_store_errors_propagate(self):
        """Store failures are not swallowed."""
        self.org_store.search_by_ids.side_effect = UpstreamError("store down")

        with self.assertRaises(UpstreamError):
            resolve_org_names(self.assignments, self.org_store)


class TestSplitDisplayName(unittest.TestCase):
    """Test cases for split_display_name."""

    def test_empty(self):
        self.assertEqual(split_display_name(''), ('', ''))

    def test_whitespace_only(self):
        self.assertEqual(split_display_name('   '), ('', ''))

    def test_single_token(self):
        self.assertEqual(split_display_name('Ada'), ('Ada', ''))

    def test_two_tokens(self):
        self.assertEqual(split_display_name('Ada Lovelace'), ('Ada', 'Lovelace'))

    def test_extra_tokens_are_discarded(self):
        self.assertEqual(split_display_name('Ada Lovelace Extra'), ('Ada', 'Lovelace'))

    def test_irregular_whitespace(self):
        self.assertEqual(split_display_name('  Ada \t Lovelace '), ('Ada', 'Lovelace'))


if __name__ == '__main__':
    unittest.main()
