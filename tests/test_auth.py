from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from retail_pos.auth import Module, Principal, accessible_modules, can_access, has_permission
from retail_pos.models import Permission, User, UserRole, utcnow
from retail_pos.security.passwords import hash_password, verify_password
from retail_pos.security.sessions import SessionRegistry
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.user_directory_service import StaffSort, UserDirectory, staff_stats


def _user(
    user_id: str,
    username: str,
    permissions: set[Permission],
    *,
    active: bool = True,
    role: UserRole = UserRole.CASHIER,
    department: str | None = None,
    last_login: datetime | None = None,
) -> User:
    return User(
        id=user_id,
        username=username,
        email=f'{username}@example.com',
        first_name=username.title(),
        last_name='Tester',
        role=role,
        permissions=frozenset(permissions),
        password_hash=hash_password('secret'),
        department=department,
        is_active=active,
        last_login=last_login,
    )


class PasswordTests(unittest.TestCase):
    def test_hash_round_trip(self) -> None:
        hashed = hash_password('hunter2')
        self.assertNotEqual(hashed, 'hunter2')
        self.assertTrue(verify_password('hunter2', hashed))
        self.assertFalse(verify_password('hunter3', hashed))

    def test_missing_hash_never_verifies(self) -> None:
        self.assertFalse(verify_password('anything', None))


class AuthenticateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.directory = UserDirectory(
            [
                _user('1', 'cashier', {Permission.POS_OPERATE}),
                _user('2', 'retired', {Permission.POS_OPERATE}, active=False),
            ]
        )

    def test_valid_credentials_return_principal(self) -> None:
        outcome = self.directory.authenticate('cashier', 'secret')
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.principal.id, '1')
        self.assertEqual(outcome.principal.permissions, frozenset({Permission.POS_OPERATE}))
        self.assertIsNotNone(self.directory.get('1').last_login)

    def test_failures_carry_audit_reason_only(self) -> None:
        cases = [
            ('nobody', 'secret', 'UNKNOWN_USERNAME'),
            ('retired', 'secret', 'INACTIVE_PRINCIPAL'),
            ('cashier', 'wrong', 'BAD_PASSWORD'),
        ]
        for username, password, reason in cases:
            with self.subTest(username=username):
                outcome = self.directory.authenticate(username, password)
                self.assertFalse(outcome.ok)
                self.assertIsNone(outcome.principal)
                self.assertEqual(outcome.failure_reason, reason)

    def test_unknown_username_still_verifies_a_hash(self) -> None:
        with patch('retail_pos.services.user_directory_service.verify_password', return_value=False) as verify:
            self.directory.authenticate('nobody', 'secret')
        verify.assert_called_once_with('secret', None)


class StaffDirectoryTests(unittest.TestCase):
    NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)

    def setUp(self) -> None:
        self.directory = UserDirectory(
            [
                _user('1', 'zoe', set(), role=UserRole.ADMIN, last_login=self.NOW - timedelta(days=1)),
                _user('2', 'amy', set(), role=UserRole.STORE_MANAGER, department='General'),
                _user('3', 'bob', set(), department='Front End', last_login=self.NOW - timedelta(days=30)),
                _user('4', 'cal', set(), department='Front End', active=False),
            ]
        )

    def test_search_filters_combine(self) -> None:
        self.assertEqual([user.id for user in self.directory.search('example.com')], ['2', '3', '4', '1'])
        rows = self.directory.search(department='front end', active=True)
        self.assertEqual([user.id for user in rows], ['3'])
        self.assertEqual([user.id for user in self.directory.search(role=UserRole.ADMIN)], ['1'])

    def test_last_login_sort_puts_never_signed_in_last(self) -> None:
        rows = self.directory.search(sort_by=StaffSort.LAST_LOGIN)
        self.assertEqual([user.id for user in rows], ['1', '3', '2', '4'])

    def test_staff_stats(self) -> None:
        stats = staff_stats(self.directory.list_all(), now=self.NOW)
        self.assertEqual(
            (stats.total_staff, stats.active_staff, stats.inactive_staff, stats.managers, stats.recent_logins),
            (4, 3, 1, 2, 1),
        )


class PermissionTests(unittest.TestCase):
    def _principal(self, *permissions: Permission) -> Principal:
        return Principal(
            id='1',
            username='u',
            display_name='U',
            role=UserRole.ADMIN,
            permissions=frozenset(permissions),
            active=True,
        )

    def test_permission_is_set_membership(self) -> None:
        principal = self._principal(Permission.POS_OPERATE)
        self.assertTrue(has_permission(principal, Permission.POS_OPERATE))
        self.assertFalse(has_permission(principal, Permission.REPORTS_VIEW))
        self.assertFalse(has_permission(None, Permission.POS_OPERATE))

    def test_role_grants_nothing_by_itself(self) -> None:
        self.assertEqual(accessible_modules(self._principal()), [])

    def test_module_gate(self) -> None:
        principal = self._principal(Permission.REPORTS_VIEW, Permission.MANAGER_APPROVAL)
        self.assertEqual(
            accessible_modules(principal),
            [Module.ANALYTICS, Module.TRANSACTIONS, Module.REPORTS, Module.BRANCHES, Module.SECURITY],
        )
        self.assertFalse(can_access(principal, Module.POS))


class SessionRegistryTests(unittest.TestCase):
    def test_resolve_and_revoke(self) -> None:
        sessions = SessionRegistry()
        token = sessions.create('1', ip='127.0.0.1', user_agent='tests')
        self.assertEqual(sessions.resolve(token), '1')
        sessions.revoke(token)
        self.assertIsNone(sessions.resolve(token))
        self.assertIsNone(sessions.resolve(None))
        self.assertIsNone(sessions.resolve('forged'))

    def test_expired_sessions_do_not_resolve(self) -> None:
        sessions = SessionRegistry()
        token = sessions.create('1', ip=None, user_agent=None)
        later = utcnow() + timedelta(days=2)
        with patch('retail_pos.security.sessions.utcnow', return_value=later):
            self.assertIsNone(sessions.resolve(token))
            self.assertEqual(sessions.purge_expired(), 1)


class AuditLogTests(unittest.TestCase):
    def test_records_auth_events_and_actions(self) -> None:
        audit = AuditLog()
        with self.assertLogs('retail_pos.services.audit_service', level='WARNING'):
            audit.log_auth_event(
                attempted_username='ghost',
                success=False,
                failure_reason='UNKNOWN_USERNAME',
                ip='10.0.0.1',
                user_agent=None,
            )
        audit.log_audit(actor_principal_id='1', action='AUTH_LOGIN', ip=None, metadata={'username': 'admin'})
        self.assertEqual(audit.auth_events[0].failure_reason, 'UNKNOWN_USERNAME')
        self.assertEqual([entry.meta for entry in audit.entries_for('AUTH_LOGIN')], [{'username': 'admin'}])

    def test_recent_queries_are_newest_first(self) -> None:
        audit = AuditLog()
        for username, success in [('a', True), ('b', False), ('c', False)]:
            audit.log_auth_event(attempted_username=username, success=success, ip=None, user_agent=None)
        audit.log_audit(actor_principal_id='1', action='POS_CHECKOUT', ip=None)
        audit.log_audit(actor_principal_id='2', action='POS_CHECKOUT', ip=None)
        audit.log_audit(actor_principal_id='2', action='PRODUCT_CREATED', ip=None)

        failed = audit.recent_auth_events(success=False)
        self.assertEqual([event.attempted_username for event in failed], ['c', 'b'])
        self.assertEqual(len(audit.recent_auth_events(limit=1)), 1)
        rows = audit.recent_entries(actor_principal_id='2')
        self.assertEqual([entry.action for entry in rows], ['PRODUCT_CREATED', 'POS_CHECKOUT'])
        self.assertEqual(audit.failed_sign_ins_since(utcnow() - timedelta(hours=1)), 2)
        self.assertEqual(audit.failed_sign_ins_since(utcnow() + timedelta(hours=1)), 0)


if __name__ == '__main__':
    unittest.main()
