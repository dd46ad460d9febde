import unittest
from datetime import timedelta

from support import NOW, StoreTestCase

from bemestar.domain.errors import NotAuthenticated, ProfileMissing
from bemestar.domain.scope import resolve_scope


class ResolveScopeTests(StoreTestCase):
    def resolve(self, caller_id):
        with self.engine.begin() as conn:
            return resolve_scope(conn, caller_id)

    def test_admin_registry_grants_global_scope(self) -> None:
        self.add_profile("root", role="employee", company_id="c1", admin=True)

        scope = self.resolve("root")

        self.assertTrue(scope.is_admin)
        self.assertIsNone(scope.company_filter)
        self.assertFalse(scope.is_empty)
        self.assertEqual(scope.label, "admin")

    def test_admin_role_without_registry_row_is_not_admin(self) -> None:
        self.add_profile("fake-admin", role="admin", company_id=None)

        scope = self.resolve("fake-admin")

        self.assertFalse(scope.is_admin)
        self.assertTrue(scope.is_empty)

    def test_supervisor_uses_newest_assignment(self) -> None:
        self.add_profile("sup", role="supervisor", company_id="profile-company")
        self.add_supervision("sup", "c-old", NOW - timedelta(days=60))
        self.add_supervision("sup", "c-new", NOW - timedelta(days=1))

        scope = self.resolve("sup")

        self.assertEqual(scope.effective_company_id, "c-new")
        self.assertEqual(scope.company_filter, "c-new")
        self.assertEqual(scope.label, "company:c-new")

    def test_supervisor_without_assignment_is_empty(self) -> None:
        self.add_profile("sup", role="Supervisor", company_id="c1")

        scope = self.resolve("sup")

        self.assertEqual(scope.role, "supervisor")
        self.assertTrue(scope.is_empty)
        self.assertEqual(scope.label, "empty")

    def test_employee_uses_profile_company(self) -> None:
        self.add_profile("emp", role="employee", company_id="c1")
        self.add_profile("mgr", role="manager", company_id="c2")

        self.assertEqual(self.resolve("emp").effective_company_id, "c1")
        self.assertEqual(self.resolve("mgr").effective_company_id, "c2")

    def test_employee_without_company_is_empty_not_global(self) -> None:
        self.add_profile("emp", role="employee", company_id=None)

        scope = self.resolve("emp")

        self.assertFalse(scope.is_admin)
        self.assertTrue(scope.is_empty)
        self.assertIsNone(scope.company_filter)

    def test_missing_profile_raises(self) -> None:
        with self.assertRaises(ProfileMissing) as ctx:
            self.resolve("ghost")
        self.assertEqual(ctx.exception.caller_id, "ghost")

    def test_missing_caller_raises(self) -> None:
        with self.assertRaises(NotAuthenticated):
            self.resolve("")
        with self.assertRaises(NotAuthenticated):
            self.resolve(None)


if __name__ == "__main__":
    unittest.main()
