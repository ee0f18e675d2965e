"""
Test identity and privilege checks on the execution server.
"""

import unittest

from mssqlhop.core.models.linked_servers import LinkedServers
from mssqlhop.core.services.user import UserService


class FakeQueryService:
    """Answers scalar queries from a dict keyed by execution server."""

    def __init__(self, admin_by_server=None):
        self.execution_server = "SQL01"
        self.linked_servers = LinkedServers()
        self.admin_by_server = admin_by_server or {}
        self.queries = []
        self.statements = []
        self.fail_statements = False
        self.impersonation_allowed = 0

    def execute_scalar(self, query, linked=True):
        self.queries.append(query)
        if "IS_SRVROLEMEMBER" in query:
            return self.admin_by_server.get(self.execution_server, 0)
        if "HAS_PERMS_BY_NAME" in query:
            return self.impersonation_allowed
        return None

    def execute_table(self, query, linked=True):
        self.queries.append(query)
        return [{"mapped_user": "dbo", "system_user": "CORP\\svc_sql"}]

    def execute_non_processing(self, query):
        self.statements.append(query)
        return -1 if self.fail_statements else 0

    def use_chain(self, notation):
        self.linked_servers = LinkedServers(notation)
        self.execution_server = self.linked_servers.server_names[-1]


class TestUserService(unittest.TestCase):

    def setUp(self):
        self.query_service = FakeQueryService({"SQL01": 1, "SQL02": 0})
        self.user_service = UserService(self.query_service)

    def test_get_info(self):
        self.assertEqual(self.user_service.get_info(), ("dbo", "CORP\\svc_sql"))
        self.assertEqual(self.user_service.mapped_user, "dbo")
        self.assertEqual(self.user_service.system_user, "CORP\\svc_sql")

    def test_admin_status_is_cached(self):
        self.assertTrue(self.user_service.is_admin())
        self.assertTrue(self.user_service.is_admin())
        self.assertEqual(len(self.query_service.queries), 1)

    def test_admin_status_is_chain_aware(self):
        self.assertTrue(self.user_service.is_admin())

        self.query_service.use_chain("SQL02")
        self.assertFalse(self.user_service.is_admin())

        # Same execution server, another path
        self.query_service.admin_by_server["SQL02"] = 1
        self.query_service.use_chain("SQL03,SQL02")
        self.assertTrue(self.user_service.is_admin())

    def test_role_check_failure_means_not_member(self):
        def broken(query, linked=True):
            raise RuntimeError("link down")

        self.query_service.execute_scalar = broken
        self.assertFalse(self.user_service.is_member_of_role("sysadmin"))

    def test_sysadmin_can_impersonate_anyone(self):
        self.assertTrue(self.user_service.can_impersonate("sa"))
        self.assertFalse(any("HAS_PERMS_BY_NAME" in q for q in self.query_service.queries))

    def test_impersonation_permission(self):
        self.query_service.use_chain("SQL02")
        self.assertFalse(self.user_service.can_impersonate("o'brien"))
        self.assertIn("'o''brien'", self.query_service.queries[-1])

        self.query_service.impersonation_allowed = 1
        self.assertTrue(self.user_service.can_impersonate("sa"))

    def test_impersonate_and_revert(self):
        self.assertTrue(self.user_service.is_admin())

        self.assertTrue(self.user_service.impersonate_user("sa"))
        self.assertEqual(self.query_service.statements, ["EXECUTE AS LOGIN = 'sa';"])

        # Impersonation drops the cached sysadmin flag
        self.user_service.is_admin()
        self.assertEqual(
            sum("IS_SRVROLEMEMBER" in q for q in self.query_service.queries), 2
        )

        self.assertTrue(self.user_service.revert_impersonation())
        self.assertEqual(self.query_service.statements[-1], "REVERT;")

    def test_failed_impersonation(self):
        self.query_service.fail_statements = True
        self.assertFalse(self.user_service.impersonate_user("sa"))
        self.assertFalse(self.user_service.revert_impersonation())


if __name__ == "__main__":
    unittest.main()
