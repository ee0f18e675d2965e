"""
Test the execution state fingerprint used for loop detection.
"""

import hashlib
import unittest

from mssqlhop.core.models.server_execution_state import ServerExecutionState


class FakeUserService:
    def __init__(self, mapped_user, system_user, admin):
        self._info = (mapped_user, system_user)
        self._admin = admin

    def get_info(self):
        return self._info

    def is_admin(self):
        return self._admin


class TestServerExecutionState(unittest.TestCase):

    def test_equality_is_case_insensitive(self):
        first = ServerExecutionState("SQL02", "dbo", "CORP\\svc_sql", True)
        second = ServerExecutionState("sql02", "DBO", "corp\\SVC_SQL", True)
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertEqual(first.state_hash(), second.state_hash())

    def test_sysadmin_flag_makes_a_difference(self):
        first = ServerExecutionState("SQL02", "guest", "sa", True)
        second = ServerExecutionState("SQL02", "guest", "sa", False)
        self.assertNotEqual(first, second)
        self.assertNotEqual(first.state_hash(), second.state_hash())

    def test_hostname_makes_a_difference(self):
        self.assertNotEqual(
            ServerExecutionState("SQL02", "dbo", "sa", True),
            ServerExecutionState("SQL03", "dbo", "sa", True),
        )

    def test_usable_in_sets(self):
        states = {
            ServerExecutionState("SQL02", "dbo", "sa", True),
            ServerExecutionState("sql02", "dbo", "SA", True),
            ServerExecutionState("SQL03", "dbo", "sa", True),
        }
        self.assertEqual(len(states), 2)

    def test_state_hash_is_stable(self):
        state = ServerExecutionState("sql02", "dbo", "sa", True)
        expected = hashlib.sha256("SQL02DBOSATrue".encode("utf-8")).hexdigest()
        self.assertEqual(state.state_hash(), expected)

    def test_from_row(self):
        state = ServerExecutionState.from_row(
            "SQL02", {"mapped_user": "guest", "system_user": "web", "is_sysadmin": 0}
        )
        self.assertEqual(state.hostname, "SQL02")
        self.assertEqual(state.mapped_user, "guest")
        self.assertEqual(state.system_user, "web")
        self.assertFalse(state.is_sysadmin)

    def test_from_row_flag_values(self):
        cases = [(1, True), (0, False), ("1", True), (b"1", True), (None, False), (True, True)]
        for value, expected in cases:
            with self.subTest(value=value):
                state = ServerExecutionState.from_row(
                    "SQL02", {"mapped_user": "dbo", "system_user": "sa", "is_sysadmin": value}
                )
                self.assertIs(state.is_sysadmin, expected)

    def test_from_row_decodes_bytes_and_missing_values(self):
        state = ServerExecutionState.from_row("SQL02", {"mapped_user": b"dbo"})
        self.assertEqual(state.mapped_user, "dbo")
        self.assertEqual(state.system_user, "")

    def test_from_context(self):
        state = ServerExecutionState.from_context("SQL02", FakeUserService("dbo", "sa", True))
        self.assertEqual(state, ServerExecutionState("SQL02", "dbo", "sa", True))

    def test_str(self):
        self.assertEqual(
            str(ServerExecutionState("SQL02", "dbo", "sa", False)),
            "SQL02 (System: sa, Mapped: dbo, Sysadmin: False)",
        )


if __name__ == "__main__":
    unittest.main()
