"""
Test the command help lookups.
"""

import unittest

from mssqlhop.core import actions  # noqa: F401
from mssqlhop.core.exceptions import ActionNotFoundError
from mssqlhop.core.utils import helper


class TestHelper(unittest.TestCase):

    def test_categories(self):
        self.assertEqual(helper.action_category("query"), "Execution")
        self.assertEqual(helper.action_category("whoami"), "Database")
        self.assertEqual(helper.action_category("linkmap"), "Linked servers")
        self.assertEqual(helper.action_category("nosuchaction"), "Other")

    def test_find_commands(self):
        names = [name for name, _ in helper.find_commands("RPC")]
        self.assertIn("rpc", names)
        self.assertEqual(helper.find_commands("zzz-nothing"), [])

    def test_unknown_command_help(self):
        with self.assertRaises(ActionNotFoundError):
            helper.display_command_help("nosuchaction")

    def test_list_all_commands(self):
        self.assertEqual(helper.list_all_commands(), sorted(helper.list_all_commands()))
        self.assertIn("chain", helper.list_all_commands())


if __name__ == "__main__":
    unittest.main()
