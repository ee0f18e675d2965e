"""
Test server parsing.

Syntax: host[,port][:user][@database]
- , = port separator (as in SQL Server connection strings)
- : = impersonation ("execute as login")
- @ = database context
- [host] = bracketed hostname, may hold any other separator

Run with: python3 -m unittest discover -s tests
"""

import unittest

from mssqlhop.core.models.server import Server


class TestServerParsing(unittest.TestCase):
    """Test Server.parse_server() with various input formats."""

    def test_simple_hostname(self):
        """Test parsing a simple hostname without any delimiters."""
        server = Server.parse_server("SQL01")
        self.assertEqual(server.hostname, "SQL01")
        self.assertEqual(server.port, 1433)
        self.assertEqual(server.impersonation_user, "")
        self.assertIsNone(server.database)

    def test_hostname_with_port(self):
        server = Server.parse_server("SQL01,1434")
        self.assertEqual(server.hostname, "SQL01")
        self.assertEqual(server.port, 1434)

    def test_hostname_with_user(self):
        server = Server.parse_server("SQL01:admin")
        self.assertEqual(server.hostname, "SQL01")
        self.assertEqual(server.impersonation_user, "admin")

    def test_hostname_with_database(self):
        server = Server.parse_server("SQL01@mydb")
        self.assertEqual(server.hostname, "SQL01")
        self.assertEqual(server.database, "mydb")

    def test_complete_syntax(self):
        """Test parsing with all components in order."""
        server = Server.parse_server("SQL01,1434:admin@mydb")
        self.assertEqual(server.hostname, "SQL01")
        self.assertEqual(server.port, 1434)
        self.assertEqual(server.impersonation_user, "admin")
        self.assertEqual(server.database, "mydb")

    def test_ip_address(self):
        server = Server.parse_server("192.168.1.100,1434@master")
        self.assertEqual(server.hostname, "192.168.1.100")
        self.assertEqual(server.port, 1434)
        self.assertEqual(server.database, "master")

    def test_bracketed_hostname(self):
        server = Server.parse_server("[SQL:01]:sa")
        self.assertEqual(server.hostname, "SQL:01")
        self.assertEqual(server.impersonation_user, "sa")

    def test_empty_user_means_no_impersonation(self):
        self.assertEqual(Server.parse_server("SQL01:").impersonation_user, "")

    def test_invalid_port(self):
        with self.assertRaises(ValueError):
            Server.parse_server("SQL01,abc")

    def test_port_out_of_range(self):
        with self.assertRaises(ValueError):
            Server.parse_server("SQL01,70000")

    def test_empty_input(self):
        for value in ("", "   "):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    Server.parse_server(value)

    def test_str(self):
        self.assertEqual(str(Server.parse_server("SQL01,1434@mydb")), "SQL01:1434/mydb")


class TestServerVersion(unittest.TestCase):
    """Test version bookkeeping."""

    def test_no_version(self):
        server = Server("SQL01")
        self.assertEqual(server.major_version, 0)
        self.assertFalse(server.legacy)

    def test_legacy_version(self):
        server = Server("SQL01")
        server.version = "13.0.5026.0"
        self.assertEqual(server.major_version, 13)
        self.assertTrue(server.legacy)

    def test_recent_version(self):
        server = Server("SQL01")
        server.version = "15.00.2000"
        self.assertEqual(server.major_version, 15)
        self.assertFalse(server.legacy)

    def test_garbage_version(self):
        server = Server("SQL01")
        server.version = "unknown"
        self.assertEqual(server.major_version, 0)


if __name__ == "__main__":
    unittest.main()
