"""
Test action registration, argument validation and the linked server actions.

Run with: python3 -m unittest discover -s tests
"""

import unittest

from loguru import logger

from mssqlhop.core import actions  # noqa: F401
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.execution.xpcmd import ENABLE_XP_CMDSHELL, XpCmd
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.actions.remote.chain import Chain
from mssqlhop.core.actions.remote.linkmap import LinkMap, _impersonate_on_last_hop
from mssqlhop.core.actions.remote.links import LINKED_SERVERS_QUERY, is_sql_server_link
from mssqlhop.core.actions.remote.rpc import RemoteProcedureCall, RpcActionMode
from mssqlhop.core.models.linked_servers import ChainMode, LinkedServers
from mssqlhop.core.models.server import Server
from mssqlhop.core.services.database import DatabaseContext


class TestActionFactory(unittest.TestCase):

    def test_all_actions_registered(self):
        self.assertEqual(
            ActionFactory.list_actions(),
            sorted(
                ["chain", "impersonate", "info", "linkmap", "links", "query", "rpc", "whoami", "xpcmd"]
            ),
        )

    def test_get_action_returns_fresh_instances(self):
        first = ActionFactory.get_action("linkmap")
        second = ActionFactory.get_action("LINKMAP")
        self.assertIsInstance(first, LinkMap)
        self.assertIsNot(first, second)

    def test_unknown_action(self):
        self.assertIsNone(ActionFactory.get_action("nosuchaction"))
        self.assertFalse(ActionFactory.action_exists("nosuchaction"))
        self.assertIsNone(ActionFactory.get_action_description("nosuchaction"))

    def test_duplicate_name_rejected(self):
        class Impostor(BaseAction):
            def validate_arguments(self, additional_arguments="", argument_list=None):
                pass

            def execute(self, database_context=None):
                return None

        with self.assertRaises(ValueError):
            ActionFactory.register("query", "Not the real one")(Impostor)

        self.assertIsNot(ActionFactory.get_action_type("query"), Impostor)

    def test_available_actions_carry_arguments(self):
        entries = {name: arguments for name, _, arguments in ActionFactory.get_available_actions()}
        self.assertEqual(len(entries["rpc"]), 2)
        self.assertEqual(entries["links"], [])


class TestArgumentValidation(unittest.TestCase):

    def test_query_requires_sql(self):
        action = ActionFactory.get_action("query")
        with self.assertRaises(ValueError):
            action.validate_arguments(argument_list=[])

    def test_rpc_aliases(self):
        action = RemoteProcedureCall()
        action.validate_arguments(argument_list=["on", "SQL02"])
        self.assertEqual(action._action, RpcActionMode.ENABLE)

        action.validate_arguments(argument_list=["del", "SQL02"])
        self.assertEqual(action._action, RpcActionMode.DISABLE)

    def test_rpc_rejects_unknown_mode(self):
        with self.assertRaises(ValueError):
            RemoteProcedureCall().validate_arguments(argument_list=["maybe", "SQL02"])

    def test_rpc_requires_two_arguments(self):
        with self.assertRaises(ValueError):
            RemoteProcedureCall().validate_arguments(argument_list=["on"])

    def test_linkmap_limit(self):
        action = LinkMap()
        action.validate_arguments(argument_list=[])
        self.assertEqual(action._limit, 5)

        action.validate_arguments(argument_list=["--limit", "8"])
        self.assertEqual(action._limit, 8)

        action.validate_arguments(additional_arguments="3")
        self.assertEqual(action._limit, 3)

    def test_linkmap_limit_bounds(self):
        for value in ("0", "16", "many"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    LinkMap().validate_arguments(argument_list=["--limit", value])

    def test_sql_server_providers(self):
        self.assertTrue(is_sql_server_link({"Provider": "SQLNCLI11"}))
        self.assertTrue(is_sql_server_link({"Provider": "MSOLEDBSQL"}))
        self.assertFalse(is_sql_server_link({"Provider": "OraOLEDB.Oracle"}))
        self.assertFalse(is_sql_server_link({"Provider": None}))

    def test_parse_arguments(self):
        action = LinkMap()

        flags, positional = action.parse_arguments(argument_list=["--limit=4", "-v", "SQL02", "--all"])
        self.assertEqual(flags, {"limit": "4", "v": "SQL02", "all": ""})
        self.assertEqual(positional, [])

        flags, positional = action.parse_arguments(additional_arguments='"two words" -n 3 last')
        self.assertEqual(flags, {"n": "3"})
        self.assertEqual(positional, ["two words", "last"])

    def test_tokenize_unbalanced_quotes(self):
        self.assertEqual(BaseAction.tokenize("it's here"), ["it's", "here"])
        self.assertEqual(BaseAction.tokenize("   "), [])


class ContextConnection:
    """Fake impacket connection answering execution context queries by chain depth."""

    def __init__(self, contexts):
        self.socket = object()
        self.lastError = None
        self.rows = []
        self.replies = {}
        self.currentDB = "master"
        self.batches = []
        self._contexts = contexts

    def batch(self, query, tuplemode=False):
        self.batches.append(query)
        if query == "SELECT @@SERVERNAME":
            self.rows = [{"": "SQL01"}]
        else:
            depth = query.count("OPENQUERY(")
            mapped_user, system_user, is_sysadmin = self._contexts[depth - 1]
            self.rows = [
                {"mapped_user": mapped_user, "system_user": system_user, "is_sysadmin": is_sysadmin}
            ]
        return self.rows

    def printReplies(self):
        pass


class TestChainAction(unittest.TestCase):

    def _context(self, chain, contexts):
        connection = ContextConnection(contexts)
        database_context = DatabaseContext(Server("SQL01"), connection)
        database_context.set_linked_servers(LinkedServers(chain))
        return database_context, connection

    def test_loop_free_chain(self):
        database_context, connection = self._context(
            "SQL02,SQL03:svc", [("dbo", "link", 1), ("guest", "svc", 0)]
        )

        states = Chain().execute(database_context)

        self.assertEqual([state.hostname for state in states], ["SQL02", "SQL03"])
        self.assertEqual(len(connection.batches), 3)

    def test_loop_is_reported(self):
        database_context, _ = self._context(
            "SQL02,SQL03,SQL02", [("dbo", "link", 1), ("guest", "svc", 0), ("dbo", "link", 1)]
        )

        self.assertIsNone(Chain().execute(database_context))

    def test_no_chain(self):
        database_context = DatabaseContext(Server("SQL01"), ContextConnection([]))
        self.assertIsNone(Chain().execute(database_context))


class TopologyQueryService:
    """Answers queries as the last server of the active chain would."""

    def __init__(self, origin, links):
        self.origin = origin
        self.links = links
        self.linked_servers = LinkedServers()

    @property
    def execution_server(self):
        if self.linked_servers.is_empty:
            return self.origin
        return self.linked_servers.server_names[-1]

    def execute_table(self, query, linked=True):
        if query == LINKED_SERVERS_QUERY:
            return self.links.get(self.execution_server, [])
        raise AssertionError(f"Unexpected query: {query}")

    def execute_scalar(self, query, linked=True):
        return self.execution_server


class TopologyUserService:
    def __init__(self, query_service, identities):
        self._query_service = query_service
        self._identities = identities

    def get_info(self):
        mapped_user, system_user, _ = self._identities[self._query_service.execution_server]
        return mapped_user, system_user

    def is_admin(self):
        return self._identities[self._query_service.execution_server][2]


class TopologyContext:
    def __init__(self, origin, links, identities):
        self.query_service = TopologyQueryService(origin, links)
        self.user_service = TopologyUserService(self.query_service, identities)

    def set_linked_servers(self, linked_servers):
        self.query_service.linked_servers = linked_servers


def link(name, provider="SQLNCLI11", local_login=None):
    return {"Link": name, "Provider": provider, "Local Login": local_login}


class TestLinkMap(unittest.TestCase):

    def setUp(self):
        links = {
            "SQL01": [link("SQL02"), link("ORACLE01", provider="OraOLEDB.Oracle")],
            "SQL02": [link("SQL03", local_login="svc_link"), link("SQL01")],
            "SQL03": [link("SQL02")],
        }
        identities = {
            "SQL01": ("dbo", "sa", True),
            "SQL02": ("dbo", "link_user", True),
            "SQL03": ("guest", "web", False),
        }
        self.database_context = TopologyContext("SQL01", links, identities)

    def test_maps_every_loop_free_path(self):
        action = LinkMap()
        action.validate_arguments(argument_list=[])

        chains = action.execute(self.database_context)

        self.assertEqual(
            [path[-1]["Chain"].get_chain_arguments() for path in chains],
            ["SQL02", "SQL02:svc_link,SQL03"],
        )
        self.assertEqual(chains[1][-1]["ImpersonatedUser"], "svc_link")
        self.assertFalse(chains[1][-1]["IsSysadmin"])

    def test_depth_limit(self):
        action = LinkMap()
        action.validate_arguments(argument_list=["--limit", "1"])

        chains = action.execute(self.database_context)

        self.assertEqual(len(chains), 1)
        self.assertEqual(chains[0][-1]["ServerName"], "SQL02")

    def test_original_chain_is_restored(self):
        LinkMap().execute(self.database_context)
        self.assertTrue(self.database_context.query_service.linked_servers.is_empty)

    def test_replaced_login_is_traced(self):
        messages = []
        sink = logger.add(messages.append, level="TRACE", format="{message}")
        try:
            chain = LinkedServers("SQL02:alice,SQL03:bob")
            chain.use_remote_procedure_call = True

            rebuilt = _impersonate_on_last_hop(chain, "svc_link")
            _impersonate_on_last_hop(LinkedServers("SQL02"), "svc_link")
        finally:
            logger.remove(sink)

        self.assertEqual(rebuilt.get_chain_arguments(), "SQL02:alice,SQL03:svc_link")
        self.assertTrue(rebuilt.use_remote_procedure_call)
        self.assertEqual(chain.get_chain_arguments(), "SQL02:alice,SQL03:bob")
        self.assertEqual(len(messages), 1)
        self.assertIn("'bob' on 'SQL03' replaced by 'svc_link'", messages[0])


class RecordingQueryService:
    """Records the chaining method requested with every statement."""

    def __init__(self, xp_cmdshell_in_use=0):
        self.xp_cmdshell_in_use = xp_cmdshell_in_use
        self.calls = []

    def execute_scalar(self, query, linked=True, mode=None):
        self.calls.append((query, mode))
        return self.xp_cmdshell_in_use

    def execute_non_processing(self, query, mode=None):
        self.calls.append((query, mode))
        return 0

    def execute(self, query, tuple_mode=False, linked=True, mode=None):
        self.calls.append((query, mode))
        return [("nt service\\mssqlserver",), (None,)]

    def execute_table(self, query, linked=True, mode=None):
        self.calls.append((query, mode))
        return []


class RecordingContext:
    def __init__(self, query_service):
        self.query_service = query_service


class TestStateChangingActions(unittest.TestCase):

    def test_xpcmd_requests_rpc(self):
        query_service = RecordingQueryService(xp_cmdshell_in_use=0)
        action = XpCmd()
        action.validate_arguments(argument_list=["whoami"])

        output = action.execute(RecordingContext(query_service))

        self.assertEqual(output, ["nt service\\mssqlserver"])
        self.assertEqual(
            query_service.calls[1:],
            [
                (ENABLE_XP_CMDSHELL, ChainMode.REMOTE_PROCEDURE_CALL),
                ("EXEC master..xp_cmdshell 'whoami'", ChainMode.REMOTE_PROCEDURE_CALL),
            ],
        )

    def test_xpcmd_skips_enabling_when_in_use(self):
        query_service = RecordingQueryService(xp_cmdshell_in_use=1)
        action = XpCmd()
        action.validate_arguments(argument_list=["hostname"])

        action.execute(RecordingContext(query_service))

        self.assertNotIn((ENABLE_XP_CMDSHELL, ChainMode.REMOTE_PROCEDURE_CALL), query_service.calls)

    def test_rpc_option_requests_rpc(self):
        query_service = RecordingQueryService()
        action = RemoteProcedureCall()
        action.validate_arguments(argument_list=["on", "SQL02"])

        action.execute(RecordingContext(query_service))

        query, mode = query_service.calls[-1]
        self.assertIn("@optname = 'rpc out', @optvalue = 'true'", query)
        self.assertEqual(mode, ChainMode.REMOTE_PROCEDURE_CALL)


if __name__ == "__main__":
    unittest.main()
