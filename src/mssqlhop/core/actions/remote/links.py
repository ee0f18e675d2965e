# Built-in imports
from typing import Any, Dict, List, Optional

# Third party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.services.query import QueryService
from mssqlhop.core.utils.formatters import OutputFormatter

LINKED_SERVERS_QUERY = """
SELECT
    srv.name AS [Link],
    srv.product AS [Product],
    srv.provider AS [Provider],
    srv.data_source AS [Data Source],
    prin.name AS [Local Login],
    ll.remote_name AS [Remote Login],
    srv.is_rpc_out_enabled AS [RPC Out],
    srv.is_data_access_enabled AS [OPENQUERY],
    srv.is_collation_compatible AS [Collation]
FROM master.sys.servers srv
LEFT JOIN master.sys.linked_logins ll ON srv.server_id = ll.server_id
LEFT JOIN master.sys.server_principals prin ON ll.local_principal_id = prin.principal_id
WHERE srv.is_linked = 1
ORDER BY srv.provider, srv.name;
"""

# OLE DB providers talking to SQL Server, the only links a chain can go through
SQL_SERVER_PROVIDERS = ("SQLNCLI", "MSOLEDBSQL", "SQLOLEDB")


def get_linked_servers(query_service: QueryService) -> List[Dict[str, Any]]:
    """Linked servers of the execution server, with their login mappings."""
    return query_service.execute_table(LINKED_SERVERS_QUERY)


def is_sql_server_link(row: Dict[str, Any]) -> bool:
    provider = str(row.get("Provider") or "").upper()
    return provider.startswith(SQL_SERVER_PROVIDERS)


@ActionFactory.register("links", "List linked servers and their login mappings")
class Links(BaseAction):
    """
    Lists the linked servers of the execution server.

    Shows the provider, the local to remote login mappings and whether the
    link allows RPC Out (EXEC AT) and data access (OPENQUERY).
    """

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        pass

    def execute(self, database_context: DatabaseContext) -> Optional[List[Dict[str, Any]]]:
        logger.info("Retrieving linked SQL Servers")

        rows = get_linked_servers(database_context.query_service)

        if not rows:
            logger.warning("No linked servers found.")
            return rows

        print(OutputFormatter.convert_list_of_dicts(rows))
        return rows
