# Built-in imports
from typing import Any, Dict, List, Optional

# Third party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils.formatters import OutputFormatter

IMPERSONABLE_LOGINS_QUERY = """
SELECT DISTINCT
    b.name AS [Login],
    b.type_desc AS [Type],
    IS_SRVROLEMEMBER('sysadmin', b.name) AS [Sysadmin]
FROM sys.server_permissions a
INNER JOIN sys.server_principals b ON a.grantor_principal_id = b.principal_id
WHERE a.permission_name = 'IMPERSONATE';
"""


@ActionFactory.register("impersonate", "List logins the current user can impersonate")
class Impersonation(BaseAction):
    """
    Lists the logins granting IMPERSONATE to someone on the execution server.

    Any of them can be used as the impersonation part of a chain element
    (e.g., 'SQL02:webapp_admin').
    """

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        pass

    def execute(self, database_context: DatabaseContext) -> Optional[List[Dict[str, Any]]]:
        if database_context.user_service.is_admin():
            logger.success("You are sysadmin: every login can be impersonated")

        rows = database_context.query_service.execute_table(IMPERSONABLE_LOGINS_QUERY)

        if not rows:
            logger.warning("No login can be impersonated.")
            return rows

        print(OutputFormatter.convert_list_of_dicts(rows))
        return rows
