# Built-in imports
from typing import List, Optional

# Third party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils.formatters import OutputFormatter

FIXED_SERVER_ROLES = {
    "sysadmin": "Anything on the instance",
    "serveradmin": "Server-wide configuration and shutdown",
    "setupadmin": "Add or remove linked servers",
    "securityadmin": "Manage logins and their permissions",
    "processadmin": "Kill sessions",
    "diskadmin": "Manage disk files",
    "dbcreator": "Create, alter and drop databases",
    "bulkadmin": "Run BULK INSERT",
}


@ActionFactory.register("whoami", "Display current user identity and permissions")
class Whoami(BaseAction):
    """
    Show who the queries run as on the execution server: login, database
    user, fixed server roles and reachable databases.
    """

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        pass

    def execute(self, database_context: DatabaseContext) -> Optional[dict]:
        query_service = database_context.query_service
        mapped_user, login = database_context.user_service.get_info()

        membership = query_service.execute_table(
            "SELECT "
            + ", ".join(f"IS_SRVROLEMEMBER('{role}') AS [{role}]" for role in FIXED_SERVER_ROLES)
            + ";"
        )
        granted = membership[0] if membership else {}
        roles = sorted(role for role in FIXED_SERVER_ROLES if granted.get(role) == 1)

        databases = [
            row["name"]
            for row in query_service.execute_table(
                "SELECT name FROM sys.databases WHERE HAS_DBACCESS(name) = 1 ORDER BY name;"
            )
        ]

        logger.info(f"Identity on {query_service.execution_server}")
        print(
            OutputFormatter.convert_dict(
                {
                    "Login": login,
                    "Database user": mapped_user,
                    "Server roles": ", ".join(roles) or "None",
                    "Databases": ", ".join(databases) or "None",
                },
                "Property",
                "Value",
            )
        )

        print(
            OutputFormatter.convert_list_of_dicts(
                [
                    {"Role": role, "Grants": grants, "Member": role in roles}
                    for role, grants in FIXED_SERVER_ROLES.items()
                ]
            )
        )

        return {
            "user_name": mapped_user,
            "system_user": login,
            "roles": roles,
            "accessible_databases": databases,
        }
