"""
Info action for retrieving SQL Server instance information using DMVs and SERVERPROPERTY.
"""

from typing import Optional, Dict, List
from loguru import logger

from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils.formatters import OutputFormatter


# Every column is aliased: OPENQUERY refuses unnamed columns
INFO_QUERIES = {
    "Server Name": "SELECT @@SERVERNAME AS [v];",
    "Default Domain": "SELECT DEFAULT_DOMAIN() AS [v];",
    "Host Name": "SELECT CAST(SERVERPROPERTY('MachineName') AS NVARCHAR(256)) AS [v];",
    "Operating System Version": "SELECT TOP(1) windows_release + ISNULL(' ' + windows_service_pack_level, '') AS [v] FROM sys.dm_os_windows_info;",
    "SQL Service Process ID": "SELECT CAST(SERVERPROPERTY('ProcessId') AS INT) AS [v];",
    "Instance Name": "SELECT ISNULL(CAST(SERVERPROPERTY('InstanceName') AS NVARCHAR(256)), 'DEFAULT') AS [v];",
    "Authentication Mode": "SELECT CASE CAST(SERVERPROPERTY('IsIntegratedSecurityOnly') AS INT) WHEN 1 THEN 'Windows Authentication only' ELSE 'Mixed mode (Windows + SQL)' END AS [v];",
    "Clustered Server": "SELECT CASE CAST(SERVERPROPERTY('IsClustered') AS INT) WHEN 0 THEN 'No' ELSE 'Yes' END AS [v];",
    "SQL Version": "SELECT CAST(SERVERPROPERTY('ProductVersion') AS NVARCHAR(256)) AS [v];",
    "SQL Edition": "SELECT CAST(SERVERPROPERTY('Edition') AS NVARCHAR(256)) AS [v];",
    "SQL Service Pack": "SELECT CAST(SERVERPROPERTY('ProductLevel') AS NVARCHAR(256)) AS [v];",
}


@ActionFactory.register("info", "Retrieve SQL Server instance information")
class Info(BaseAction):
    """
    Retrieve SQL Server instance information using DMVs and SERVERPROPERTY.

    Gathers server details including version, edition, authentication mode
    and operating system information, without registry access.
    """

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        pass

    def execute(self, database_context: DatabaseContext) -> Optional[Dict[str, str]]:
        logger.info("Retrieving SQL Server instance information...")

        results: Dict[str, str] = {}

        for key, query in INFO_QUERIES.items():
            try:
                value = database_context.query_service.execute_scalar(query)
                results[key] = str(value) if value is not None else "NULL"
            except Exception as e:
                logger.warning(f"Failed to execute '{key}': {e}")
                results[key] = f"ERROR: {e}"

        logger.success("SQL Server information retrieved")
        print(OutputFormatter.convert_dict(results, "Information", "Value"))

        return results
