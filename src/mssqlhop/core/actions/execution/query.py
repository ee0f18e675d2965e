# Built-in imports
from typing import Any, Dict, List, Optional

# Third party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils.formatters import OutputFormatter


@ActionFactory.register("query", "Execute a raw T-SQL query on the execution server")
class Query(BaseAction):
    """
    Execute a T-SQL query and display its result set.

    When a linked server chain is active, the query runs on the last hop.
    """

    def __init__(self):
        super().__init__()
        self._query: str = ""

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        if argument_list is not None:
            additional_arguments = " ".join(argument_list)

        if not additional_arguments or not additional_arguments.strip():
            raise ValueError("Query action requires a T-SQL query.")

        self._query = additional_arguments.strip()

    def execute(self, database_context: DatabaseContext) -> Optional[List[Dict[str, Any]]]:
        try:
            rows = database_context.query_service.execute_table(self._query)
        except Exception as e:
            logger.error(f"Error executing query: {e}")
            return None

        if not rows:
            logger.info("The query returned no rows.")
            return rows

        print(OutputFormatter.convert_list_of_dicts(rows))
        logger.info(f"{len(rows)} row(s) returned")
        return rows

    def get_arguments(self) -> List[str]:
        return ["T-SQL query to execute"]
