"""
Sends T-SQL over the TDS connection, through the active linked server chain.
"""

from typing import Any, Dict, List, Optional, Union

# Third party imports
from loguru import logger
from impacket.tds import MSSQL, SQLErrorException
from impacket.tds import TDS_DONE_TOKEN, TDS_DONEINPROC_TOKEN, TDS_DONEPROC_TOKEN

# Local library imports
from mssqlhop.core.models.linked_servers import ChainMode, LinkedServers

Row = Union[Dict[str, Any], tuple]

RPC_DISABLED_MARKER = "not configured for RPC"
METADATA_ERROR_MARKER = "metadata could not be determined"


class QueryService:
    """
    Executes queries on the execution server.

    Without a chain, the execution server is the directly connected instance.
    With a chain, every query is rewritten into a nested OPENQUERY or
    EXEC AT statement and lands on the last hop. Callers needing to talk
    to the connected instance itself (such as the chain walker, which builds
    its own statements) pass `linked=False`.
    """

    def __init__(self, mssql: MSSQL):
        """
        Args:
            mssql: An authenticated impacket connection
        """
        self.connection = mssql
        self._linked_servers = LinkedServers()
        self.execution_server: str = self._get_server_name()

    @property
    def linked_servers(self) -> LinkedServers:
        return self._linked_servers

    @linked_servers.setter
    def linked_servers(self, value: Optional[LinkedServers]) -> None:
        """Replace the chain; the execution server becomes its last hop."""
        self._linked_servers = value if value is not None else LinkedServers()

        if self._linked_servers.is_empty:
            self.execution_server = self._get_server_name()
        else:
            self.execution_server = self._linked_servers.server_names[-1]

        logger.debug(f"Execution server set to: {self.execution_server}")

    def _get_server_name(self) -> str:
        """Name of the connected instance, without its instance suffix."""
        try:
            result = self.execute_scalar("SELECT @@SERVERNAME", linked=False)
        except Exception as e:
            logger.warning(f"Failed to get server name: {e}")
            return "Unknown"

        return str(result).split("\\")[0] if result else "Unknown"

    def force_mode(self, mode: ChainMode) -> None:
        """Set the chaining method used when a caller does not pick one."""
        self._linked_servers.use_remote_procedure_call = mode == ChainMode.REMOTE_PROCEDURE_CALL
        logger.debug(f"Linked server chaining method set to {mode.value}")

    def execute(
        self,
        query: str,
        tuple_mode: bool = False,
        linked: bool = True,
        mode: Optional[ChainMode] = None,
    ) -> List[Row]:
        """
        Run a query and return its rows.

        Args:
            query: T-SQL to run on the execution server
            tuple_mode: Rows as tuples instead of column dictionaries
            linked: False to send `query` untouched to the connected instance
            mode: Chaining method for this query; defaults to the chain's.
                Statements changing state need REMOTE_PROCEDURE_CALL.

        Raises:
            ValueError: If the query is empty or the connection is closed
            SQLErrorException: If SQL Server reports an error
        """
        return self._run(query, tuple_mode=tuple_mode, linked=linked, mode=mode, return_rows=True)

    def execute_table(
        self, query: str, linked: bool = True, mode: Optional[ChainMode] = None
    ) -> List[Dict[str, Any]]:
        return self.execute(query, linked=linked, mode=mode) or []

    def execute_scalar(
        self, query: str, linked: bool = True, mode: Optional[ChainMode] = None
    ) -> Optional[Any]:
        """First column of the first row, or None without rows."""
        rows = self.execute(query, linked=linked, mode=mode)
        if not rows or not rows[0]:
            return None

        first_row = rows[0]
        if isinstance(first_row, dict):
            return next(iter(first_row.values()))
        return first_row[0]

    def execute_non_processing(self, query: str, mode: Optional[ChainMode] = None) -> int:
        """
        Run a statement without result set (EXECUTE AS, sp_configure, ...).

        Returns:
            Number of affected rows, or -1 if the statement failed
        """
        try:
            affected = self._run(query, mode=mode, return_rows=False)
        except Exception as error:
            logger.error(error)
            return -1

        return affected if affected is not None else -1

    def _run(
        self,
        query: str,
        tuple_mode: bool = False,
        linked: bool = True,
        mode: Optional[ChainMode] = None,
        return_rows: bool = True,
    ) -> Any:
        if not query or not query.strip():
            raise ValueError("Query cannot be null or empty.")

        if not self.connection or not self.connection.socket:
            raise ValueError("Database connection is not open.")

        statement = self._prepare_query(query, mode) if linked else query

        try:
            self._send(statement, tuple_mode)
        except SQLErrorException as e:
            if linked and mode is None and self._fallback_to_openquery(e):
                return self._run(query, tuple_mode, linked, mode, return_rows)

            if RPC_DISABLED_MARKER in str(e):
                logger.info("EXEC AT needs RPC Out on every link: rpc on <linked server>")
            elif METADATA_ERROR_MARKER in str(e):
                logger.error(
                    "OPENQUERY needs a single, consistent set of columns from the remote query."
                )
                logger.info(f"Enable RPC Out to run stored procedures: rpc add {self.execution_server}")
            raise
        except Exception as e:
            # Some procedures report success as a bare "0"
            if str(e).strip() != "0":
                raise
            logger.debug("Query returned status code 0 (success)")
            return getattr(self.connection, "rows", []) if return_rows else 0

        if return_rows:
            return self.connection.rows
        return self._get_affected_rows()

    def _send(self, statement: str, tuple_mode: bool) -> None:
        self.connection.batch(statement, tuplemode=tuple_mode)
        self.connection.printReplies()

        if self.connection.lastError:
            raise self.connection.lastError

    def _fallback_to_openquery(self, error: SQLErrorException) -> bool:
        """
        Switch the chain to OPENQUERY when a link refuses EXEC AT, for
        queries relying on the chain default only.

        Returns:
            True if the query should be sent again
        """
        if RPC_DISABLED_MARKER not in str(error):
            return False

        if not self._linked_servers.use_remote_procedure_call:
            return False

        logger.warning("A linked server of the chain is not configured for RPC Out")
        logger.warning("Trying again with OPENQUERY")
        self.force_mode(ChainMode.READ_ONLY_OPENQUERY)
        return True

    def _prepare_query(self, query: str, mode: Optional[ChainMode] = None) -> str:
        """Wrap `query` so it runs on the last hop of the chain, if any."""
        logger.debug(f"Query to execute: {query}")

        if self._linked_servers.is_empty:
            return query

        mode = mode or self._linked_servers.mode
        statement = self._linked_servers.build_chain(query, mode)
        logger.debug(f"Chained through {mode.value}: {statement}")
        return statement

    def _get_affected_rows(self) -> int:
        """Row count of the last DONE token received."""
        affected = 0

        for token_type in (TDS_DONE_TOKEN, TDS_DONEINPROC_TOKEN, TDS_DONEPROC_TOKEN):
            tokens = self.connection.replies.get(token_type)
            if tokens and "DoneRowCount" in tokens[-1].fields:
                affected = tokens[-1]["DoneRowCount"]

        return affected

    def change_database(self, database: str) -> None:
        """Change the database of the direct connection."""
        if database != self.connection.currentDB:
            self.connection.changeDB(database)
            self.connection.printReplies()

    def get_current_database(self) -> str:
        return self.connection.currentDB
