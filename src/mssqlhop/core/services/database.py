"""
Database context bundling the services bound to one live connection.
"""

from typing import List, Optional

from loguru import logger
from impacket.tds import MSSQL

# Local library imports
from mssqlhop.core.exceptions import ImpersonationFailedError
from mssqlhop.core.models.linked_servers import LinkedServers
from mssqlhop.core.models.server import Server
from mssqlhop.core.models.server_execution_state import ServerExecutionState
from mssqlhop.core.services.chain_walker import LinkedServerWalker
from mssqlhop.core.services.query import QueryService
from mssqlhop.core.services.user import UserService


class DatabaseContext:
    def __init__(self, server: Server, mssql_instance: MSSQL):
        self._server = server
        self._query_service = QueryService(mssql_instance)
        self._user_service = UserService(self._query_service)

        self._server.hostname = self._query_service.execution_server

        self._handle_impersonation()

    def _handle_impersonation(self) -> None:
        impersonate_target = self._server.impersonation_user

        if not impersonate_target:
            return

        if not self._user_service.can_impersonate(impersonate_target):
            raise ImpersonationFailedError(
                f"Cannot impersonate {impersonate_target} on {self._server.hostname}"
            )

        if not self._user_service.impersonate_user(impersonate_target):
            raise ImpersonationFailedError(f"Failed to impersonate user: {impersonate_target}")

        logger.success(f"Successfully impersonated user: {impersonate_target}")

    def set_linked_servers(self, linked_servers: Optional[LinkedServers]) -> None:
        """Route every following query through the given chain."""
        self._query_service.linked_servers = linked_servers
        self._user_service.clear_admin_cache()

    def validate_chain(self) -> List[ServerExecutionState]:
        """
        Walk the active linked server chain and fail on a loop.

        Raises:
            LinkedServerLoopDetectedError: If an execution state repeats
        """
        walker = LinkedServerWalker(self._query_service)
        return walker.walk(self._query_service.linked_servers)

    @property
    def user_service(self) -> UserService:
        return self._user_service

    @property
    def query_service(self) -> QueryService:
        return self._query_service

    @property
    def server(self) -> Server:
        return self._server
