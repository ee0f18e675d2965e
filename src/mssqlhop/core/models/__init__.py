"""Models for SQL Server connections, linked server chains and execution state."""

from mssqlhop.core.models.credentials import AuthMode, Credentials
from mssqlhop.core.models.server import Server
from mssqlhop.core.models.hop import Hop
from mssqlhop.core.models.server_execution_state import ServerExecutionState
from mssqlhop.core.models.linked_servers import ChainMode, LinkedServers

__all__ = [
    "Server",
    "AuthMode",
    "Credentials",
    "Hop",
    "ServerExecutionState",
    "ChainMode",
    "LinkedServers",
]
