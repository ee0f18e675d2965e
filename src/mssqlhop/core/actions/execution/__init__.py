"""Actions executing T-SQL or operating system commands on the execution server."""

from mssqlhop.core.actions.execution.query import Query
from mssqlhop.core.actions.execution.xpcmd import XpCmd

__all__ = ["Query", "XpCmd"]
