"""
Database actions for SQL Server enumeration.
"""

from mssqlhop.core.actions.database.impersonate import Impersonation
from mssqlhop.core.actions.database.info import Info
from mssqlhop.core.actions.database.whoami import Whoami

__all__ = ["Impersonation", "Info", "Whoami"]
