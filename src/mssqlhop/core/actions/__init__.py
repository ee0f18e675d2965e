"""
Actions package.
Import all action subpackages to ensure actions are registered with the factory.
"""

import mssqlhop.core.actions.execution as execution
import mssqlhop.core.actions.database as database
import mssqlhop.core.actions.remote as remote


__all__ = ["execution", "database", "remote"]
