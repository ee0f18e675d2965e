"""Linked server actions."""

from mssqlhop.core.actions.remote.chain import Chain
from mssqlhop.core.actions.remote.links import Links
from mssqlhop.core.actions.remote.linkmap import LinkMap
from mssqlhop.core.actions.remote.rpc import RemoteProcedureCall

__all__ = ["Chain", "Links", "LinkMap", "RemoteProcedureCall"]
