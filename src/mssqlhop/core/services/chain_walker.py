"""
Linked server chain traversal with loop detection.

Each hop is probed through the hops before it, so the walk is strictly
sequential and performs one round trip per hop on the direct connection.
"""

from typing import Dict, List

# Third party imports
from loguru import logger

# Local library imports
from mssqlhop.core.exceptions import ChainProbeError, LinkedServerLoopDetectedError
from mssqlhop.core.models.linked_servers import LinkedServers
from mssqlhop.core.models.server_execution_state import ServerExecutionState
from mssqlhop.core.services.query import QueryService

# Read-only context probe, executed on whichever server receives it
CONTEXT_PROBE_QUERY = (
    "SELECT USER_NAME() AS [mapped_user], SYSTEM_USER AS [system_user], "
    "IS_SRVROLEMEMBER('sysadmin') AS [is_sysadmin];"
)


class LinkedServerWalker:
    """
    Walks a linked server chain hop by hop and stops as soon as an execution
    state (hostname, mapped user, system user, sysadmin flag) repeats.

    Connectivity or permission errors raised while probing a hop are
    propagated untouched: they tell nothing about the chain topology.
    """

    def __init__(self, query_service: QueryService):
        self._query_service = query_service

    def walk(self, linked_servers: LinkedServers) -> List[ServerExecutionState]:
        """
        Probe every hop of the chain, in order.

        Args:
            linked_servers: The chain to validate

        Returns:
            The execution state reached at each hop

        Raises:
            LinkedServerLoopDetectedError: If a state repeats before the final hop
            ChainProbeError: If a hop answered the probe without any row
        """
        seen: Dict[ServerExecutionState, int] = {}
        path: List[str] = []
        states: List[ServerExecutionState] = []

        for position, hop in enumerate(linked_servers):
            state = self.probe(linked_servers, position)

            if state in seen:
                logger.debug(f"Path walked so far: {' -> '.join(path)}")
                raise LinkedServerLoopDetectedError(
                    hostname=hop.hostname,
                    first_position=seen[state],
                    repeated_position=position,
                )

            seen[state] = position
            path.append(hop.hostname)
            states.append(state)
            logger.debug(f"Hop {position}: {state}")

        return states

    def probe(self, linked_servers: LinkedServers, position: int) -> ServerExecutionState:
        """
        Read the execution state reached at the hop `position` of the chain.

        The probe always travels through OPENQUERY, which only needs data
        access on the links and is read-only.
        """
        hostname = linked_servers.hops[position].hostname

        statement = linked_servers.prefix(position + 1).build_select_openquery_chain(
            CONTEXT_PROBE_QUERY
        )
        logger.debug(f"Probing hop {position} ({hostname})")

        rows = self._query_service.execute_table(statement, linked=False)

        if not rows:
            raise ChainProbeError(hostname, position)

        return ServerExecutionState.from_row(hostname, rows[0])
