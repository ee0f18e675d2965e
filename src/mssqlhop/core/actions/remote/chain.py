# Built-in imports
from typing import List, Optional

# Third party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.exceptions import LinkedServerLoopDetectedError
from mssqlhop.core.models.server_execution_state import ServerExecutionState
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils.formatters import OutputFormatter


@ActionFactory.register("chain", "Walk the active linked server chain hop by hop and detect loops")
class Chain(BaseAction):
    """
    Probes each hop of the active linked server chain (-l) through OPENQUERY
    and shows the execution context reached there.

    The walk stops on the first hop reaching an execution context already
    seen earlier in the chain (same server, same logins, same sysadmin flag).
    """

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        pass

    def execute(self, database_context: DatabaseContext) -> Optional[List[ServerExecutionState]]:
        linked_servers = database_context.query_service.linked_servers

        if linked_servers.is_empty:
            logger.warning("No linked server chain in use. Provide one with -l.")
            return None

        logger.info(f"Walking chain: {' -> '.join(linked_servers.server_names)}")

        try:
            states = database_context.validate_chain()
        except LinkedServerLoopDetectedError as loop:
            logger.error(str(loop))
            logger.error(
                f"Hops {loop.first_position} and {loop.repeated_position} share the same execution context"
            )
            return None

        print(
            OutputFormatter.convert_list_of_dicts(
                [
                    {
                        "Hop": position,
                        "Server": state.hostname,
                        "Impersonation": hop.impersonation_user or "-",
                        "System User": state.system_user,
                        "Mapped User": state.mapped_user,
                        "Sysadmin": state.is_sysadmin,
                    }
                    for position, (hop, state) in enumerate(zip(linked_servers, states))
                ]
            )
        )
        logger.success(f"Chain of {len(states)} hop(s) is loop-free")
        return states
