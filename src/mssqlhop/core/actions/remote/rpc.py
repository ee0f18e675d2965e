# Built-in imports
from enum import Enum
from typing import Any, Dict, List, Optional

# Third party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.models.linked_servers import ChainMode
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils.formatters import OutputFormatter
from mssqlhop.core.utils.misc import escape_literal


class RpcActionMode(Enum):
    ENABLE = "true"
    DISABLE = "false"


_ENABLE_WORDS = ("add", "on", "1", "true", "enable")
_DISABLE_WORDS = ("del", "off", "0", "false", "disable")


@ActionFactory.register("rpc", "Enable or disable RPC Out option on a linked server")
class RemoteProcedureCall(BaseAction):
    """
    Toggle the 'rpc out' option of a linked server defined on the execution server.

    Chaining through a link with EXEC AT needs RPC Out; without it only
    OPENQUERY (read-only) gets through.

        rpc on SQL02     (also: add, 1, true, enable)
        rpc off SQL02    (also: del, 0, false, disable)
    """

    ACTION_ALIASES = {
        **{word: RpcActionMode.ENABLE for word in _ENABLE_WORDS},
        **{word: RpcActionMode.DISABLE for word in _DISABLE_WORDS},
    }

    def __init__(self):
        super().__init__()
        self._action: Optional[RpcActionMode] = None
        self._linked_server_name: str = ""

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        _, positional = self.parse_arguments(
            additional_arguments=additional_arguments, argument_list=argument_list
        )

        if len(positional) != 2:
            raise ValueError("Usage: rpc <on|off> <linked server>")

        mode, self._linked_server_name = positional
        self._action = self.ACTION_ALIASES.get(mode.lower())

        if self._action is None:
            raise ValueError(
                f"Invalid action '{mode}', expected one of: {', '.join(sorted(self.ACTION_ALIASES))}"
            )

    def execute(self, database_context: DatabaseContext) -> Optional[List[Dict[str, Any]]]:
        verb = "enabled" if self._action is RpcActionMode.ENABLE else "disabled"
        target = self._linked_server_name

        logger.info(f"Setting 'rpc out' to {self._action.value} for [{target}]")

        try:
            result = database_context.query_service.execute_table(
                f"EXEC sp_serveroption @server = '{escape_literal(target)}', "
                f"@optname = 'rpc out', @optvalue = '{self._action.value}';",
                mode=ChainMode.REMOTE_PROCEDURE_CALL,
            )
        except Exception as e:
            logger.error(f"Cannot change RPC Out of [{target}]: {e}")
            raise

        if result:
            print(OutputFormatter.convert_list_of_dicts(result))

        logger.success(f"RPC Out {verb} on [{target}]")
        return result

    def get_arguments(self) -> List[str]:
        return [
            f"Mode: {'/'.join(_ENABLE_WORDS)} or {'/'.join(_DISABLE_WORDS)}",
            "Linked server name",
        ]
