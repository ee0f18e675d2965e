# Built-in imports
from typing import Any, Dict, List, Optional, Set

# Third party imports
from loguru import logger

# Local imports
from mssqlhop.core.actions.base import BaseAction
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.actions.remote.links import get_linked_servers, is_sql_server_link
from mssqlhop.core.models.hop import Hop
from mssqlhop.core.models.linked_servers import LinkedServers
from mssqlhop.core.models.server_execution_state import ServerExecutionState
from mssqlhop.core.services.database import DatabaseContext


@ActionFactory.register("linkmap", "Recursively map every reachable linked server chain")
class LinkMap(BaseAction):
    """
    Recursively explores all accessible linked server chains, mapping execution paths.

    Each branch keeps its own set of visited execution states: reaching the
    same server with the same logins and privileges twice on one path is a
    loop, and the branch stops there. When a link is bound to a specific
    local login, the login is impersonated on the server owning the link.
    """

    MAX_LIMIT = 15

    def __init__(self):
        super().__init__()
        self._limit: int = 5
        self._discovered_chains: List[List[Dict[str, Any]]] = []

    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        flags, positional = self.parse_arguments(
            additional_arguments=additional_arguments, argument_list=argument_list
        )

        raw_limit = flags.get("limit", flags.get("l", positional[0] if positional else None))
        if raw_limit is None:
            return

        try:
            self._limit = int(raw_limit)
        except ValueError:
            raise ValueError(f"Invalid limit: {raw_limit}")

        if not 1 <= self._limit <= self.MAX_LIMIT:
            raise ValueError(f"Limit must be between 1 and {self.MAX_LIMIT}.")

    def execute(self, database_context: DatabaseContext) -> Optional[List[List[Dict[str, Any]]]]:
        logger.info(f"Maximum recursion depth: {self._limit}")

        query_service = database_context.query_service
        user_service = database_context.user_service
        origin_chain = query_service.linked_servers.copy()

        links = get_linked_servers(query_service)
        sql_links = [row for row in links if is_sql_server_link(row)]

        for row in links:
            if not is_sql_server_link(row):
                logger.info(f"Other linked server (OPENQUERY only): {row['Link']} ({row['Provider']})")

        if not sql_links:
            logger.warning("No SQL Server linked servers to explore.")
            return None

        # The starting point counts as visited, to spot chains coming back to it
        starting_state = ServerExecutionState.from_context(
            query_service.execution_server, user_service
        )
        starting_entry = (
            f"{query_service.execution_server} "
            f"({starting_state.system_user} [{starting_state.mapped_user}])"
        )

        self._discovered_chains = []

        try:
            for row in sql_links:
                self._explore(
                    database_context,
                    parent_chain=origin_chain,
                    target_server=row["Link"],
                    required_login=row.get("Local Login"),
                    parent_login=starting_state.system_user,
                    current_path=[],
                    visited={starting_state.state_hash()},
                    depth=0,
                )
        finally:
            database_context.set_linked_servers(origin_chain)

        if not self._discovered_chains:
            logger.warning("No accessible linked server chains found.")
            return None

        logger.success(f"Found {len(self._discovered_chains)} accessible chain(s)")
        self._display_chains(starting_entry)

        return self._discovered_chains

    def _explore(
        self,
        database_context: DatabaseContext,
        parent_chain: LinkedServers,
        target_server: str,
        required_login: Optional[str],
        parent_login: str,
        current_path: List[Dict[str, Any]],
        visited: Set[str],
        depth: int,
    ) -> None:
        if depth >= self._limit:
            logger.trace(f"Limit {self._limit} reached at server '{target_server}'. Backtracking.")
            return

        user_service = database_context.user_service
        query_service = database_context.query_service

        chain = parent_chain.copy()
        impersonated = ""

        if required_login and required_login.lower() != parent_login.lower():
            logger.trace(f"Link to '{target_server}' requires local login '{required_login}'")
            if chain.is_empty:
                logger.trace("Impersonation on the direct connection is left to the target syntax (host:login)")
            else:
                chain = _impersonate_on_last_hop(chain, required_login)
                impersonated = required_login

        try:
            chain.add_to_chain(target_server)
            database_context.set_linked_servers(chain)

            actual_name = query_service.execute_scalar("SELECT @@SERVERNAME AS [name];")
            state = ServerExecutionState.from_context(target_server, user_service)
        except Exception as e:
            logger.trace(f"Failed to reach '{target_server}': {e}")
            return

        state_hash = state.state_hash()
        if state_hash in visited:
            logger.trace(
                f"Loop detected at server '{target_server}' with user '{state.system_user}'. Skipping."
            )
            return

        visited = visited | {state_hash}

        entry = {
            "ServerName": target_server,
            "ActualServerName": str(actual_name) if actual_name else target_server,
            "LoggedIn": state.system_user,
            "Mapped": state.mapped_user,
            "ImpersonatedUser": impersonated,
            "IsSysadmin": state.is_sysadmin,
            "Chain": chain.copy(),
        }
        path = current_path + [entry]
        self._discovered_chains.append(path)

        try:
            remote_links = get_linked_servers(query_service)
        except Exception as e:
            logger.trace(f"Failed to enumerate links on {target_server}: {e}")
            return

        for row in remote_links:
            if not is_sql_server_link(row):
                logger.trace(f"Non-SQL linked server on '{target_server}': {row['Link']}")
                continue

            self._explore(
                database_context,
                parent_chain=chain,
                target_server=row["Link"],
                required_login=row.get("Local Login"),
                parent_login=state.system_user,
                current_path=path,
                visited=visited,
                depth=depth + 1,
            )

    def _display_chains(self, starting_entry: str) -> None:
        privileged = [path for path in self._discovered_chains if _is_privileged(path[-1])]
        standard = [path for path in self._discovered_chains if not _is_privileged(path[-1])]

        if privileged:
            logger.success(f"Privileged paths ({len(privileged)}) - sysadmin or dbo at final server:")
            self._print_paths(privileged, starting_entry)

        if standard:
            logger.info(f"Standard paths ({len(standard)}):")
            self._print_paths(standard, starting_entry)

    @staticmethod
    def _print_paths(
        paths: List[List[Dict[str, Any]]], starting_entry: str
    ) -> None:
        for path in paths:
            parts = [starting_entry]
            for entry in path:
                name = entry["ServerName"]
                if name.lower() != entry["ActualServerName"].lower():
                    name = f"{name} [{entry['ActualServerName']}]"
                marker = " ★" if _is_privileged(entry) else ""
                arrow = f"-- {entry['ImpersonatedUser']} -->" if entry["ImpersonatedUser"] else "--->"
                parts.append(f"{arrow} {name} ({entry['LoggedIn']} [{entry['Mapped']}]){marker}")

            print()
            print(" ".join(parts))
            logger.info(f"To use this chain: -l {path[-1]['Chain'].get_chain_arguments()}")


def _impersonate_on_last_hop(chain: LinkedServers, login: str) -> LinkedServers:
    hops = chain.hops
    replaced = hops[-1].impersonation_user
    if replaced and replaced.lower() != login.lower():
        logger.trace(
            f"Login '{replaced}' on '{hops[-1].hostname}' replaced by '{login}' required by the next link"
        )
    hops[-1] = Hop(hops[-1].hostname, login)

    rebuilt = LinkedServers(hops)
    rebuilt.use_remote_procedure_call = chain.use_remote_procedure_call
    return rebuilt


def _is_privileged(entry: Dict[str, Any]) -> bool:
    return bool(entry["IsSysadmin"]) or str(entry["Mapped"]).lower() == "dbo"
