"""
Ordered chain of linked server hops, and the statements routing a query
through it.
"""

from enum import Enum
from typing import Iterator, List, Optional, Sequence, Union

from loguru import logger

from mssqlhop.core.exceptions import EmptyChainError
from mssqlhop.core.models.hop import Hop
from mssqlhop.core.utils.misc import escape_literal


class ChainMode(Enum):
    """How a query is forwarded along the chain."""

    READ_ONLY_OPENQUERY = "openquery"
    REMOTE_PROCEDURE_CALL = "rpc"


class LinkedServers:
    """
    The hops between the connected instance and the execution server.

    Only the hop list is stored: names, notation and built statements are
    derived from it on demand, so they never go out of sync. OPENQUERY is
    the default; `use_remote_procedure_call = True` switches to EXEC AT.
    """

    def __init__(self, chain_input: Optional[Union[str, Sequence[Hop]]] = None):
        """
        Args:
            chain_input: Notation such as "SQL02:login,SQL03", a sequence of
                hops, or None for an empty chain

        Raises:
            MalformedChainError: If the notation cannot be parsed
        """
        if chain_input is None:
            self._hops: List[Hop] = []
        elif isinstance(chain_input, str):
            self._hops = self._parse_server_chain(chain_input)
        elif isinstance(chain_input, (list, tuple)):
            if not all(isinstance(hop, Hop) for hop in chain_input):
                raise TypeError("chain_input sequence must only contain Hop objects")
            self._hops = list(chain_input)
        else:
            raise TypeError("chain_input must be a string, a sequence of Hop objects, or None")

        self.use_remote_procedure_call: bool = False

    @classmethod
    def parse_chain(cls, chain_input: str) -> "LinkedServers":
        return cls(chain_input)

    @property
    def hops(self) -> List[Hop]:
        """A copy of the hops, first linked server first."""
        return list(self._hops)

    @property
    def is_empty(self) -> bool:
        return len(self._hops) == 0

    @property
    def server_names(self) -> List[str]:
        return [hop.hostname for hop in self._hops]

    @property
    def mode(self) -> ChainMode:
        if self.use_remote_procedure_call:
            return ChainMode.REMOTE_PROCEDURE_CALL
        return ChainMode.READ_ONLY_OPENQUERY

    def add_to_chain(self, new_server: str, impersonation_user: Optional[str] = None) -> None:
        """
        Append a hop at the end of the chain.

        Raises:
            InvalidHopError: If the server name is empty
        """
        logger.debug(f"Appending {new_server} to the chain")
        self._hops.append(Hop(new_server, impersonation_user))

    def prefix(self, count: int) -> "LinkedServers":
        """
        New chain made of the first `count` hops, same chaining method.

        Raises:
            ValueError: If count is negative or larger than the chain
        """
        if count < 0 or count > len(self._hops):
            raise ValueError(f"Cannot take {count} hops from a chain of {len(self._hops)}")

        sub_chain = LinkedServers(self._hops[:count])
        sub_chain.use_remote_procedure_call = self.use_remote_procedure_call
        return sub_chain

    def get_chain_parts(self) -> List[str]:
        """Notation of every hop, e.g. ["SQL02:login", "SQL03"]."""
        return [str(hop) for hop in self._hops]

    def get_chain_arguments(self) -> str:
        """Chain notation, e.g. "SQL02:login,SQL03"; parses back to an equal chain."""
        return ",".join(self.get_chain_parts())

    @staticmethod
    def _parse_server_chain(chain_input: str) -> List[Hop]:
        # No escaping for commas or colons inside hostnames
        if not chain_input or not chain_input.strip():
            return []

        return [Hop.parse(server_string) for server_string in chain_input.split(",")]

    def build_chain(self, query: str, mode: Optional[ChainMode] = None) -> str:
        """
        Statement to send to the connected instance so `query` runs on the last hop.

        Raises:
            EmptyChainError: If the chain has no hop
        """
        mode = mode or self.mode

        if mode == ChainMode.REMOTE_PROCEDURE_CALL:
            return self.build_remote_procedure_call_chain(query)
        return self.build_select_openquery_chain(query)

    def build_select_openquery_chain(self, query: str) -> str:
        """
        Nest one OPENQUERY per hop.

        Read-only: the innermost query must return a single result set, and
        no RPC Out is needed on the links.

        Raises:
            EmptyChainError: If the chain has no hop
        """
        if self.is_empty:
            raise EmptyChainError("Cannot build an OPENQUERY chain without linked servers.")

        return self._openquery_level(self._hops, query)

    @classmethod
    def _openquery_level(cls, hops: Sequence[Hop], query: str, depth: int = 0) -> str:
        # The literal at `depth` is delimited by 2**depth quotes, so text
        # running on that hop has its quotes turned into 2**(depth + 1)
        hop = hops[0]
        ticks_repr = _ticks(depth)
        inner_ticks = _ticks(depth + 1)

        if len(hops) == 1:
            inner = _impersonate(hop.impersonation_user, query).replace("'", inner_ticks)
        else:
            inner = cls._openquery_level(hops[1:], query, depth + 1)

            if hop.impersonation_user:
                login = escape_literal(hop.impersonation_user)
                prologue = f"EXECUTE AS LOGIN = '{login}'; ".replace("'", inner_ticks)
                inner = f"{prologue}{inner}; REVERT;"

        return (
            f"SELECT * FROM OPENQUERY({_bracket(hop.hostname)}, "
            f"{ticks_repr}{inner}{ticks_repr})"
        )

    def build_remote_procedure_call_chain(self, query: str) -> str:
        """
        Nest one EXEC (...) AT per hop, built from the last hop outwards.

        Every link of the chain needs RPC Out.

        Raises:
            EmptyChainError: If the chain has no hop
        """
        if self.is_empty:
            raise EmptyChainError("Cannot build an EXEC AT chain without linked servers.")

        statement = query
        for hop in reversed(self._hops):
            statement = _impersonate(hop.impersonation_user, statement)
            statement = f"EXEC ('{escape_literal(statement)}') AT {_bracket(hop.hostname)}"

        return statement

    def copy(self) -> "LinkedServers":
        """Independent chain; hops are immutable and shared."""
        clone = LinkedServers(self._hops)
        clone.use_remote_procedure_call = self.use_remote_procedure_call
        return clone

    def __len__(self) -> int:
        return len(self._hops)

    def __iter__(self) -> Iterator[Hop]:
        return iter(list(self._hops))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LinkedServers):
            return NotImplemented
        return self._hops == other._hops

    def __str__(self) -> str:
        return f"LinkedServers({self.get_chain_arguments() or 'empty'})"

    def __repr__(self) -> str:
        return f"LinkedServers(hops={self.get_chain_parts()!r}, mode={self.mode.value})"


def _ticks(depth: int) -> str:
    return "'" * (2**depth)


def _bracket(hostname: str) -> str:
    return "[" + hostname.replace("]", "]]") + "]"


def _impersonate(login: str, query: str) -> str:
    """Wrap a statement so it runs as `login`, then reverts."""
    if not login:
        return query
    return f"EXECUTE AS LOGIN = '{escape_literal(login)}'; {query.strip().rstrip(';')}; REVERT;"
