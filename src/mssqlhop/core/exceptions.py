"""
Exceptions raised by mssqlhop.

Chain parsing errors also derive from ValueError, since every argument
problem is reported to the operator as a ValueError by the CLI and terminal.
"""

from typing import Optional


class MssqlHopError(Exception):
    """Base class for all mssqlhop errors."""


class MalformedChainError(MssqlHopError, ValueError):
    """The chain notation could not be parsed."""

    def __init__(self, message: str, token: Optional[str] = None):
        super().__init__(message)
        self.token = token


class InvalidHopError(MssqlHopError, ValueError):
    """A hop was added with an empty hostname."""


class EmptyChainError(MssqlHopError, ValueError):
    """A chained query was requested on a chain without any hop."""


class LinkedServerLoopDetectedError(MssqlHopError):
    """
    The same execution state was reached twice while walking a chain.

    Attributes:
        hostname: The hop whose execution state repeated
        first_position: Index of the hop where the state was first seen
        repeated_position: Index of the hop where it was seen again
    """

    def __init__(self, hostname: str, first_position: int, repeated_position: int):
        self.hostname = hostname
        self.first_position = first_position
        self.repeated_position = repeated_position
        super().__init__(
            f"Linked server loop detected at '{hostname}' (hop {repeated_position}): "
            f"same execution state as hop {first_position}"
        )


class ChainProbeError(MssqlHopError):
    """A hop answered the execution-state probe without any row."""

    def __init__(self, hostname: str, position: int):
        self.hostname = hostname
        self.position = position
        super().__init__(
            f"No execution context returned by '{hostname}' (hop {position})"
        )


class ActionNotFoundError(MssqlHopError, KeyError):
    """No action is registered under the requested name."""

    def __init__(self, action_name: str):
        self.action_name = action_name
        super().__init__(action_name)

    def __str__(self) -> str:
        return f"Unknown action: {self.action_name}"


class AuthenticationFailedError(MssqlHopError):
    """The SQL Server refused the provided credentials."""


class ImpersonationFailedError(MssqlHopError):
    """EXECUTE AS LOGIN could not be applied on the connection."""
