"""
A single hop of a linked server chain.
"""

from typing import Optional

from mssqlhop.core.exceptions import InvalidHopError, MalformedChainError


class Hop:
    """
    One linked server of a chain, with the login to impersonate once there.

    Hops are immutable: building a different chain means building new hops.
    The hostname is compared case-insensitively, as SQL Server does for
    linked server names.
    """

    __slots__ = ("_hostname", "_impersonation_user")

    def __init__(self, hostname: str, impersonation_user: Optional[str] = None):
        if not hostname or not hostname.strip():
            raise InvalidHopError("Server name cannot be null or empty.")

        self._hostname = hostname.strip()
        self._impersonation_user = impersonation_user.strip() if impersonation_user else ""

    @property
    def hostname(self) -> str:
        return self._hostname

    @property
    def impersonation_user(self) -> str:
        """Login to impersonate on this hop, empty when none."""
        return self._impersonation_user

    @classmethod
    def parse(cls, token: str) -> "Hop":
        """
        Parses a chain token in the format "hostname[:impersonation_user]".

        Raises:
            MalformedChainError: If the hostname is empty or the token holds
                more than one impersonation segment
        """
        parts = token.strip().split(":")

        if len(parts) > 2:
            raise MalformedChainError(
                f"Invalid chain element: '{token}'. Expected 'hostname[:impersonation_user]'",
                token=token,
            )

        if not parts[0].strip():
            raise MalformedChainError(
                f"Empty hostname in chain element: '{token}'", token=token
            )

        return cls(parts[0], parts[1] if len(parts) == 2 else None)

    def __str__(self) -> str:
        if self._impersonation_user:
            return f"{self._hostname}:{self._impersonation_user}"
        return self._hostname

    def __repr__(self) -> str:
        return f"Hop(hostname='{self._hostname}', impersonation_user='{self._impersonation_user}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Hop):
            return NotImplemented
        return (
            self._hostname.upper() == other._hostname.upper()
            and self._impersonation_user == other._impersonation_user
        )

    def __hash__(self) -> int:
        return hash((self._hostname.upper(), self._impersonation_user))
