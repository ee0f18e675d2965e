"""
Runtime execution state of a query: where it runs and as whom.
"""

from typing import Any, Dict, Optional, TYPE_CHECKING

from mssqlhop.core.utils.misc import compute_sha256

if TYPE_CHECKING:
    from mssqlhop.core.services.user import UserService


class ServerExecutionState:
    """
    Fingerprint of the execution context on a server, used for loop detection
    in linked server chains.

    Two states are equal when hostname, mapped user and system user match
    case-insensitively and the sysadmin flag is identical. The same login
    with different privileges is a different execution capability.

    Attributes:
        hostname: The declared name of the server executing the query
        mapped_user: The mapped database user (USER_NAME())
        system_user: The login (SYSTEM_USER)
        is_sysadmin: Whether the login holds the sysadmin role there
    """

    def __init__(
        self,
        hostname: str,
        mapped_user: str,
        system_user: str,
        is_sysadmin: bool,
    ):
        self.hostname = hostname or ""
        self.mapped_user = mapped_user or ""
        self.system_user = system_user or ""
        self.is_sysadmin = bool(is_sysadmin)

    @classmethod
    def from_row(cls, hostname: str, row: Dict[str, Any]) -> "ServerExecutionState":
        """
        Build a state from a context probe row holding the
        mapped_user, system_user and is_sysadmin columns.
        """
        return cls(
            hostname=hostname,
            mapped_user=_as_text(row.get("mapped_user")),
            system_user=_as_text(row.get("system_user")),
            is_sysadmin=_as_flag(row.get("is_sysadmin")),
        )

    @classmethod
    def from_context(cls, hostname: str, user_service: "UserService") -> "ServerExecutionState":
        """Query the current user info and admin status through a UserService."""
        mapped_user, system_user = user_service.get_info()
        return cls(
            hostname=hostname,
            mapped_user=mapped_user,
            system_user=system_user,
            is_sysadmin=user_service.is_admin(),
        )

    def _identity(self) -> tuple:
        return (
            self.hostname.upper(),
            self.mapped_user.upper(),
            self.system_user.upper(),
            self.is_sysadmin,
        )

    def state_hash(self) -> str:
        """SHA-256 of the upper-cased identity, stable across runs."""
        hostname, mapped_user, system_user, is_sysadmin = self._identity()
        return compute_sha256(f"{hostname}{mapped_user}{system_user}{is_sysadmin}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServerExecutionState):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def __str__(self) -> str:
        return (
            f"{self.hostname} (System: {self.system_user}, "
            f"Mapped: {self.mapped_user}, Sysadmin: {self.is_sysadmin})"
        )

    def __repr__(self) -> str:
        return (
            f"ServerExecutionState(hostname='{self.hostname}', mapped_user='{self.mapped_user}', "
            f"system_user='{self.system_user}', is_sysadmin={self.is_sysadmin})"
        )


def _as_text(value: Optional[Any]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _as_flag(value: Optional[Any]) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (bytes, str)):
        return _as_text(value).strip().lower() in ("1", "true")
    return int(value) == 1
