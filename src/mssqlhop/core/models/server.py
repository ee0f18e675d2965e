"""
Server model representing the SQL Server instance we connect to.
"""

import re
from typing import Optional
from loguru import logger


# host[,port][:impersonation_user][@database], host may be bracketed: [SQL:01]
SERVER_PATTERN = re.compile(
    r"^(?P<hostname>\[[^\]]+\]|[^,:@\[\]]+)"
    r"(?:,(?P<port>[^:@]*))?"
    r"(?::(?P<user>[^@]*))?"
    r"(?:@(?P<database>.*))?$"
)


class Server:
    """
    The directly connected SQL Server, head of every linked server chain.

    `impersonation_user` is impersonated right after login, before any hop.
    `mapped_user` and `system_user` are filled once logged in.
    """

    def __init__(
        self,
        hostname: str,
        port: int = 1433,
        database: Optional[str] = None,
        impersonation_user: Optional[str] = None,
    ):
        if not hostname or not hostname.strip():
            raise ValueError("Hostname cannot be null or empty.")

        if not (1 <= port <= 65535):
            raise ValueError(f"Port must be between 1 and 65535, got {port}")

        self.hostname = hostname.strip()
        self._version: Optional[str] = None
        self.port = port
        self.database = database.strip() if database and database.strip() else None

        self.impersonation_user = impersonation_user.strip() if impersonation_user else ""
        self.mapped_user = ""
        self.system_user = ""

    @property
    def version(self) -> Optional[str]:
        return self._version

    @version.setter
    def version(self, value: Optional[str]) -> None:
        self._version = value
        if self.legacy:
            logger.warning(f"SQL Server 2016 or older detected ({value})")

    @property
    def major_version(self) -> int:
        """Leading number of the version string, 0 when unknown."""
        head = (self._version or "").strip().split(".")[0]
        return int(head) if head.isdigit() else 0

    @property
    def legacy(self) -> bool:
        return 0 < self.major_version <= 13

    @classmethod
    def parse_server(cls, server_input: str) -> "Server":
        """
        Parses a server string in the format "hostname[,port][:impersonation_user][@database]".

        Args:
            server_input: Server string (e.g., "SQL01", "SQL01,1434:sa@master", "[SQL:01]")

        Returns:
            A Server instance

        Raises:
            ValueError: If the server input format is invalid

        Examples:
            >>> Server.parse_server("192.168.1.100,1434").port
            1434
            >>> Server.parse_server("SQL01:sa").impersonation_user
            'sa'
        """
        if not server_input or not server_input.strip():
            raise ValueError("Server input cannot be null or empty.")

        match = SERVER_PATTERN.match(server_input.strip())
        if not match:
            raise ValueError(
                f"Invalid target format: {server_input}. "
                "Expected 'hostname[,port][:impersonation_user][@database]'"
            )

        hostname = match.group("hostname")
        if hostname.startswith("["):
            hostname = hostname[1:-1]

        port = 1433
        if match.group("port") is not None:
            try:
                port = int(match.group("port"))
            except ValueError:
                raise ValueError(f"Invalid port in target: {server_input}")

        return cls(
            hostname=hostname,
            port=port,
            database=match.group("database"),
            impersonation_user=match.group("user"),
        )

    def __str__(self) -> str:
        base = f"{self.hostname}:{self.port}"
        if self.database:
            base += f"/{self.database}"
        if self.impersonation_user:
            base += f" (impersonating: {self.impersonation_user})"
        return base

    def __repr__(self) -> str:
        return (
            f"Server(hostname='{self.hostname}', port={self.port}, "
            f"database='{self.database}', version='{self.version}', "
            f"legacy={self.legacy})"
        )
