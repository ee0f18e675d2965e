"""
Login on the directly connected SQL Server over impacket's TDS.
"""

from typing import Optional
from loguru import logger
from impacket.tds import MSSQL

from mssqlhop.core.exceptions import AuthenticationFailedError
from mssqlhop.core.models.credentials import AuthMode, Credentials
from mssqlhop.core.models.server import Server


class AuthenticationService:
    """
    Owns the single TDS connection every query, chained or not, travels on.

    Usable as a context manager, which closes the connection on exit.
    """

    def __init__(
        self,
        server: Server,
        credentials: Credentials,
        remote_name: Optional[str] = None,
    ):
        """
        Args:
            server: The server to connect to (hostname may be an IP address)
            credentials: Login material and authentication mode
            remote_name: Name used for the Kerberos SPN, defaults to the hostname
        """
        self.server = server
        self.credentials = credentials
        self.connection: Optional[MSSQL] = None
        self._remote_name = remote_name or server.hostname

    def authenticate(self) -> MSSQL:
        """
        Open the connection and log in.

        Returns:
            The authenticated impacket connection

        Raises:
            AuthenticationFailedError: If the server refused the login
        """
        self.connection = MSSQL(
            address=self.server.hostname,
            port=self.server.port,
            remoteName=self._remote_name,
        )
        self.connection.connect()
        logger.debug(f"TCP connection established to {self.server.hostname}:{self.server.port}")

        logger.info(
            f"Attempting {self.credentials.mode.value} authentication as {self.credentials.principal}"
        )

        if not self._login():
            self.disconnect()
            raise AuthenticationFailedError(
                f"Login refused by {self.server.hostname}:{self.server.port} "
                f"for {self.credentials.principal}"
            )

        if getattr(self.connection, "mssql_version", None):
            self.server.version = str(self.connection.mssql_version)
            logger.debug(f"Server version: {self.server.version}")

        logger.success(f"Successfully authenticated to {self.server.hostname}")
        return self.connection

    def _login(self) -> bool:
        credentials = self.credentials

        if credentials.mode == AuthMode.KERBEROS:
            return self.connection.kerberosLogin(
                database=self.server.database,
                username=credentials.username,
                password=credentials.password,
                domain=credentials.domain,
                hashes=credentials.hashes,
                aesKey=credentials.aes_key or "",
                kdcHost=credentials.kdc_host,
            )

        return self.connection.login(
            database=self.server.database,
            username=credentials.username,
            password=credentials.password,
            domain=credentials.domain,
            hashes=credentials.hashes,
            useWindowsAuth=credentials.mode == AuthMode.WINDOWS,
        )

    def connect(self) -> bool:
        """
        Same as authenticate(), logging the failure instead of raising.

        Returns:
            True if authentication was successful; otherwise False
        """
        try:
            self.authenticate()
        except AuthenticationFailedError as e:
            logger.error(str(e))
            return False
        except Exception as e:
            logger.error(f"Cannot reach {self.server.hostname}:{self.server.port}: {e}")
            self.disconnect()
            return False
        return True

    def disconnect(self) -> None:
        """Close the connection if it exists."""
        if self.connection is None:
            return

        try:
            self.connection.disconnect()
            logger.debug("Connection closed")
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
        finally:
            self.connection = None

    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.socket is not None

    def __enter__(self) -> "AuthenticationService":
        self.authenticate()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
