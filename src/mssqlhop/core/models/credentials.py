"""
Credentials used to log in on the directly connected SQL Server.
"""

from enum import Enum
from typing import Optional


class AuthMode(Enum):
    """How the login is performed over TDS."""

    LOCAL = "local"
    WINDOWS = "windows"
    KERBEROS = "kerberos"


class Credentials:
    """
    Login material for one connection.

    Linked server hops never see these: once logged in on the first server,
    every hop authenticates with the login mappings of its link.
    """

    def __init__(
        self,
        mode: AuthMode = AuthMode.LOCAL,
        username: str = "",
        password: str = "",
        domain: str = "",
        hashes: Optional[str] = None,
        aes_key: Optional[str] = None,
        kdc_host: Optional[str] = None,
    ):
        self.mode = mode
        self.username = username or ""
        self.password = password or ""
        self.domain = domain or ""
        self.hashes = hashes
        self.aes_key = aes_key
        self.kdc_host = kdc_host

    @classmethod
    def from_arguments(
        cls,
        username: Optional[str] = None,
        password: Optional[str] = None,
        domain: Optional[str] = None,
        hashes: Optional[str] = None,
        aes_key: Optional[str] = None,
        kdc_host: Optional[str] = None,
        windows_auth: bool = False,
        kerberos: bool = False,
    ) -> "Credentials":
        """
        Pick the authentication mode from command line flags.

        An AES key implies Kerberos; Kerberos wins over Windows authentication.
        """
        if kerberos or aes_key:
            mode = AuthMode.KERBEROS
        elif windows_auth:
            mode = AuthMode.WINDOWS
        else:
            mode = AuthMode.LOCAL

        return cls(
            mode=mode,
            username=username,
            password=password,
            domain=domain,
            hashes=hashes,
            aes_key=aes_key,
            kdc_host=kdc_host,
        )

    @property
    def needs_password(self) -> bool:
        """True when a username is set without any secret to go with it."""
        return bool(self.username) and not (self.password or self.hashes or self.aes_key)

    @property
    def principal(self) -> str:
        if self.mode != AuthMode.LOCAL and self.domain:
            return f"{self.domain}\\{self.username}"
        return self.username or "(current user)"

    def __repr__(self) -> str:
        return f"Credentials(mode={self.mode.value}, principal='{self.principal}')"
