"""
Identity and privileges of the login running queries on the execution server.
"""
from typing import Dict, Optional, Tuple
from loguru import logger

from mssqlhop.core.services.query import QueryService
from mssqlhop.core.utils.misc import escape_literal


class UserService:
    """
    Answers "who am I, and what may I do" on the execution server, that is
    the last hop of the active chain.

    The sysadmin flag is cached per chain: the same server reached through
    another path, or with another login impersonated on a hop, may grant
    other privileges.
    """

    def __init__(self, query_service: QueryService):
        self._query_service = query_service
        self._admin_status_cache: Dict[Tuple[str, str], bool] = {}

        self.mapped_user: Optional[str] = None
        self.system_user: Optional[str] = None

    def _cache_key(self) -> Tuple[str, str]:
        return (
            self._query_service.linked_servers.get_chain_arguments().upper(),
            str(self._query_service.execution_server).upper(),
        )

    def is_admin(self) -> bool:
        """True if the login holds the sysadmin role on the execution server."""
        key = self._cache_key()

        if key not in self._admin_status_cache:
            self._admin_status_cache[key] = self.is_member_of_role("sysadmin")

        return self._admin_status_cache[key]

    def is_member_of_role(self, role: str) -> bool:
        """
        Check membership of a fixed server role (sysadmin, securityadmin, ...).

        A failing check is reported as "not a member".
        """
        try:
            result = self._query_service.execute_scalar(
                f"SELECT IS_SRVROLEMEMBER('{escape_literal(role)}') AS [member];"
            )
        except Exception as e:
            logger.warning(f"Cannot check membership of role {role}: {e}")
            return False

        return result is not None and int(result) == 1

    def get_info(self) -> Tuple[str, str]:
        """
        Retrieve the mapped database user and the login.

        Returns:
            Tuple containing (mapped_user, system_user)
        """
        rows = self._query_service.execute_table(
            "SELECT USER_NAME() AS [mapped_user], SYSTEM_USER AS [system_user];"
        )
        row = rows[0] if rows else {}

        self.mapped_user = str(row.get("mapped_user") or "Unknown")
        self.system_user = str(row.get("system_user") or "Unknown")

        return (self.mapped_user, self.system_user)

    def can_impersonate(self, login: str) -> bool:
        """
        Check whether the current login may run EXECUTE AS LOGIN = `login`.
        """
        if self.is_admin():
            logger.info(
                f"You can impersonate anyone on {self._query_service.execution_server} as a sysadmin"
            )
            return True

        try:
            result = self._query_service.execute_scalar(
                f"SELECT HAS_PERMS_BY_NAME('{escape_literal(login)}', 'LOGIN', 'IMPERSONATE') AS [allowed];"
            )
        except Exception as e:
            logger.warning(f"Cannot check impersonation of {login}: {e}")
            return False

        return result is not None and int(result) == 1

    def impersonate_user(self, login: str) -> bool:
        """
        Impersonate a login for the rest of the session.

        Returns:
            True if impersonation was successful; otherwise False
        """
        if self._query_service.execute_non_processing(
            f"EXECUTE AS LOGIN = '{escape_literal(login)}';"
        ) < 0:
            logger.error(f"Failed to impersonate login {login}")
            return False

        logger.info(f"Impersonated login {login} for current connection")
        self.clear_admin_cache()
        return True

    def revert_impersonation(self) -> bool:
        """
        Revert the last impersonation.

        Returns:
            True if revert was successful; otherwise False
        """
        if self._query_service.execute_non_processing("REVERT;") < 0:
            logger.error("Failed to revert impersonation")
            return False

        logger.info("Reverted impersonation, restored original login.")
        self.clear_admin_cache()
        return True

    def clear_admin_cache(self) -> None:
        self._admin_status_cache.clear()
        logger.debug("Admin status cache cleared")
