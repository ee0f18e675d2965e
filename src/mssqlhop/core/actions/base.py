# Built-in imports
import shlex
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

# Third party imports
from loguru import logger


class BaseAction(ABC):
    """
    An operation runnable from the command line or the terminal.

    Arguments are validated first, then the action executes against a
    database context, so on the execution server of the active chain.
    """

    @abstractmethod
    def validate_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> None:
        """Raises ValueError on bad arguments."""

    @abstractmethod
    def execute(self, database_context=None) -> Optional[object]:
        pass

    @staticmethod
    def tokenize(additional_arguments: str) -> List[str]:
        """Split a raw argument string like a shell would."""
        if not additional_arguments or not additional_arguments.strip():
            return []

        try:
            return shlex.split(additional_arguments)
        except ValueError as e:
            logger.debug(f"Unbalanced quotes ({e}), splitting on whitespace")
            return additional_arguments.split()

    def parse_arguments(
        self, additional_arguments: str = "", argument_list: Optional[List[str]] = None
    ) -> Tuple[Dict[str, str], List[str]]:
        """
        Separate flags from positional arguments.

        Accepted flag forms: `--name=value`, `--name value`, `-n value`;
        a flag without value maps to an empty string.

        Returns:
            (flags, positional)
        """
        tokens = list(argument_list) if argument_list is not None else self.tokenize(additional_arguments)

        flags: Dict[str, str] = {}
        positional: List[str] = []

        while tokens:
            token = tokens.pop(0).strip()
            is_flag = token.startswith("--") or (token.startswith("-") and len(token) == 2)

            if not is_flag:
                positional.append(token)
            elif "=" in token:
                name, value = token.lstrip("-").split("=", 1)
                flags[name] = value
            elif tokens and not tokens[0].startswith("-"):
                flags[token.lstrip("-")] = tokens.pop(0)
            else:
                flags[token.lstrip("-")] = ""

        logger.debug(f"Flags: {flags}, positional: {positional}")
        return flags, positional

    def get_arguments(self) -> List[str]:
        """One description per accepted argument, for the help screens."""
        return []

    def get_help(self) -> str:
        return self.__doc__.strip() if self.__doc__ else "No help available."
