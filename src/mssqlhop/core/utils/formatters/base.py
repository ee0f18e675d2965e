from abc import ABC, abstractmethod
from typing import Any, Dict, List


class IOutputFormatter(ABC):
    """Renders tabular results to text."""

    @property
    @abstractmethod
    def format_name(self) -> str:
        pass

    @abstractmethod
    def convert_dict(
        self, data: Dict[str, Any], column_one_header: str, column_two_header: str
    ) -> str:
        pass

    @abstractmethod
    def convert_list_of_dicts(self, data: List[Dict[str, Any]]) -> str:
        pass

    @abstractmethod
    def convert_list(self, data: List[Any], column_name: str) -> str:
        pass


def normalize_value(value: Any) -> str:
    """
    Normalizes a value for display in a table.
    Decodes bytes to UTF-8 strings, converts None to empty string, etc.
    """
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    elif value is None:
        return ""
    return str(value)
