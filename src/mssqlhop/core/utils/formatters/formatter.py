"""
Process-wide output format, switched from the terminal with `!format`.
"""

from typing import Any, Dict, List, Type
from loguru import logger

from mssqlhop.core.utils.formatters.base import IOutputFormatter
from mssqlhop.core.utils.formatters.markdown import MarkdownFormatter
from mssqlhop.core.utils.formatters.csv import CsvFormatter

# Name -> formatter, first entry is the default
FORMATTERS: Dict[str, Type[IOutputFormatter]] = {
    "markdown": MarkdownFormatter,
    "csv": CsvFormatter,
}

ALIASES = {"md": "markdown"}


class OutputFormatter:
    """Forwards every conversion to the selected formatter."""

    _current_formatter: IOutputFormatter = MarkdownFormatter()

    @classmethod
    def current_format(cls) -> str:
        return cls._current_formatter.format_name

    @classmethod
    def set_format(cls, format_name: str) -> None:
        """
        Raises:
            ValueError: If no formatter goes by that name
        """
        name = (format_name or "").lower()
        name = ALIASES.get(name, name)

        if name not in FORMATTERS:
            raise ValueError(
                f"Unknown output format: '{format_name}'. Available formats: "
                f"{', '.join(cls.get_available_formats())}"
            )

        cls._current_formatter = FORMATTERS[name]()
        logger.debug(f"Output format set to: {name}")

    @classmethod
    def get_available_formats(cls) -> List[str]:
        return list(FORMATTERS)

    @classmethod
    def convert_dict(cls, data: Dict[str, Any], column_one_header: str, column_two_header: str) -> str:
        return cls._current_formatter.convert_dict(data, column_one_header, column_two_header)

    @classmethod
    def convert_list_of_dicts(cls, data: List[Dict[str, Any]]) -> str:
        return cls._current_formatter.convert_list_of_dicts(data)

    @classmethod
    def convert_list(cls, data: List[Any], column_name: str) -> str:
        return cls._current_formatter.convert_list(data, column_name)
