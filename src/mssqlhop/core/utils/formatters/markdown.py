"""
MarkdownFormatter: format data as Markdown tables.
"""

from typing import Any, Dict, List

from mssqlhop.core.utils.formatters.base import IOutputFormatter, normalize_value


class MarkdownFormatter(IOutputFormatter):

    @property
    def format_name(self) -> str:
        return "markdown"

    def convert_dict(
        self, data: Dict[str, Any], column_one_header: str, column_two_header: str
    ) -> str:
        if not data:
            return ""

        rows = [{column_one_header: key, column_two_header: value} for key, value in data.items()]
        return self.convert_list_of_dicts(rows)

    def convert_list(self, data: List[Any], column_name: str) -> str:
        if not data:
            return ""
        return self.convert_list_of_dicts([{column_name: item} for item in data])

    def convert_list_of_dicts(self, data: List[Dict[str, Any]]) -> str:
        """
        Converts rows into a Markdown table.
        Columns come from the first row.
        """
        if not data:
            return "No data available."

        columns = list(data[0].keys())
        col_widths = [
            max(len(str(col)), max(len(normalize_value(row.get(col, ""))) for row in data))
            for col in columns
        ]

        header = (
            "| "
            + " | ".join(str(col).ljust(col_widths[i]) for i, col in enumerate(columns))
            + " |"
        )
        separator = "| " + " | ".join("-" * width for width in col_widths) + " |"

        data_lines = [
            "| "
            + " | ".join(
                normalize_value(row.get(col, "")).ljust(col_widths[i])
                for i, col in enumerate(columns)
            )
            + " |"
            for row in data
        ]

        return "\n" + "\n".join([header, separator] + data_lines)
