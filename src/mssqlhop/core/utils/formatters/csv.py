"""
CsvFormatter: format data as comma-separated values.
"""

import csv
import io
from typing import Any, Dict, List

from mssqlhop.core.utils.formatters.base import IOutputFormatter, normalize_value


class CsvFormatter(IOutputFormatter):

    @property
    def format_name(self) -> str:
        return "csv"

    def convert_dict(
        self, data: Dict[str, Any], column_one_header: str, column_two_header: str
    ) -> str:
        if not data:
            return ""
        return self._write([column_one_header, column_two_header], list(data.items()))

    def convert_list(self, data: List[Any], column_name: str) -> str:
        if not data:
            return ""
        return self._write([column_name], [[item] for item in data])

    def convert_list_of_dicts(self, data: List[Dict[str, Any]]) -> str:
        if not data:
            return "No data available."

        columns = list(data[0].keys())
        return self._write(columns, [[row.get(col, "") for col in columns] for row in data])

    @staticmethod
    def _write(headers: List[str], rows: List[List[Any]]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(headers)
        for row in rows:
            writer.writerow([normalize_value(cell) for cell in row])
        return "\n" + buffer.getvalue().rstrip("\n")
