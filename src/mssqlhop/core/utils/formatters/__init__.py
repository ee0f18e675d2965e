"""
Output formatters for converting data structures to various formats.
"""

from mssqlhop.core.utils.formatters.base import IOutputFormatter
from mssqlhop.core.utils.formatters.markdown import MarkdownFormatter
from mssqlhop.core.utils.formatters.csv import CsvFormatter
from mssqlhop.core.utils.formatters.formatter import OutputFormatter

__all__ = [
    "IOutputFormatter",
    "MarkdownFormatter",
    "CsvFormatter",
    "OutputFormatter",
]
