# Local library imports
from mssqlhop import __version__ as version


def display_banner() -> str:
    return (
        r"""
                          _ _
  _ __ ___  ___ ___  __ _| | |__   ___  _ __
 | '_ ` _ \/ __/ __|/ _` | | '_ \ / _ \| '_ \
 | | | | | \__ \__ \ (_| | | | | | (_) | |_) |
 |_| |_| |_|___/___/\__, |_|_| |_|\___/| .__/
                       |_|             |_|  %8s
"""
        % version
    )
