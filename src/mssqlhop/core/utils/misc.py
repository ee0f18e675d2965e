# Built-in imports
import hashlib


def compute_sha256(input_str: str) -> str:
    """
    Computes a SHA-256 hash from an input string.

    Args:
        input_str: The string to hash

    Returns:
        Hexadecimal representation of the SHA-256 hash (lowercase)
    """
    input_bytes = input_str.encode("utf-8")
    return hashlib.sha256(input_bytes).hexdigest()


def escape_literal(value: str) -> str:
    """Double single quotes so a value can sit inside a T-SQL string literal."""
    return value.replace("'", "''")
