"""
Identifier validation and attribute sanitizing.

Table and column names end up in DDL and reflection calls, so they are
checked before use.
"""
import re
from typing import Any, Dict, Optional, Tuple

from langshadow.core.exceptions import InvalidIdentifierError

TABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.]+$")
COLUMN_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

MAX_TABLE_NAME_LENGTH = 64


def validate_table_name(table: str) -> str:
    """
    Validate a table name ('products' or 'schema.products').

    Raises:
        InvalidIdentifierError: on characters outside [A-Za-z0-9_.] or length > 64
    """
    if not isinstance(table, str) or not TABLE_NAME_PATTERN.match(table):
        raise InvalidIdentifierError(
            "Invalid table name format. Only alphanumeric characters, "
            "underscores, and dots are allowed."
        )
    if len(table) > MAX_TABLE_NAME_LENGTH:
        raise InvalidIdentifierError(
            f"Table name is too long. Maximum length is {MAX_TABLE_NAME_LENGTH} characters."
        )
    return table


def validate_column_name(column: str) -> str:
    """Validate a column name (letters, digits, underscores; no leading digit)."""
    if not isinstance(column, str) or not COLUMN_NAME_PATTERN.match(column):
        raise InvalidIdentifierError(f"Invalid column name format: {column!r}")
    return column


def split_table_name(table: str) -> Tuple[Optional[str], str]:
    """
    Split 'schema.table' into (schema, table).

    Returns:
        (None, table) when no schema is given
    """
    validate_table_name(table)
    if "." in table:
        schema, name = table.rsplit(".", 1)
        return schema, name
    return None, table


def sanitize_value(value: Any) -> Any:
    """Strip control characters and surrounding whitespace from strings."""
    if isinstance(value, str):
        value = CONTROL_CHARS.sub("", value)
        value = value.strip()
    return value


def sanitize_attributes(attributes: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize every value of an attribute map and validate its keys."""
    clean = {}
    for key, value in attributes.items():
        validate_column_name(key)
        clean[key] = sanitize_value(value)
    return clean


def is_valid_row_id(row_id: Any) -> bool:
    """Positive integer (or a non-empty string for UUID keyed tables)."""
    if isinstance(row_id, bool):
        return False
    if isinstance(row_id, int):
        return row_id > 0
    if isinstance(row_id, str):
        stripped = row_id.strip()
        if stripped.isdigit():
            return int(stripped) > 0
        return bool(stripped)
    return False
