"""
Exception hierarchy for multi-language replication.

Missing tracking columns are not an error anywhere in the package: tables
that never opted in are reported as skipped or read as empty.
"""


class MultiLangError(Exception):
    """Base class for all langshadow errors."""


class ConfigurationError(MultiLangError, ValueError):
    """Invalid configuration or arguments, rejected synchronously."""


class InvalidLocaleError(ConfigurationError):
    """Locale code has a bad format or is not a configured language."""


class InvalidIdentifierError(ConfigurationError):
    """Table or column name failed validation."""


class UnknownTableError(ConfigurationError):
    """Table is not registered or does not exist in the database."""


class NoTargetError(MultiLangError):
    """Programmatic API used before a table/model was selected."""


class UniquenessExhaustedError(MultiLangError):
    """Insert kept violating a unique index after the bounded retries."""

    def __init__(self, language: str, attempts: int, detail: str = ""):
        self.language = language
        self.attempts = attempts
        message = f"Unique constraint still violated for '{language}' after {attempts} attempts"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
