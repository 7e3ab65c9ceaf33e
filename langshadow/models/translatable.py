"""
Translatable model mixin - declares the row_id / iso tracking columns
"""
from sqlalchemy import BigInteger, Column, String


class TranslatableMixin:
    """
    Mixin for declarative models taking part in translation groups.

    row_id groups the language variants of one logical record and equals
    the primary key of the canonical row; iso is the row's language.
    Pair with CreationHook.attach() so new records get a row_id.
    """

    row_id = Column(BigInteger, index=True, nullable=True)
    iso = Column(String(10), nullable=True)

    @property
    def is_canonical(self) -> bool:
        return self.row_id is not None and self.row_id == getattr(self, "id", None)
