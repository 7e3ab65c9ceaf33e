"""
ORM building blocks for translatable models
"""
from langshadow.models.translatable import TranslatableMixin

__all__ = ["TranslatableMixin"]
