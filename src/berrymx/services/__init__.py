"""Outbound collaborators used by the API."""

from .translate import TranslationClient

__all__ = ["TranslationClient"]
