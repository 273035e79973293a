"""Pluggable provider implementations for free-text BOQ extraction."""

from .openai_boq_extraction import OpenAIBoqExtractionProvider

__all__ = [
    "OpenAIBoqExtractionProvider",
]
