from __future__ import annotations

from .extractor import ExtractedDimension, extract_dimension
from .registry import Dimension, get_dimension, key_from_column, list_dimensions
from .resolver import ResolvedDimension, resolve_dimension

__all__ = [
    "Dimension",
    "ExtractedDimension",
    "ResolvedDimension",
    "extract_dimension",
    "get_dimension",
    "key_from_column",
    "list_dimensions",
    "resolve_dimension",
]
