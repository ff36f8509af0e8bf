"""
Version parsing and ordering.
"""

from .semantic_version import SemanticVersion, compare, compare_strings

__all__ = ["SemanticVersion", "compare", "compare_strings"]
