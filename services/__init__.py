"""
Applicability Engine Services
=============================

Services:
- applicability: Regulation applicability matching, caching and aggregation
"""

__all__ = [
    "applicability",
]
