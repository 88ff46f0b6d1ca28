"""
Applicability Routes
====================

API route handlers for the Applicability Matching Service.
"""

from services.applicability.routes import cache, matching, organizations, regulations, similarity


__all__ = ["cache", "matching", "organizations", "regulations", "similarity"]
