"""
Applicability Matching Service
==============================

Screens organizations against the legal register.

Features:
- Layered, progressive filter plans over partial profiles
- Exact and hierarchical stakeholder role matching
- Fingerprint-keyed match cache with stampede collapse
- Multi-location aggregation with deduplication
- Weighted confidence scoring
- Privacy-preserving similar-profile statistics

Port: 8010
"""

__version__ = "0.1.0"
