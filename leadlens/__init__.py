"""
LeadLens: multi-stage AI analysis of social-media leads.

Scores a profile against a business's ideal-customer description by
running triage, optional preprocessing and a tier-shaped main analysis,
then aggregates the per-stage costs into one accountable result.
"""

__version__ = "0.1.0"
