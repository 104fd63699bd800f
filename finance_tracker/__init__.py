"""
Finance Tracker - Source Package

Personal finance tracking on top of hosted collaborators: a document
store, an identity provider and a blob store. Users record income and
expense transactions, keep monthly budgets per category and track
savings goals.

DESIGN PRINCIPLES:
1. Budgets follow transactions (reconciliation on every write)
2. Dashboard numbers are pure functions of confirmed data
3. Remote failures are surfaced, never hidden
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
