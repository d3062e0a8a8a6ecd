"""
TrackMyExpense - Source Package

Personal expense tracking core: accounts, categories, budgets and
transactions stored per user in one keyed table, with account balances
kept consistent with their transactions.

DESIGN PRINCIPLES:
1. A transaction and its balance effect are written together or not at all
2. Fail early, fail visibly
3. No silent corrections
4. Every balance movement is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "TrackMyExpense Team"
