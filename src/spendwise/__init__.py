"""
Spendwise - Personal Finance Tracker

Transactions, recurring templates, budgets and savings goals behind a Flask
REST API, with background jobs for recurring materialization and budget alerts.

Author: Spendwise contributors
License: MIT
"""

__version__ = "1.0.0"
