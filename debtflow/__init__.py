"""DebtFlow - payment distribution and balance reconciliation for debt collection."""

__version__ = "0.1.0"
