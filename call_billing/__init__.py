"""Call-detail billing reconciliation for spreadsheet exports."""

__version__ = "0.1.0"
