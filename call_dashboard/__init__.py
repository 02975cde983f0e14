"""Call-center CSV normalisation and KPI reconciliation."""

__version__ = "0.1.0"
