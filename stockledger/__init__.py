"""Kitchen stock ledger service."""

__version__ = "1.4.0"
