"""Ledgerly - multi-tenant invoicing, contracts and expense tracking."""

__version__ = "0.1.0"
