"""API route handlers."""
from . import accounts, bank_link, transactions

__all__ = ["accounts", "bank_link", "transactions"]
