"""
PocketLedger - Source Package

A personal-finance assistant: record income and expenses, scan receipts,
see where the money goes, and ask an assistant that only talks about
your own numbers.

DESIGN PRINCIPLES:
1. Receipts are suggestions until the user confirms them
2. Assistants are grounded in stored data, never in guesses
3. Every mutation is auditable
4. Storage and external services are injectable and swappable
"""

__version__ = "1.0.0"
__author__ = "PocketLedger Team"
