# =======================================================================================
# library_kiosk/__init__.py - Package Initialization
# =======================================================================================
"""
Library Kiosk - Offline-first RFID Borrowing

Records every borrow and return in a local ledger, enforces loan limits and
due dates, and reconciles the transaction log with a remote store whenever
the network allows.
"""

__version__ = "1.0.0"
__author__ = "Library Kiosk Team"
