# =======================================================================================
# library_kiosk/models/enums.py - Enums and Constants
# =======================================================================================
from enum import Enum
from typing import Literal

# Type aliases for better type hints
LoanStatus = Literal["ACTIVE", "RETURNED"]
TxAction = Literal["BORROW", "RETURN"]
ScanKind = Literal["card", "item", "status", "raw"]

class SyncStatus(str, Enum):
    """Outcome of one sync cycle."""
    SUCCESS = "SUCCESS"      # batch acknowledged, rows marked synced
    FAILED = "FAILED"        # remote error or timeout, retried next tick
    OFFLINE = "OFFLINE"      # reachability check failed, nothing attempted
    IDLE = "IDLE"            # nothing to sync
    SKIPPED = "SKIPPED"      # another cycle was in flight

class SerialPrefix(Enum):
    """Plain-text line prefixes emitted by the reader firmware."""
    CARD = "CARD_SCANNED:"
    ITEM = "ITEM_SCANNED:"
