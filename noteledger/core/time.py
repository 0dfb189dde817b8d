"""
noteledger/core/time.py

THE ONLY TIMESTAMP FUNCTION IN NOTELEDGER.

Wire Format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)

Settlement records and audit entries stamp themselves with this.
"""

import re
from datetime import datetime, timezone


TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def ledger_timestamp() -> str:
    """
    Return current UTC time in ledger wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
