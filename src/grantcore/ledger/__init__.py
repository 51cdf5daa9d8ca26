"""Request and grant ledgers.

Both ledgers are owned by the AuthorizationEngine; nothing else writes to them.
"""

from .grants import GrantLedger
from .requests import RequestLedger

__all__ = [
    "GrantLedger",
    "RequestLedger",
]
