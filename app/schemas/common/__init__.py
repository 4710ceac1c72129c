# Shared envelopes
from .common import (
    ErrorResponse,
    WidgetTokenData,
    WidgetTokenResponse,
    SMSBalanceResponse
)

__all__ = [
    "ErrorResponse",
    "WidgetTokenData",
    "WidgetTokenResponse",
    "SMSBalanceResponse"
]
