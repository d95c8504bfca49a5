"""
Position Errors

Every error a caller of the position service can see. Each carries a stable
`code` for callers that map errors to responses, and a human-readable message.
"""


class PositionError(Exception):
    """Base class for position lifecycle and accounting errors"""
    code = "PositionError"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'code': self.code, 'error': self.message}


class PositionNotFoundError(PositionError):
    code = "NotFound"


class PositionNotOpenError(PositionError):
    """Operation requires an Open position"""
    code = "NotOpen"


class InvalidPayloadError(PositionError):
    """Missing or malformed input"""
    code = "InvalidPayload"


class InvalidPremiumError(InvalidPayloadError):
    """Leg premium is zero, negative or not a finite number"""
    code = "InvalidPremium"


class PremiumLooksLikeUSDError(InvalidPayloadError):
    """Leg premium above the per-contract ceiling (probably a dollar total)"""
    code = "PremiumLooksLikeUSD"


class ValidationFailedError(PositionError):
    """Strategy structure rejected by the validator"""
    code = "ValidationFailed"

    def __init__(self, message: str = "", rule: str = ""):
        super().__init__(message)
        self.rule = rule

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['rule'] = self.rule
        return data


class LedgerWriteError(PositionError):
    code = "LedgerWriteFailed"


class ConcurrentModificationError(PositionError):
    """Position changed between read and write; re-read and retry"""
    code = "Conflict"
