"""
Typed failures raised by the settlement engine.

The HTTP layer maps each one to a status code (see ``app.main``); nothing in
the engine raises ``HTTPException`` directly.
"""


class SettlementEngineError(Exception):
    """Base class for every engine failure"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SettlementEngineError):
    """Malformed split request or invalid settlement amount"""
    status_code = 400


class NotFoundError(SettlementEngineError):
    """Referenced expense or group does not exist"""
    status_code = 404


class ConflictError(SettlementEngineError):
    """Splits already exist, or a concurrent settlement touched the same rows"""
    status_code = 409


class IntegrityError(SettlementEngineError):
    """Balances that should net to zero do not; upstream data is corrupt"""
    status_code = 500
