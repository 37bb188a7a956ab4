class GymError(ValueError):
    """
    Base class for every business-rule failure.

    Attributes:
        code (str): Stable identifier the UI layer maps to a message.
    """
    code = "GYM_ERROR"

    def __init__(self, code: str = None, message: str = None):
        if code:
            self.code = code
        super().__init__(message or self.code)


class NotFoundError(GymError):
    code = "NOT_FOUND"


class ValidationError(GymError):
    code = "INVALID_INPUT"


class ConflictError(GymError):
    code = "CONFLICT"


class CheckInRefusedError(GymError):
    code = "NO_CHECK_INS_REMAINING"


class AuthError(GymError):
    code = "INVALID_CREDENTIALS"
