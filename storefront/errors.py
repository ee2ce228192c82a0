from fastapi import HTTPException


class ValidationError(HTTPException):
    """Malformed rule input: bad condition shape, unknown references, inverted dates."""

    def __init__(self, detail):
        super().__init__(status_code=400, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)


class BusinessRuleViolation(HTTPException):
    """Order blocked, out of bounds, insufficient stock or an ineligible gift."""

    def __init__(self, detail):
        super().__init__(status_code=409, detail=detail)
