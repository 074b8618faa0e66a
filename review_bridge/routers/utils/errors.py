from fastapi import HTTPException

from review_bridge.adapters.base import TransportError
from review_bridge.errors import DuplicateMappingError, InvalidOperationError


def to_http_exception(error: Exception) -> HTTPException:
    """Translate a bridge error into the HTTP error the API reports for it."""
    if isinstance(error, DuplicateMappingError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, InvalidOperationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, TransportError):
        return HTTPException(status_code=502, detail=f"Transport error: {error}")
    return HTTPException(status_code=500, detail="Internal error")
