# tradedesk/core/exceptions.py

from fastapi import Request, status
from fastapi.responses import JSONResponse

import logging

logger = logging.getLogger(__name__)


class TradeDeskError(Exception):
    """
    Base class for domain errors. Each subclass carries the HTTP status
    the API layer answers with.
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class AlreadyProcessed(TradeDeskError):
    """A guarded transition found the record outside its expected source state."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Already processed."


class PriceUnavailable(TradeDeskError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Unable to fetch real-time price. Please try again."


class InsufficientFunds(TradeDeskError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Insufficient balance."


class NotFound(TradeDeskError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."


class Forbidden(TradeDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized to perform this action."


class ValidationFailed(TradeDeskError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."


class TradeNotExpired(TradeDeskError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Trade has not expired yet."


async def tradedesk_error_handler(request: Request, exc: TradeDeskError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {type(exc).__name__}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
