import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, Request, status
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import OperationalError

from app.core.config import Settings
from app.db.database import get_db
from app.services.errors import Conflict, LedgerError, NotFound, StorageError, ValidationError

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[LedgerError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def status_for(exc: LedgerError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@contextmanager
def ledger_errors() -> Iterator[None]:
    """Translate service failures raised inside the block into HTTP errors."""
    try:
        yield
    except LedgerError as exc:
        code = status_for(exc)
        if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("request failed: %s", exc)
        raise HTTPException(status_code=code, detail=str(exc)) from exc
    except SchemaValidationError as exc:
        # Payloads assembled inside a handler, e.g. from multipart form fields.
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
    except OperationalError as exc:
        logger.error("storage failure outside the retry budget: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage is temporarily unavailable",
        ) from exc


__all__ = ["get_db", "get_settings", "ledger_errors", "status_for"]
