import functools
import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings as default_settings
from app.services.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_retry(
    db: Session,
    func: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
) -> T:
    """
    Execute a unit of database work, retrying on transient storage failures.

    The session is rolled back between attempts, so ``func`` must redo all of
    its work. Once the budget is spent the failure surfaces as StorageError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.rollback()
            if attempt >= attempts - 1:
                logger.error("storage failure after %d attempts: %s", attempts, exc)
                raise StorageError("Storage is temporarily unavailable") from exc
            logger.warning("storage failure on attempt %d/%d, retrying: %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    raise StorageError("Storage is temporarily unavailable")


def retrying_read(func: Callable[..., T]) -> Callable[..., T]:
    """Run a read-only service call under ``run_with_retry``.

    The wrapped function takes the session first and an optional ``settings``
    keyword, whose ``storage_retry_attempts`` sets the budget.
    """

    @functools.wraps(func)
    def wrapper(db: Session, *args, **kwargs) -> T:
        config = kwargs.get("settings") or default_settings
        return run_with_retry(db, lambda: func(db, *args, **kwargs), attempts=config.storage_retry_attempts)

    return wrapper
