"""Shared API helpers for route handlers."""

import logging
from contextlib import contextmanager

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import NotFoundError, UnauthorizedError
from integrations.exceptions import ProviderDataError, ProviderError

logger = logging.getLogger(__name__)


@contextmanager
def service_errors():
    """Translate service and provider exceptions into HTTP errors.

    NotFound -> 404, Unauthorized -> 401, bad provider input -> 400,
    other provider failures -> 502, anything else -> 500.
    """
    try:
        yield
    except HTTPException:
        raise
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except UnauthorizedError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except ProviderDataError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ProviderError as e:
        logger.warning("Provider error (%s): %s", e.provider_name, e)
        raise HTTPException(status_code=502, detail=str(e)) from e
    except Exception as e:
        logger.error("Unexpected error handling request", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


def commit_quietly(db: Session) -> None:
    """Commit what a failed request already recorded (e.g. a FAILED webhook record)."""
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not persist state after a failed request", exc_info=True)
