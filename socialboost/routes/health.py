from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from socialboost.core.config import settings
from socialboost.db import engine

router = APIRouter(tags=['health'])


def _probe_database() -> str | None:
    try:
        with engine.connect() as conn:
            conn.execute(text('SELECT 1'))
    except SQLAlchemyError as exc:
        return str(exc)
    return None


@router.get('/healthz')
def healthz():
    db_error = _probe_database()
    body = {
        'status': 'degraded' if db_error else 'ok',
        'db_ok': db_error is None,
        'db_backend': settings.database_url.split(':', 1)[0],
        # Which collaborators are real; `memory`/`mock` never reach the network.
        'billing_provider': settings.billing_provider,
        'social_publisher': settings.social_publisher,
    }
    if db_error:
        body['db_error'] = db_error
    return body
