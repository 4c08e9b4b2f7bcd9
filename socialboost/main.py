"""SocialBoost API: business profiles, social posting and tiered subscriptions.

Design goals:
- Post creation gated by the subscription tier's monthly allowance
- Plan changes coordinated with the billing provider, never half-applied
- Social platform and billing provider swappable for in-memory doubles
"""

import logging

from fastapi import FastAPI
from sqlalchemy.exc import OperationalError
from starlette.middleware.sessions import SessionMiddleware

from socialboost.core.config import settings
from socialboost.core.errors import register_error_handlers
from socialboost.db import Base, engine
from socialboost.db_migrations import run_migrations
from socialboost.routes import admin, analytics, auth, billing, health, posts, profile


logging.basicConfig(level=settings.log_level, format='%(asctime)s | %(levelname)s | %(message)s')
logger = logging.getLogger('socialboost')

app = FastAPI(title=settings.app_name, version='1.0.0', debug=settings.debug)
# Authlib keeps OAuth state in the session between login and callback.
app.add_middleware(SessionMiddleware, secret_key=settings.session_secret)
register_error_handlers(app)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(posts.router)
app.include_router(analytics.router)
app.include_router(billing.router)
app.include_router(admin.router)


@app.on_event("startup")
def init_db() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        applied = run_migrations(engine)
        if applied:
            logger.info('Applied migrations: %s', ', '.join(applied))
    except OperationalError as exc:
        logger.error('DB init failed: %s', exc)
