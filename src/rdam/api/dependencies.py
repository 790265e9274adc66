"""FastAPI dependencies shared by the routers.

Process-wide clients (Redis, object storage, the notification dispatcher)
are created on first use and kept in app.state; the application lifespan
closes them. Per-request objects (database session, repository,
coordinator) are rebuilt for every request, and FastAPI's dependency cache
makes every consumer within one request share the same instances.

Tests replace these with app.dependency_overrides.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from rdam.core.config import Settings
from rdam.services.audit_log import OperationAuditLog
from rdam.services.authz import ActingOperator
from rdam.services.certificates import CertificateService
from rdam.services.citizen_access import CitizenAccessService
from rdam.services.email import EmailNotificationService
from rdam.services.errors import TokenInvalidError, TokenInvalidReason
from rdam.services.lifecycle import LifecycleCoordinator
from rdam.services.notifications import NotificationDispatcher, Notifier
from rdam.services.numbering import DatabaseSequenceSource, TramiteNumberGenerator
from rdam.services.operator_accounts import (
    Argon2PasswordHasher,
    OperatorAccountService,
    OperatorRepository,
    PasswordHasher,
)
from rdam.services.operator_sessions import OperatorSessionService
from rdam.services.payments import PaymentGateway
from rdam.services.repository import RequestRepository
from rdam.services.storage import CertificateStore
from rdam.services.tokens import EphemeralTokenStore, RedisTokenStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# -----------------------------------------------------------------------------
# Settings and process-wide clients
# -----------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with, or the environment settings."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        from rdam.core.settings import get_settings

        settings = get_settings()
        request.app.state.settings = settings
    return settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_redis(request: Request, settings: AppSettings) -> aioredis.Redis:
    client = getattr(request.app.state, "redis", None)
    if client is None:
        client = aioredis.Redis.from_url(settings.redis.url, decode_responses=True)
        logger.debug("Redis client created")
        request.app.state.redis = client
    return client


def get_certificate_store(request: Request, settings: AppSettings) -> CertificateStore:
    store = getattr(request.app.state, "certificate_store", None)
    if store is None:
        store = CertificateStore.from_settings(settings.s3)
        logger.debug("Certificate store created: bucket=%s", store.bucket)
        request.app.state.certificate_store = store
    return store


def get_notifier(request: Request, settings: AppSettings) -> Notifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = NotificationDispatcher(
            EmailNotificationService(settings.smtp),
            otp_ttl_minutes=settings.redis.otp_ttl_minutes,
            validity_days=settings.lifecycle.published_validity_days,
        )
        request.app.state.notifier = notifier
    return notifier


def get_payment_gateway(settings: AppSettings) -> PaymentGateway:
    return PaymentGateway(settings.payment)


def get_token_store(
    client: Annotated[aioredis.Redis, Depends(get_redis)], settings: AppSettings
) -> EphemeralTokenStore:
    return RedisTokenStore.from_settings(client, settings.redis)


def get_password_hasher() -> PasswordHasher:
    return Argon2PasswordHasher()


# -----------------------------------------------------------------------------
# Per-request services
# -----------------------------------------------------------------------------


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Uses the application's async session factory.
    """
    from rdam.db import get_async_session

    async with get_async_session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_repository(db: DbSession) -> RequestRepository:
    return RequestRepository(db)


Repository = Annotated[RequestRepository, Depends(get_repository)]


def get_coordinator(
    db: DbSession,
    repository: Repository,
    settings: AppSettings,
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> LifecycleCoordinator:
    return LifecycleCoordinator(
        repository,
        numbers=TramiteNumberGenerator(
            DatabaseSequenceSource(db), settings.lifecycle.tramite_prefix
        ),
        settings=settings.lifecycle,
        public_base_url=settings.public_base_url,
        notifier=notifier,
        operations=OperationAuditLog(db),
    )


Coordinator = Annotated[LifecycleCoordinator, Depends(get_coordinator)]


def get_citizen_access(
    repository: Repository,
    tokens: Annotated[EphemeralTokenStore, Depends(get_token_store)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> CitizenAccessService:
    return CitizenAccessService(repository, tokens, notifier)


CitizenAccess = Annotated[CitizenAccessService, Depends(get_citizen_access)]


def get_certificate_service(
    coordinator: Coordinator,
    repository: Repository,
    store: Annotated[CertificateStore, Depends(get_certificate_store)],
    settings: AppSettings,
) -> CertificateService:
    return CertificateService(
        coordinator,
        repository,
        store,
        max_bytes=settings.lifecycle.max_certificate_bytes,
    )


Certificates = Annotated[CertificateService, Depends(get_certificate_service)]

# -----------------------------------------------------------------------------
# Authentication
# -----------------------------------------------------------------------------


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """Bearer token of the request.

    Raises:
        TokenInvalidError: If no bearer token was presented.
    """
    if credentials is None or not credentials.credentials:
        raise TokenInvalidError(TokenInvalidReason.EXPIRED, message="Authentication required")
    return credentials.credentials


BearerToken = Annotated[str, Depends(get_bearer_token)]


def get_operator_sessions(db: DbSession, settings: AppSettings) -> OperatorSessionService:
    return OperatorSessionService(db, session_duration_hours=settings.operator_session_hours)


OperatorSessions = Annotated[OperatorSessionService, Depends(get_operator_sessions)]


async def get_current_operator(token: BearerToken, sessions: OperatorSessions) -> ActingOperator:
    """Resolve the operator behind an internal bearer token."""
    return await sessions.resolve(token)


CurrentOperator = Annotated[ActingOperator, Depends(get_current_operator)]


def get_operator_accounts(
    db: DbSession,
    sessions: OperatorSessions,
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
) -> OperatorAccountService:
    return OperatorAccountService(OperatorRepository(db), sessions, hasher)


OperatorAccounts = Annotated[OperatorAccountService, Depends(get_operator_accounts)]
