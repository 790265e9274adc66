"""Pytest configuration and shared fixtures.

Tests run without external services: the repositories, operator sessions
and Redis are in-memory fakes (tests/fakes.py) and object storage is
mocked with moto.
"""

import uuid
from collections.abc import AsyncGenerator

import boto3
import pytest
from argon2 import PasswordHasher
from botocore.config import Config
from httpx import ASGITransport, AsyncClient
from moto import mock_aws

from rdam.api import create_app
from rdam.api.dependencies import (
    get_certificate_service,
    get_citizen_access,
    get_coordinator,
    get_operator_accounts,
    get_operator_sessions,
    get_repository,
)
from rdam.core.config import Environment, Settings
from rdam.db.models.base import OperatorRole
from rdam.services.authz import UNRESTRICTED, ActingOperator, Restricted
from rdam.services.certificates import CertificateService
from rdam.services.citizen_access import CitizenAccessService
from rdam.services.lifecycle import LifecycleCoordinator
from rdam.services.numbering import TramiteNumberGenerator
from rdam.services.operator_accounts import (
    Argon2PasswordHasher,
    OperatorAccount,
    OperatorAccountService,
)
from rdam.services.storage import CertificateStore
from rdam.services.tokens import RedisTokenStore
from tests.fakes import (
    FakeClock,
    FakeOperatorRepository,
    FakeOperatorSessions,
    FakeRedis,
    FakeRequestRepository,
    FakeSequenceSource,
    RecordingNotifier,
    RecordingOperations,
)

ADMIN_TOKEN = "admin-token"
SANTA_FE_TOKEN = "santa-fe-token"
ROSARIO_TOKEN = "rosario-token"
OPERATOR_PASSWORD = "clave-segura-123"  # noqa: S105

MINIMAL_PDF = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
@pytest.fixture
def settings() -> Settings:
    """Test settings with the development defaults."""
    return Settings(environment=Environment.TEST)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Lifecycle collaborators
# ---------------------------------------------------------------------------
@pytest.fixture
def repo() -> FakeRequestRepository:
    return FakeRequestRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def operations() -> RecordingOperations:
    return RecordingOperations()


@pytest.fixture
def coordinator(
    repo: FakeRequestRepository,
    settings: Settings,
    notifier: RecordingNotifier,
    operations: RecordingOperations,
    clock: FakeClock,
) -> LifecycleCoordinator:
    return LifecycleCoordinator(
        repo,
        numbers=TramiteNumberGenerator(FakeSequenceSource(), settings.lifecycle.tramite_prefix),
        settings=settings.lifecycle,
        public_base_url=settings.public_base_url,
        notifier=notifier,
        operations=operations,
        clock=clock,
    )


@pytest.fixture
def admin() -> ActingOperator:
    """Administrator with access to every jurisdiction."""
    return ActingOperator(uuid.uuid4(), "admin", UNRESTRICTED)


@pytest.fixture
def santa_fe_operator() -> ActingOperator:
    """Operator restricted to jurisdiction 1 (Santa Fe)."""
    return ActingOperator(uuid.uuid4(), "operador.sfe", Restricted(1))


@pytest.fixture
def rosario_operator() -> ActingOperator:
    """Operator restricted to jurisdiction 2 (Rosario)."""
    return ActingOperator(uuid.uuid4(), "operador.ros", Restricted(2))


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def token_store(fake_redis: FakeRedis) -> RedisTokenStore:
    return RedisTokenStore(fake_redis)


@pytest.fixture
def citizen_access(
    repo: FakeRequestRepository, token_store: RedisTokenStore, notifier: RecordingNotifier
) -> CitizenAccessService:
    return CitizenAccessService(repo, token_store, notifier)


# ---------------------------------------------------------------------------
# Object storage (moto)
# ---------------------------------------------------------------------------
@pytest.fixture
def certificate_store():
    """CertificateStore backed by a moto-mocked S3 client.

    The client is built without endpoint_url so moto intercepts every
    request; the wrapper gets it injected.
    """
    with mock_aws():
        s3_client = boto3.client(
            "s3",
            aws_access_key_id="test_access_key",
            aws_secret_access_key="test_secret_key",  # noqa: S106
            region_name="us-east-1",
            config=Config(signature_version="s3v4"),
        )
        store = CertificateStore(
            endpoint_url="http://mocked",
            access_key="test_access_key",
            secret_key="test_secret_key",  # noqa: S106
            bucket="rdam-certificados",
            client=s3_client,
        )
        store.ensure_bucket()
        yield store


@pytest.fixture
def certificates(
    coordinator: LifecycleCoordinator,
    repo: FakeRequestRepository,
    certificate_store: CertificateStore,
    settings: Settings,
) -> CertificateService:
    return CertificateService(
        coordinator,
        repo,
        certificate_store,
        max_bytes=settings.lifecycle.max_certificate_bytes,
    )


@pytest.fixture
def pdf_bytes() -> bytes:
    return MINIMAL_PDF


# ---------------------------------------------------------------------------
# Operator accounts
# ---------------------------------------------------------------------------
@pytest.fixture
def password_hasher() -> Argon2PasswordHasher:
    """Argon2id hasher with minimal cost parameters for fast tests."""
    return Argon2PasswordHasher(PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


def _account(
    operator: ActingOperator, role: OperatorRole, password_hash: str
) -> OperatorAccount:
    return OperatorAccount(
        operator_id=operator.operator_id,
        username=operator.username,
        display_name=operator.username,
        email=f"{operator.username}@justicia.example",
        role=role,
        jurisdiction_id=operator.capability.scope,
        is_active=True,
        password_hash=password_hash,
    )


@pytest.fixture
def operator_store(
    admin: ActingOperator,
    santa_fe_operator: ActingOperator,
    rosario_operator: ActingOperator,
    password_hasher: Argon2PasswordHasher,
) -> FakeOperatorRepository:
    """Accounts of the three operator fixtures, all with OPERATOR_PASSWORD."""
    store = FakeOperatorRepository()
    password_hash = password_hasher.hash(OPERATOR_PASSWORD)
    store.add(_account(admin, OperatorRole.ADMIN, password_hash))
    store.add(_account(santa_fe_operator, OperatorRole.OPERATOR, password_hash))
    store.add(_account(rosario_operator, OperatorRole.OPERATOR, password_hash))
    return store


@pytest.fixture
def operator_sessions(
    operator_store: FakeOperatorRepository,
    clock: FakeClock,
    admin: ActingOperator,
    santa_fe_operator: ActingOperator,
    rosario_operator: ActingOperator,
) -> FakeOperatorSessions:
    """Sessions with ADMIN_TOKEN, SANTA_FE_TOKEN and ROSARIO_TOKEN active."""
    sessions = FakeOperatorSessions(operator_store, clock)
    sessions.seed(ADMIN_TOKEN, admin.operator_id)
    sessions.seed(SANTA_FE_TOKEN, santa_fe_operator.operator_id)
    sessions.seed(ROSARIO_TOKEN, rosario_operator.operator_id)
    return sessions


@pytest.fixture
def operator_accounts(
    operator_store: FakeOperatorRepository,
    operator_sessions: FakeOperatorSessions,
    password_hasher: Argon2PasswordHasher,
    clock: FakeClock,
) -> OperatorAccountService:
    return OperatorAccountService(operator_store, operator_sessions, password_hasher, clock=clock)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
@pytest.fixture
def app(
    settings: Settings,
    repo: FakeRequestRepository,
    coordinator: LifecycleCoordinator,
    citizen_access: CitizenAccessService,
    certificates: CertificateService,
    operator_sessions: FakeOperatorSessions,
    operator_accounts: OperatorAccountService,
):
    """Application wired to the in-memory collaborators."""
    application = create_app(settings)
    application.dependency_overrides[get_repository] = lambda: repo
    application.dependency_overrides[get_coordinator] = lambda: coordinator
    application.dependency_overrides[get_citizen_access] = lambda: citizen_access
    application.dependency_overrides[get_certificate_service] = lambda: certificates
    application.dependency_overrides[get_operator_sessions] = lambda: operator_sessions
    application.dependency_overrides[get_operator_accounts] = lambda: operator_accounts
    return application


@pytest.fixture
async def api_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for API testing.

    Uses httpx AsyncClient with ASGITransport for in-process testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

