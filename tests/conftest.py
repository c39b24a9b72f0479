from __future__ import annotations

import sys
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.api import dependencies  # noqa: E402
from app.api.dependencies import Services, build_services, get_services  # noqa: E402
from app.core.config import Settings  # noqa: E402
from app.main import app  # noqa: E402
from app.models.achievement import Achievement, Alignment, Criteria  # noqa: E402
from app.models.profile import Profile  # noqa: E402
from app.repos.store import InMemoryStore  # noqa: E402
from app.services.key_provider import encode_signing_key  # noqa: E402

BASE_URL = "https://badges.example.test"
FIXED_NOW = datetime(2025, 3, 14, 9, 26, 53, 589000, tzinfo=UTC)


class FakeClock:
    """Callable clock pinned to ``now``; tests move it explicitly."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_settings(signing_key_pkcs8: str | None, **overrides) -> Settings:
    values = {
        "app_env": "test",
        "log_level": "info",
        "log_json": False,
        "port": 8000,
        "base_url": BASE_URL,
        "signing_key_pkcs8": signing_key_pkcs8,
        "proof_max_age_years": 10,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


@pytest.fixture(scope="session")
def signing_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture(scope="session")
def signing_secret(signing_key: Ed25519PrivateKey) -> str:
    return encode_signing_key(signing_key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def services(signing_secret: str, clock: FakeClock) -> Services:
    return build_services(make_settings(signing_secret), clock=clock)


@pytest.fixture
def unsigned_services(clock: FakeClock) -> Services:
    """Services with no signing key configured (degraded issuance)."""
    return build_services(make_settings(None), clock=clock)


@pytest.fixture
def store(services: Services) -> InMemoryStore:
    return services.store


@pytest.fixture(autouse=True)
def reset_process_store() -> None:
    dependencies.get_services().store.reset()


@pytest.fixture(autouse=True)
def use_test_services(services: Services) -> Iterator[None]:
    app.dependency_overrides[get_services] = lambda: services
    yield
    app.dependency_overrides.pop(get_services, None)


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


# ---------------------------------------------------------------------------
# Entity helpers
# ---------------------------------------------------------------------------


def create_issuer(
    store: InMemoryStore, name: str = "Acme Academy", **kwargs
) -> Profile:
    return store.profiles.add(
        Profile.new(
            name=name,
            profile_type="Issuer",
            url=kwargs.pop("url", "https://acme.example"),
            **kwargs,
        )
    )


def create_achievement(
    store: InMemoryStore,
    issuer: Profile,
    name: str = "Welcome",
    **kwargs,
) -> Achievement:
    return store.achievements.add(
        Achievement.new(
            name=name,
            description=kwargs.pop("description", "Completed onboarding"),
            creator_id=issuer.id,
            criteria=kwargs.pop(
                "criteria", Criteria(narrative="Attend the onboarding session")
            ),
            **kwargs,
        )
    )


@pytest.fixture
def issuer(store: InMemoryStore) -> Profile:
    return create_issuer(store)


@pytest.fixture
def achievement(store: InMemoryStore, issuer: Profile) -> Achievement:
    return create_achievement(
        store,
        issuer,
        alignments=(
            Alignment(
                target_name="Onboarding",
                target_url="https://standards.example/onboarding",
            ),
        ),
    )
