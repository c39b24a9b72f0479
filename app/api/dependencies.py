"""Process-wide service wiring for the routers.

Everything the HTTP layer needs hangs off one ``Services`` container built
from SETTINGS at import time. Routers take it through ``Depends(get_services)``
so tests can swap in a container built around their own key and clock via
``app.dependency_overrides``.

The store is in-memory: records live for the lifetime of the process.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.clock import Clock, utc_now
from app.core.config import SETTINGS, Settings
from app.repos.store import InMemoryStore
from app.services.issuance_service import IssuanceService
from app.services.key_provider import KeyProvider
from app.services.proof_signer import ProofSigner
from app.services.verification_service import CredentialVerifier


@dataclass(frozen=True, slots=True)
class Services:
    store: InMemoryStore
    keys: KeyProvider
    signer: ProofSigner
    issuance: IssuanceService
    verifier: CredentialVerifier
    base_url: str
    clock: Clock


def build_services(
    settings: Settings = SETTINGS,
    *,
    store: InMemoryStore | None = None,
    clock: Clock = utc_now,
) -> Services:
    store = store if store is not None else InMemoryStore()
    keys = KeyProvider(settings.signing_key_pkcs8, store.profiles)
    signer = ProofSigner(keys, settings.base_url, clock)
    return Services(
        store=store,
        keys=keys,
        signer=signer,
        issuance=IssuanceService(
            store, signer, base_url=settings.base_url, clock=clock
        ),
        verifier=CredentialVerifier(
            store,
            keys,
            clock=clock,
            proof_max_age_years=settings.proof_max_age_years,
        ),
        base_url=settings.base_url,
        clock=clock,
    )


_services = build_services()


def get_services() -> Services:
    return _services
