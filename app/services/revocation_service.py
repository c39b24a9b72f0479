"""Revocation state for issued credentials.

The ``revoked`` flag on the credential record is authoritative. Each
issuer's revocation list is a projection of it: revoking a credential also
sets its status index (the credential's primary key) in the issuer's
latest list, so status-list consumers see the same answer.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from app.core.clock import Clock, utc_now
from app.core.errors import NotFoundError, ValidationError
from app.core.metrics import CREDENTIAL_REVOCATIONS
from app.models.credential import Credential
from app.models.revocation_list import RevocationList
from app.repos.credential_repo import find_by_identifier
from app.repos.store import Store

logger = logging.getLogger(__name__)

DEFAULT_REVOCATION_MESSAGE = "Credential has been revoked"


def parse_encoded_list(encoded: str) -> list[int]:
    """Indices from a comma-separated list; raises ValidationError on junk."""
    indices: list[int] = []
    for part in encoded.split(","):
        part = part.strip()
        if not part:
            continue
        if not (part.isascii() and part.isdigit()):
            raise ValidationError(f"Malformed status list entry: {part!r}")
        indices.append(int(part))
    return indices


def check_status_in_list(status_list: RevocationList, index: int) -> bool:
    return index in parse_encoded_list(status_list.encoded_list)


def create_status_list(
    store: Store,
    issuer_id: int,
    purpose: str = "revocation",
    *,
    clock: Clock = utc_now,
) -> RevocationList:
    if store.profiles.get_by_id(issuer_id) is None:
        raise NotFoundError("Issuer not found")

    status_list = store.revocation_lists.add(
        RevocationList.new(
            issuer_id=issuer_id, last_updated=clock(), status_purpose=purpose
        )
    )
    logger.info(
        "Created status list id=%d issuer=%d purpose=%s",
        status_list.id,
        issuer_id,
        purpose,
        extra={"issuer_id": issuer_id},
    )
    return status_list


def _set_index(
    store: Store, status_list: RevocationList, index: int, now
) -> RevocationList:
    if index < 0:
        raise ValidationError("Status index must be non-negative")

    indices = parse_encoded_list(status_list.encoded_list)
    if index in indices:
        return status_list

    indices.append(index)
    updated = replace(
        status_list,
        encoded_list=",".join(str(i) for i in indices),
        last_updated=now,
    )
    return store.revocation_lists.update(updated)


def revoke_credential_in_status_list(
    store: Store, list_id: int, index: int, *, clock: Clock = utc_now
) -> RevocationList:
    """Mark ``index`` revoked in list ``list_id``; a repeat is a no-op."""
    status_list = store.revocation_lists.get_by_id(list_id)
    if status_list is None:
        raise NotFoundError("Status list not found")

    updated = _set_index(store, status_list, index, clock())
    logger.info("Status list id=%d index=%d revoked", list_id, index)
    return updated


def revoke_credential(
    store: Store,
    identifier: str | int,
    reason: str | None = None,
    *,
    clock: Clock = utc_now,
) -> Credential:
    """Set the credential's revoked flag and project it into its issuer's list.

    Revoking twice keeps ``revoked`` true; the reason changes only when a
    new one is passed.
    """
    with store.transaction():
        credential = find_by_identifier(store.credentials, identifier)
        if credential is None:
            logger.warning("Revoke rejected, credential not found id=%s", identifier)
            raise NotFoundError("Credential not found")

        if not credential.revoked:
            credential = store.credentials.update(
                replace(credential, revoked=True, revocation_reason=reason)
            )
            CREDENTIAL_REVOCATIONS.inc()
            logger.info(
                "Revoked credential %s",
                credential.credential_id,
                extra={"credential_id": credential.credential_id},
            )
        elif reason is not None and reason != credential.revocation_reason:
            credential = store.credentials.update(
                replace(credential, revocation_reason=reason)
            )
            logger.info(
                "Updated revocation reason on %s",
                credential.credential_id,
                extra={"credential_id": credential.credential_id},
            )
        else:
            logger.info(
                "Credential %s already revoked",
                credential.credential_id,
                extra={"credential_id": credential.credential_id},
            )

        if credential.issuer_id is not None:
            status_list = store.revocation_lists.latest_for_issuer(credential.issuer_id)
            if status_list is None:
                status_list = create_status_list(
                    store, credential.issuer_id, clock=clock
                )
            _set_index(store, status_list, credential.id, clock())

    return credential


def check_credential_status(store: Store, identifier: str | int) -> dict[str, Any]:
    credential = find_by_identifier(store.credentials, identifier)
    if credential is None:
        raise NotFoundError("Credential not found")

    if credential.revoked:
        return {
            "revoked": True,
            "reason": credential.revocation_reason or DEFAULT_REVOCATION_MESSAGE,
        }
    return {"revoked": False}
