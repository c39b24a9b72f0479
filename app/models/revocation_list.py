from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class RevocationList:
    """Per-issuer status list.

    encoded_list is a comma-separated list of revoked status indices.
    """

    id: int
    issuer_id: int
    status_list_credential: str
    last_updated: datetime
    status_purpose: str = "revocation"
    encoded_list: str = ""

    @staticmethod
    def new(
        *, issuer_id: int, last_updated: datetime, status_purpose: str = "revocation"
    ) -> RevocationList:
        return RevocationList(
            id=0,
            issuer_id=issuer_id,
            status_list_credential=f"urn:uuid:{uuid4()}",
            last_updated=last_updated,
            status_purpose=status_purpose,
        )
