from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

CheckResult = Literal["success", "warning", "error"]


@dataclass(frozen=True, slots=True)
class VerificationCheck:
    check: str  # existence|not_revoked|not_expired|proof|format|issuer|expiration
    result: CheckResult
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"check": self.check, "result": self.result}
        if self.message is not None:
            out["message"] = self.message
        return out


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """Verdict for a single verification request. Never persisted."""

    verified: bool
    checks: tuple[VerificationCheck, ...]
    credential: dict[str, Any] | None = None
    raw_credential: dict[str, Any] | None = field(default=None)

    @property
    def failed_check(self) -> VerificationCheck | None:
        for c in self.checks:
            if c.result == "error":
                return c
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "checks": [c.to_dict() for c in self.checks],
            "credential": self.credential,
            "rawCredential": self.raw_credential,
        }
