from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    base_url: str
    # base64 of a PKCS8 Ed25519 private key (PEM text or DER)
    signing_key_pkcs8: str | None
    proof_max_age_years: int = 10

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    def __repr__(self) -> str:
        # Never render the key secret.
        key = "set" if self.signing_key_pkcs8 else "unset"
        return (
            f"Settings(app_env={self.app_env!r}, log_level={self.log_level!r}, "
            f"log_json={self.log_json!r}, port={self.port!r}, "
            f"base_url={self.base_url!r}, signing_key={key}, "
            f"proof_max_age_years={self.proof_max_age_years!r})"
        )


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    port_raw = _getenv("PORT", "8000")
    base_url_raw = _getenv("BASE_URL", "http://localhost:8000")
    max_age_raw = _getenv("PROOF_MAX_AGE_YEARS", "10")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    if log_json_raw not in ("true", "false", "1", "0"):
        raise ValueError(f"LOG_JSON must be true|false (got {log_json_raw!r})")

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    if not base_url_raw.startswith(("http://", "https://")):
        raise ValueError(f"BASE_URL must be an http(s) URL (got {base_url_raw!r})")

    try:
        proof_max_age_years = int(max_age_raw)
    except ValueError:
        raise ValueError(
            f"PROOF_MAX_AGE_YEARS must be an integer (got {max_age_raw!r})"
        ) from None
    if proof_max_age_years < 1:
        raise ValueError(
            f"PROOF_MAX_AGE_YEARS must be positive (got {proof_max_age_years})"
        )

    signing_key_pkcs8 = _getenv("ED25519_PRIVATE_KEY_PKCS8", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("true", "1"),
        port=port,
        base_url=base_url_raw.rstrip("/"),
        signing_key_pkcs8=signing_key_pkcs8,
        proof_max_age_years=proof_max_age_years,
    )


SETTINGS = load_settings()
