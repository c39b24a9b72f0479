#!/usr/bin/env python3
"""Generate an Ed25519 signing key for credential proofs.

RUN:  python -m scripts.generate_signing_key [--env-file .env]   (from the repo root)

Prints the ``ED25519_PRIVATE_KEY_PKCS8`` value (base64 of the PKCS8 PEM)
and the matching public JWK with its RFC 7638 thumbprint. With
``--env-file`` the variable is appended to that file instead of printed.

Keep the private value out of version control. Anyone holding it can
issue credentials that verify as yours.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from app.services.key_provider import (
    encode_signing_key,
    jwk_thumbprint,
    public_key_to_jwk,
)

ENV_VAR = "ED25519_PRIVATE_KEY_PKCS8"


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--env-file",
        type=Path,
        help=f"append {ENV_VAR}=... to this file instead of printing it",
    )
    args = parser.parse_args()

    key = Ed25519PrivateKey.generate()
    secret = encode_signing_key(key)
    jwk = public_key_to_jwk(key.public_key())

    if args.env_file is not None:
        with args.env_file.open("a", encoding="utf-8") as fh:
            fh.write(f"{ENV_VAR}={secret}\n")
        print(f"Wrote {ENV_VAR} to {args.env_file}", file=sys.stderr)
    else:
        print(f"{ENV_VAR}={secret}")

    print(json.dumps({**jwk, "kid": jwk_thumbprint(jwk)}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
