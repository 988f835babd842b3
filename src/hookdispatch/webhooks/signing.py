"""Signed delivery tokens.

Every delivery attempt carries ``Authorization: Bearer <token>`` where the
token is a short-lived JWT naming the webhook identity, signed with the
dispatcher's RSA private key. Receivers verify it with the public half.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from jwt.algorithms import RSAAlgorithm

from hookdispatch.exceptions import KeyImportError, SigningError
from hookdispatch.models import utc_now

DEFAULT_ISSUER = "webhookdispatcher"
DEFAULT_ALGORITHM = "RS256"


class Signer:
    """Issues time-boxed JWTs with a private key loaded from a JWK.

    The key is imported lazily on first use, so malformed or missing key
    material fails the individual ``sign`` call with KeyImportError rather
    than the process. Call ``load()`` to validate eagerly.

    Example:
        ```python
        signer = Signer(os.environ["HOOKDISPATCH_PRIVATE_KEY"])
        token = signer.sign({"id": webhook_id}, expiry_seconds=30)
        ```
    """

    def __init__(
        self,
        private_jwk: str | dict[str, Any] | None,
        issuer: str = DEFAULT_ISSUER,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> None:
        """Initialize the signer.

        Args:
            private_jwk: JWK as JSON text or a parsed dict. None means no key
                is configured; signing will fail with KeyImportError.
            issuer: Value of the ``iss`` claim.
            algorithm: JWS algorithm placed in the token header.
        """
        self._material = private_jwk
        self._issuer = issuer
        self._algorithm = algorithm
        self._key: RSAPrivateKey | None = None
        self._kid: str | None = None

    @property
    def issuer(self) -> str:
        return self._issuer

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def load(self) -> RSAPrivateKey:
        """Import the private key, caching it for subsequent calls.

        Raises:
            KeyImportError: If the material is missing, not JSON, not a JWK,
                or not an RSA private key.
        """
        if self._key is not None:
            return self._key
        if self._material is None:
            raise KeyImportError("no private key configured")

        jwk = self._material
        if isinstance(jwk, str):
            try:
                jwk = json.loads(jwk)
            except json.JSONDecodeError as e:
                raise KeyImportError(f"private key is not valid JSON: {e}") from e
        if not isinstance(jwk, dict):
            raise KeyImportError("private key must be a JWK object")

        try:
            parsed = jwt.PyJWK(jwk, algorithm=self._algorithm)
        except jwt.PyJWTError as e:
            raise KeyImportError(f"invalid JWK: {e}") from e

        if not isinstance(parsed.key, RSAPrivateKey):
            raise KeyImportError("JWK does not contain an RSA private key")

        self._key = parsed.key
        self._kid = parsed.key_id
        return self._key

    def sign(self, claims: dict[str, Any], expiry_seconds: int) -> str:
        """Sign ``claims`` into a token expiring ``expiry_seconds`` from now.

        ``iss``, ``iat`` and ``exp`` are set by the signer.

        Raises:
            KeyImportError: If the key cannot be imported.
            SigningError: If the cryptographic operation fails.
        """
        key = self.load()
        now = utc_now()
        payload = {
            **claims,
            "iss": self._issuer,
            "iat": now,
            "exp": now + timedelta(seconds=expiry_seconds),
        }
        headers = {"kid": self._kid} if self._kid else None
        try:
            return jwt.encode(payload, key, algorithm=self._algorithm, headers=headers)
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise SigningError(f"failed to sign token: {e}") from e

    def public_jwk(self) -> dict[str, Any]:
        """Public half of the signing key as a JWK dict."""
        key = self.load()
        jwk: dict[str, Any] = RSAAlgorithm.to_jwk(key.public_key(), as_dict=True)
        jwk["alg"] = self._algorithm
        jwk["use"] = "sig"
        if self._kid:
            jwk["kid"] = self._kid
        return jwk
