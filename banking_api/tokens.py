"""
Session Token Service

Issues and validates signed, time-bounded JWTs. A token carries the
username (``sub``), one role claim, ``iat``, ``exp`` and a random ``jti``.
Validation checks the signature first, then expiry, then the claims; it
never consults user state, so a token stays valid until it expires.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from .config import BankingConfig
from .errors import InvalidSignatureError, TokenExpiredError
from .users import Role


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class Identity:
    """Caller identity recovered from a valid token"""
    username: str
    role: Role
    issued_at: datetime
    expires_at: datetime
    token_id: Optional[str] = None


class TokenService:
    """Signs and verifies session tokens with a process-wide symmetric key"""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        lifetime: timedelta = timedelta(hours=24),
        clock: Optional[Callable[[], datetime]] = None
    ):
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.lifetime = lifetime
        self._clock = clock or utc_now

    @classmethod
    def from_config(cls, config: BankingConfig,
                    clock: Optional[Callable[[], datetime]] = None) -> 'TokenService':
        return cls(
            secret=config.jwt_secret,
            algorithm=config.jwt_algorithm,
            lifetime=timedelta(hours=config.jwt_expiry_hours),
            clock=clock
        )

    def issue(self, username: str, role: Role) -> IssuedToken:
        """Issue a token for ``username`` expiring ``lifetime`` from now"""
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self.lifetime
        payload = {
            "sub": username,
            "role": role.value,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": secrets.token_hex(16)
        }
        token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        return IssuedToken(token=token, issued_at=issued_at, expires_at=expires_at)

    def validate(self, token: str, expected_subject: Optional[str] = None) -> Identity:
        """
        Validate a token and return the identity it asserts

        Args:
            token: Encoded JWT
            expected_subject: If given, the token's subject must match it

        Raises:
            InvalidSignatureError: Malformed, forged or tampered token, or
                claims that cannot be trusted
            TokenExpiredError: Signature is intact but ``exp`` has passed
        """
        try:
            # Expiry is checked below against the service clock
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["sub", "role", "iat", "exp"]
                }
            )
        except jwt.InvalidTokenError as e:
            raise InvalidSignatureError(f"Invalid token: {e}") from e

        try:
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
            issued_at = datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidSignatureError("Token timestamps are malformed") from e

        if not self._clock() < expires_at:
            raise TokenExpiredError()

        try:
            role = Role(claims["role"])
        except ValueError as e:
            raise InvalidSignatureError("Token carries an unknown role") from e

        username = claims["sub"]
        if not isinstance(username, str) or not username:
            raise InvalidSignatureError("Token subject is missing")
        if expected_subject is not None and username != expected_subject:
            raise InvalidSignatureError("Token subject does not match")

        return Identity(
            username=username,
            role=role,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=claims.get("jti")
        )
