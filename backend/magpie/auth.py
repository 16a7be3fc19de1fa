"""Caller authentication and moderation authorization.

Two kinds of callers reach the API:
- users, presenting a Supabase-issued HS256 JWT as a bearer token
- trusted automation, presenting a shared secret as a bearer token

``AdminGate`` decides which of them may act on the moderation queue.
"""

import hmac
from dataclasses import dataclass
from typing import Iterable, Optional

import jwt
import structlog

from magpie.errors import Forbidden, Unauthorized

logger = structlog.get_logger()

PIPELINE_ACTOR = "pipeline"


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None

    return parts[1]


def secret_matches(token: Optional[str], secret: str) -> bool:
    """Constant-time comparison; an unconfigured secret never matches."""
    if not secret or not token:
        return False
    return hmac.compare_digest(token.encode(), secret.encode())


@dataclass(frozen=True)
class Identity:
    """An authenticated user."""

    subject: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Caller:
    """Who is acting on the moderation queue, and through which path."""

    actor: str
    is_pipeline: bool = False


class TokenVerifier:
    """Verifies user bearer tokens signed with the Supabase JWT secret."""

    def __init__(self, secret: str, audience: Optional[str] = "authenticated"):
        self.secret = secret
        self.audience = audience

    def verify(self, token: str) -> Identity:
        if not self.secret:
            logger.error("User token presented but no JWT secret is configured")
            raise Unauthorized()

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={"require": ["sub", "exp"], "verify_aud": bool(self.audience)},
            )
        except jwt.ExpiredSignatureError:
            raise Unauthorized("Token has expired") from None
        except jwt.InvalidTokenError:
            raise Unauthorized("Invalid token") from None

        return Identity(subject=str(payload["sub"]), email=payload.get("email"))


class AdminGate:
    """Authorization policy for the moderation queue.

    Paths, evaluated in order:
    1. Trusted automation: the bearer token equals the pipeline secret.
       Only read access is granted this way.
    2. Human admin: an authenticated identity found in ``admin_ids``. An
       empty ``admin_ids`` treats every authenticated identity as admin.
    """

    def __init__(self, admin_ids: Iterable[str], pipeline_secret: str = ""):
        self.admin_ids = frozenset(admin_ids)
        self.pipeline_secret = pipeline_secret

    @property
    def allows_everyone(self) -> bool:
        return not self.admin_ids

    def has_pipeline_access(self, token: Optional[str]) -> bool:
        return secret_matches(token, self.pipeline_secret)

    def authorize(self, identity: Optional[Identity]) -> Caller:
        """Human-admin path.

        Raises:
            Unauthorized: no identity
            Forbidden: identity not in a non-empty allow-list
        """
        if identity is None:
            raise Unauthorized()
        if self.admin_ids and identity.subject not in self.admin_ids:
            logger.warning("Moderation access denied", subject=identity.subject)
            raise Forbidden()
        return Caller(actor=identity.subject)

    def authorize_reader(self, token: Optional[str], identity: Optional[Identity]) -> Caller:
        """Either path; used for reading the queue."""
        if self.has_pipeline_access(token):
            return Caller(actor=PIPELINE_ACTOR, is_pipeline=True)
        return self.authorize(identity)
