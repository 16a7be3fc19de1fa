"""FastAPI dependencies: authentication, authorization and engine factories."""

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from magpie.auth import AdminGate, Caller, Identity, TokenVerifier, bearer_token, secret_matches
from magpie.config import get_settings
from magpie.db import async_session_factory, get_db
from magpie.engines.discovery import (
    DiscoveryInvoker,
    DiscoveryOrchestrator,
    HttpDiscoveryInvoker,
)
from magpie.engines.moderation import ModerationStore
from magpie.engines.search import CursorCodec, LLMRanker, Ranker, SearchEngine
from magpie.errors import MagpieError, Unauthorized


def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    return bearer_token(authorization)


def get_token_verifier() -> TokenVerifier:
    settings = get_settings()
    return TokenVerifier(settings.supabase_jwt_secret, settings.jwt_audience or None)


def get_admin_gate() -> AdminGate:
    settings = get_settings()
    return AdminGate(settings.admin_ids, settings.pipeline_secret)


def get_optional_identity(
    token: Optional[str] = Depends(get_bearer_token),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Optional[Identity]:
    """The authenticated user, if a token was sent. A bad token is 401."""
    if token is None:
        return None
    return verifier.verify(token)


def get_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise Unauthorized()
    return identity


def require_moderation_reader(
    token: Optional[str] = Depends(get_bearer_token),
    gate: AdminGate = Depends(get_admin_gate),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Caller:
    """Trusted automation or an admin."""
    if gate.has_pipeline_access(token):
        return gate.authorize_reader(token, None)
    identity = verifier.verify(token) if token else None
    return gate.authorize(identity)


def require_admin(
    identity: Optional[Identity] = Depends(get_optional_identity),
    gate: AdminGate = Depends(get_admin_gate),
) -> Caller:
    return gate.authorize(identity)


def _require_secret(token: Optional[str], secret: str, name: str) -> None:
    if not secret:
        raise MagpieError(f"{name} is not configured", status_code=500)
    if not secret_matches(token, secret):
        raise Unauthorized()


def require_cron(token: Optional[str] = Depends(get_bearer_token)) -> None:
    _require_secret(token, get_settings().cron_secret, "CRON_SECRET")


def require_pipeline(token: Optional[str] = Depends(get_bearer_token)) -> None:
    _require_secret(token, get_settings().pipeline_secret, "PIPELINE_SECRET")


def get_moderation_store(db: AsyncSession = Depends(get_db)) -> ModerationStore:
    return ModerationStore(db)


def get_ranker() -> Optional[Ranker]:
    return LLMRanker()


def get_search_engine(
    db: AsyncSession = Depends(get_db),
    ranker: Optional[Ranker] = Depends(get_ranker),
) -> SearchEngine:
    return SearchEngine(db, CursorCodec.from_settings(get_settings()), ranker=ranker)


async def get_discovery_invoker() -> AsyncGenerator[DiscoveryInvoker, None]:
    invoker = HttpDiscoveryInvoker()
    try:
        yield invoker
    finally:
        await invoker.close()


def get_discovery_orchestrator(
    invoker: DiscoveryInvoker = Depends(get_discovery_invoker),
) -> DiscoveryOrchestrator:
    return DiscoveryOrchestrator(async_session_factory, invoker)
