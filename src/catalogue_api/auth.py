"""
Bearer-token authentication against an external identity provider.

The catalogue never stores credentials. A request's token is handed to a
provider that answers with the user (or nothing); admin routes depend on
``require_admin``, which raises ``Unauthorized`` before any service runs.
"""
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import httpx
from fastapi import Depends, Request
from loguru import logger

from .errors import Unauthorized


@dataclass
class AuthenticatedUser:
    id: str
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def uuid(self) -> Optional[uuid.UUID]:
        """The user id as a UUID, when the provider issues UUIDs."""
        try:
            return uuid.UUID(self.id)
        except ValueError:
            return None


class IdentityProvider:
    """Resolves a bearer token to a user. ``None`` means the token is not valid."""

    async def verify(self, token: str) -> Optional[AuthenticatedUser]:
        raise NotImplementedError


class StaticTokenIdentityProvider(IdentityProvider):
    """Fixed tokens from configuration, for service accounts and local development."""

    def __init__(self, tokens: Dict[str, str]):
        self.tokens = dict(tokens)

    async def verify(self, token: str) -> Optional[AuthenticatedUser]:
        role = self.tokens.get(token)
        if role is None:
            return None
        return AuthenticatedUser(id=f"token:{token[:6]}", role=role)


class SupabaseIdentityProvider(IdentityProvider):
    """Supabase auth: ``GET {url}/auth/v1/user`` with the user's access token."""

    def __init__(self, url: str, anon_key: str, client: httpx.AsyncClient):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.client = client

    async def verify(self, token: str) -> Optional[AuthenticatedUser]:
        try:
            response = await self.client.get(
                f"{self.url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Identity provider unreachable: {e}")
            return None

        if response.status_code != 200:
            return None

        data = response.json()
        role = (data.get("app_metadata") or {}).get("role") or data.get("role")
        return AuthenticatedUser(id=str(data["id"]), email=data.get("email"), role=role)


class ChainedIdentityProvider(IdentityProvider):
    """First provider that recognizes the token wins."""

    def __init__(self, providers: Sequence[IdentityProvider]):
        self.providers = list(providers)

    async def verify(self, token: str) -> Optional[AuthenticatedUser]:
        for provider in self.providers:
            user = await provider.verify(token)
            if user is not None:
                return user
        return None


def build_identity_provider(settings, client: Optional[httpx.AsyncClient] = None) -> IdentityProvider:
    """Static tokens first, then Supabase when it is configured."""
    providers: List[IdentityProvider] = [StaticTokenIdentityProvider(settings.api_tokens)]
    if settings.supabase_url and settings.supabase_anon_key and client is not None:
        providers.append(SupabaseIdentityProvider(settings.supabase_url, settings.supabase_anon_key, client))
    return ChainedIdentityProvider(providers)


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(request: Request) -> AuthenticatedUser:
    """Dependency: the authenticated user, or ``Unauthorized``."""
    token = _bearer_token(request)
    if token is None:
        raise Unauthorized()
    user = await request.app.state.identity_provider.verify(token)
    if user is None:
        raise Unauthorized()
    return user


async def require_admin(request: Request, user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    """Dependency for admin routes; enforces ``admin_roles`` when configured."""
    admin_roles = request.app.state.settings.admin_roles
    if admin_roles and user.role not in admin_roles:
        logger.warning(f"User {user.id} with role {user.role!r} denied admin access")
        raise Unauthorized("Insufficient role")
    return user
