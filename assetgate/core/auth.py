"""Clerk authentication module."""

import logging
from uuid import uuid4

import jwt
from jwt import PyJWKClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assetgate.config import get_settings
from assetgate.models.user import User

logger = logging.getLogger(__name__)


class ClerkAuth:
    """Clerk JWT validation and user management."""

    def __init__(self) -> None:
        self.settings = get_settings()
        self._jwks_client: PyJWKClient | None = None

    @property
    def jwks_client(self) -> PyJWKClient:
        """Lazy-loaded JWKS client."""
        if self._jwks_client is None:
            if not self.settings.clerk_jwks_url:
                raise ValueError("CLERK_JWKS_URL is not configured")
            self._jwks_client = PyJWKClient(self.settings.clerk_jwks_url)
        return self._jwks_client

    def verify_token(self, token: str) -> dict:
        """Validate Clerk JWT and return claims.

        Args:
            token: JWT from the Authorization header or a query parameter

        Returns:
            JWT claims dict with 'sub' (clerk_user_id), 'email', etc.

        Raises:
            jwt.PyJWTError: If token is invalid
        """
        signing_key = self.jwks_client.get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=self.settings.jwt_algorithms,
            options={"verify_aud": False},  # Clerk doesn't always set audience
        )
        return claims

    async def get_or_create_user(
        self,
        clerk_user_id: str,
        email: str,
        name: str | None,
        db: AsyncSession,
        role: str | None = None,
    ) -> User:
        """Get existing user or create a new one.

        Args:
            clerk_user_id: Clerk's user ID (sub claim)
            email: User's email address
            name: User's display name
            db: Database session
            role: Platform role from token metadata, if present

        Returns:
            User object (existing or newly created)
        """
        result = await db.execute(
            select(User).where(User.clerk_user_id == clerk_user_id)
        )
        user = result.scalar_one_or_none()

        if user is not None:
            changed = user.email != email or user.name != name or (role and user.role != role)
            if changed:
                user.email = email
                user.name = name
                if role:
                    user.role = role
                await db.commit()
            return user

        user = User(
            id=uuid4(),
            clerk_user_id=clerk_user_id,
            email=email,
            name=name,
            role=role or "user",
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info("Created user %s for Clerk id %s", user.id, clerk_user_id)

        return user


# Global instance
clerk_auth = ClerkAuth()
