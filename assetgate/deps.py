"""FastAPI dependencies."""

import logging
from typing import Annotated

import jwt
from fastapi import Depends, Header, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assetgate.config import get_settings
from assetgate.core.access import AccessDecisionEngine
from assetgate.core.auth import clerk_auth
from assetgate.core.errors import AuthenticationInvalid, AuthenticationRequired
from assetgate.core.overlay import RenderSettings
from assetgate.database import async_session_maker, get_db
from assetgate.models.user import User
from assetgate.services.entities import EntityRepository
from assetgate.services.pdf_pipeline import PdfPipeline
from assetgate.services.products import ProductRepository
from assetgate.services.purchases import PurchaseRepository
from assetgate.services.storage import StorageService, storage_service
from assetgate.services.svg_pipeline import SvgPipeline
from assetgate.services.templates import TemplateRepository, TemplateResolver

logger = logging.getLogger(__name__)


async def get_or_create_dev_user(db: AsyncSession) -> User:
    """Get or create a dev user for local development."""
    dev_email = "dev@assetgate.local"

    result = await db.execute(select(User).where(User.email == dev_email))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=dev_email,
        name="Dev User",
        clerk_user_id="dev_user_123",
        role="user",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_access_token(
    authorization: Annotated[str | None, Header()] = None,
    token: Annotated[str | None, Query()] = None,
    auth_token: Annotated[str | None, Query(alias="authToken")] = None,
) -> str | None:
    """Bearer token from the Authorization header, else from the query string.

    Query tokens exist for media elements (``<video src>``) that cannot send
    headers.
    """
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    return token or auth_token or None


class UserAuthenticator:
    """Resolves an access token to a User."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.settings = get_settings()

    async def __call__(self, token: str | None) -> User | None:
        """Return the user for ``token``, or None when no token was sent.

        Raises:
            AuthenticationInvalid: the token fails verification.
        """
        if self.settings.dev_auth_bypass:
            logger.info("DEV MODE: Bypassing Clerk auth, using dev user")
            return await get_or_create_dev_user(self.db)

        if not token:
            return None

        try:
            claims = clerk_auth.verify_token(token)
        except (jwt.PyJWTError, ValueError) as e:
            logger.warning("Token validation failed: %s", e)
            raise AuthenticationInvalid()

        clerk_user_id = claims.get("sub")
        email = claims.get("email") or claims.get("primary_email_address")
        name = claims.get("name") or claims.get("first_name")
        metadata = claims.get("public_metadata") or claims.get("metadata") or {}
        role = metadata.get("role") if isinstance(metadata, dict) else None

        if not clerk_user_id or not email:
            raise AuthenticationInvalid("Token is missing required claims")

        return await clerk_auth.get_or_create_user(
            clerk_user_id=clerk_user_id,
            email=email,
            name=name,
            db=self.db,
            role=role,
        )


def get_authenticator(db: Annotated[AsyncSession, Depends(get_db)]) -> UserAuthenticator:
    return UserAuthenticator(db)


async def get_optional_user(
    token: Annotated[str | None, Depends(get_access_token)],
    authenticate: Annotated[UserAuthenticator, Depends(get_authenticator)],
) -> User | None:
    return await authenticate(token)


async def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    """Authenticated user; 401 when no credential was supplied."""
    if user is None:
        raise AuthenticationRequired()
    return user


def get_storage() -> StorageService:
    return storage_service


def get_render_settings() -> RenderSettings:
    return RenderSettings.from_settings(get_settings())


def get_entity_repository(db: Annotated[AsyncSession, Depends(get_db)]) -> EntityRepository:
    return EntityRepository(db)


def get_template_repository(db: Annotated[AsyncSession, Depends(get_db)]) -> TemplateRepository:
    return TemplateRepository(db)


def get_access_engine(
    db: Annotated[AsyncSession, Depends(get_db)],
    entities: Annotated[EntityRepository, Depends(get_entity_repository)],
) -> AccessDecisionEngine:
    purchases = PurchaseRepository(db, async_session_maker)
    return AccessDecisionEngine(
        products=ProductRepository(db),
        purchases=purchases,
        access_records=purchases,
        entities=entities,
        admin_roles=get_settings().admin_roles,
    )


def get_template_resolver(
    templates: Annotated[TemplateRepository, Depends(get_template_repository)],
) -> TemplateResolver:
    return TemplateResolver(templates)


def get_pdf_pipeline(
    resolver: Annotated[TemplateResolver, Depends(get_template_resolver)],
    settings: Annotated[RenderSettings, Depends(get_render_settings)],
) -> PdfPipeline:
    return PdfPipeline(resolver, settings)


def get_svg_pipeline(
    resolver: Annotated[TemplateResolver, Depends(get_template_resolver)],
    settings: Annotated[RenderSettings, Depends(get_render_settings)],
) -> SvgPipeline:
    return SvgPipeline(resolver, settings)


# Type aliases for dependency injection
AccessToken = Annotated[str | None, Depends(get_access_token)]
Authenticator = Annotated[UserAuthenticator, Depends(get_authenticator)]
CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]
Storage = Annotated[StorageService, Depends(get_storage)]
Entities = Annotated[EntityRepository, Depends(get_entity_repository)]
AccessEngine = Annotated[AccessDecisionEngine, Depends(get_access_engine)]
Resolver = Annotated[TemplateResolver, Depends(get_template_resolver)]
RenderConfig = Annotated[RenderSettings, Depends(get_render_settings)]
PdfRenderer = Annotated[PdfPipeline, Depends(get_pdf_pipeline)]
SvgRenderer = Annotated[SvgPipeline, Depends(get_svg_pipeline)]
