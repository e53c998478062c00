"""Access decision engine.

Decides per request whether a user gets the full asset, a watermarked
preview, or nothing. All lookups go through injected ports so the decision
logic itself has no database or framework dependency.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, Sequence, runtime_checkable
from uuid import UUID

from assetgate.core.audit import log_auto_purchase_failure


class AccessLevel(str, Enum):
    """Outcome of an access check."""

    FULL = "full"
    PREVIEW = "preview"
    DENIED = "denied"


@dataclass(frozen=True)
class AccessDecision:
    level: AccessLevel
    accessible_pages: frozenset[int] | None = None
    reason: str = ""

    @property
    def is_full(self) -> bool:
        return self.level == AccessLevel.FULL

    @property
    def is_preview(self) -> bool:
        return self.level == AccessLevel.PREVIEW

    @property
    def has_access(self) -> bool:
        return self.level != AccessLevel.DENIED


@dataclass(frozen=True)
class EntityAccessProfile:
    """The parts of a content entity the access check needs."""

    allow_preview: bool = False
    accessible_pages: Sequence[Any] | None = None
    is_free: bool = False


@dataclass(frozen=True)
class AccessSubject:
    """Identity the decision is computed for."""

    id: UUID
    role: str | None = None


class ProductLike(Protocol):
    creator_user_id: UUID | None
    price: Any


class PurchaseLike(Protocol):
    purchasable_type: str
    purchasable_id: str
    access_expires_at: datetime | None


@runtime_checkable
class ProductLookup(Protocol):
    async def find_by_type_and_entity(self, product_type: str, entity_id: str) -> ProductLike | None: ...


@runtime_checkable
class PurchaseLookup(Protocol):
    async def find_completed_for_user(self, user_id: UUID) -> Sequence[PurchaseLike]: ...


@runtime_checkable
class AccessRecordWriter(Protocol):
    """Port for the free-content side effect of an access check."""

    async def ensure_free_access(self, user_id: UUID, entity_type: str, entity_id: str) -> Any: ...


@runtime_checkable
class EntityProfileLookup(Protocol):
    async def get_profile(self, entity_type: str, entity_id: str) -> EntityAccessProfile | None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def purchase_is_active(purchase: PurchaseLike, now: datetime) -> bool:
    """A completed purchase grants access while unexpired; null means lifetime."""
    expires_at = purchase.access_expires_at
    if expires_at is None:
        return True
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at > now


def _price_is_zero(price: Any) -> bool:
    if price is None:
        return False
    try:
        return float(price) == 0
    except (TypeError, ValueError):
        return False


def _page_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        index = value
    elif isinstance(value, float) and value.is_integer():
        index = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        index = int(value.strip())
    else:
        return None
    return index if index >= 0 else None


def normalize_pages(pages: Sequence[Any] | None) -> frozenset[int] | None:
    """Preview allowlist as 0-based indices.

    Only an absent or empty list means every page. A list whose entries are
    all invalid yields an empty set, so nothing is previewable.
    """
    if not pages:
        return None
    return frozenset(index for index in (_page_index(p) for p in pages) if index is not None)


class AccessDecisionEngine:
    """Computes an AccessDecision from ownership, price and purchases."""

    def __init__(
        self,
        products: ProductLookup,
        purchases: PurchaseLookup,
        access_records: AccessRecordWriter,
        entities: EntityProfileLookup,
        admin_roles: Sequence[str] = ("admin", "sysadmin"),
        clock=_utcnow,
    ) -> None:
        self.products = products
        self.purchases = purchases
        self.access_records = access_records
        self.entities = entities
        self.admin_roles = frozenset(admin_roles)
        self.clock = clock

    async def decide(
        self,
        user: AccessSubject | None,
        entity_type: str,
        entity_id: str,
    ) -> AccessDecision:
        """Decide access for ``user`` (None for anonymous) on one entity.

        Order: admin role, creator, free price (with auto-purchase), active
        purchase, preview permission, denial. The result is never cached.
        """
        if user is not None:
            decision = await self._decide_for_user(user, entity_type, entity_id)
            if decision is not None:
                return decision

        profile = await self.entities.get_profile(entity_type, entity_id)
        if profile is not None and profile.allow_preview:
            return AccessDecision(
                level=AccessLevel.PREVIEW,
                accessible_pages=normalize_pages(profile.accessible_pages),
                reason="preview_allowed",
            )

        return AccessDecision(level=AccessLevel.DENIED, reason="no_access")

    async def _decide_for_user(
        self,
        user: AccessSubject,
        entity_type: str,
        entity_id: str,
    ) -> AccessDecision | None:
        if user.role and user.role in self.admin_roles:
            return AccessDecision(level=AccessLevel.FULL, reason="admin")

        product = await self.products.find_by_type_and_entity(entity_type, entity_id)
        if product is not None and product.creator_user_id == user.id:
            return AccessDecision(level=AccessLevel.FULL, reason="creator")

        is_free = product is not None and _price_is_zero(product.price)
        if product is None:
            profile = await self.entities.get_profile(entity_type, entity_id)
            is_free = profile is not None and profile.is_free

        if is_free:
            await self._record_free_access(user, entity_type, entity_id)
            return AccessDecision(level=AccessLevel.FULL, reason="free")

        now = self.clock()
        purchases = await self.purchases.find_completed_for_user(user.id)
        for purchase in purchases:
            if (
                purchase.purchasable_type == entity_type
                and str(purchase.purchasable_id) == str(entity_id)
                and purchase_is_active(purchase, now)
            ):
                return AccessDecision(level=AccessLevel.FULL, reason="purchase")

        return None

    async def _record_free_access(self, user: AccessSubject, entity_type: str, entity_id: str) -> None:
        # Free content stays accessible even when the purchase record cannot be written
        try:
            await self.access_records.ensure_free_access(user.id, entity_type, entity_id)
        except Exception as e:
            log_auto_purchase_failure(user.id, entity_type, entity_id, e)
