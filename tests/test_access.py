"""Tests for the access decision engine."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from assetgate.core.access import (
    AccessDecisionEngine,
    AccessLevel,
    AccessSubject,
    EntityAccessProfile,
    normalize_pages,
    purchase_is_active,
)
from assetgate.services.purchases import free_order_number

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
ENTITY_ID = "file-123"


# ─── Fakes ────────────────────────────────────────────────────────────────────

@dataclass
class FakeProduct:
    creator_user_id: UUID | None
    price: Decimal


@dataclass
class FakePurchase:
    purchasable_type: str
    purchasable_id: str
    access_expires_at: datetime | None = None


class FakeProducts:
    def __init__(self, product: FakeProduct | None = None):
        self.product = product

    async def find_by_type_and_entity(self, product_type, entity_id):
        return self.product


class FakePurchases:
    def __init__(self, purchases=()):
        self.purchases = list(purchases)

    async def find_completed_for_user(self, user_id):
        return self.purchases


class FakeAccessRecords:
    """Idempotent free-access writer keyed like the partial unique index."""

    def __init__(self):
        self.records: dict[tuple, str] = {}
        self.calls = 0

    async def ensure_free_access(self, user_id, entity_type, entity_id):
        self.calls += 1
        key = (user_id, entity_type, entity_id)
        return self.records.setdefault(key, free_order_number(NOW))


class FakeEntities:
    def __init__(self, profile: EntityAccessProfile | None = None):
        self.profile = profile

    async def get_profile(self, entity_type, entity_id):
        return self.profile


def _engine(product=None, purchases=(), profile=None, records=None):
    return AccessDecisionEngine(
        products=FakeProducts(product),
        purchases=FakePurchases(purchases),
        access_records=records or FakeAccessRecords(),
        entities=FakeEntities(profile),
        clock=lambda: NOW,
    )


def _user(role: str | None = "user") -> AccessSubject:
    return AccessSubject(id=uuid4(), role=role)


# ─── Full access paths ────────────────────────────────────────────────────────

class TestFullAccess:
    @pytest.mark.asyncio
    async def test_admin_gets_full(self):
        engine = _engine(product=FakeProduct(creator_user_id=uuid4(), price=Decimal("30")))
        decision = await engine.decide(_user("admin"), "file", ENTITY_ID)
        assert decision.level == AccessLevel.FULL
        assert decision.reason == "admin"

    @pytest.mark.asyncio
    async def test_sysadmin_gets_full(self):
        decision = await _engine().decide(_user("sysadmin"), "file", ENTITY_ID)
        assert decision.is_full

    @pytest.mark.asyncio
    async def test_creator_gets_full(self):
        user = _user()
        engine = _engine(product=FakeProduct(creator_user_id=user.id, price=Decimal("30")))
        decision = await engine.decide(user, "file", ENTITY_ID)
        assert decision.reason == "creator"

    @pytest.mark.asyncio
    async def test_active_purchase_gets_full(self):
        engine = _engine(
            product=FakeProduct(creator_user_id=uuid4(), price=Decimal("30")),
            purchases=[FakePurchase("file", ENTITY_ID, NOW + timedelta(days=1))],
        )
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.reason == "purchase"

    @pytest.mark.asyncio
    async def test_purchase_for_other_entity_ignored(self):
        engine = _engine(
            product=FakeProduct(creator_user_id=uuid4(), price=Decimal("30")),
            purchases=[FakePurchase("file", "other"), FakePurchase("workshop", ENTITY_ID)],
        )
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.level == AccessLevel.DENIED


# ─── Free content ─────────────────────────────────────────────────────────────

class TestFreeContent:
    @pytest.mark.asyncio
    async def test_free_product_records_access(self):
        records = FakeAccessRecords()
        user = _user()
        engine = _engine(product=FakeProduct(creator_user_id=uuid4(), price=Decimal("0.00")), records=records)

        decision = await engine.decide(user, "file", ENTITY_ID)

        assert decision.reason == "free"
        assert list(records.records) == [(user.id, "file", ENTITY_ID)]
        assert re.fullmatch(r"FREE-AUTO-\d+-[0-9A-F]{8}", records.records[(user.id, "file", ENTITY_ID)])

    @pytest.mark.asyncio
    async def test_repeat_checks_keep_one_record(self):
        records = FakeAccessRecords()
        user = _user()
        engine = _engine(product=FakeProduct(creator_user_id=None, price=Decimal("0")), records=records)

        for _ in range(3):
            decision = await engine.decide(user, "file", ENTITY_ID)
            assert decision.is_full

        assert records.calls == 3
        assert len(records.records) == 1

    @pytest.mark.asyncio
    async def test_record_failure_still_grants_access(self, caplog):
        records = AsyncMock()
        records.ensure_free_access.side_effect = RuntimeError("db down")
        engine = _engine(product=FakeProduct(creator_user_id=None, price=Decimal("0")), records=records)

        with caplog.at_level(logging.ERROR, logger="assetgate.audit"):
            decision = await engine.decide(_user(), "file", ENTITY_ID)

        assert decision.is_full
        assert any(getattr(r, "audit_event", None) == "auto_purchase_failed" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_free_entity_without_product(self):
        engine = _engine(profile=EntityAccessProfile(is_free=True))
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.reason == "free"

    @pytest.mark.asyncio
    async def test_anonymous_never_gets_free_full(self):
        records = FakeAccessRecords()
        engine = _engine(product=FakeProduct(creator_user_id=None, price=Decimal("0")), records=records)
        decision = await engine.decide(None, "file", ENTITY_ID)
        assert decision.level == AccessLevel.DENIED
        assert records.calls == 0


# ─── Expiry ───────────────────────────────────────────────────────────────────

class TestExpiry:
    def test_null_expiry_is_lifetime(self):
        assert purchase_is_active(FakePurchase("file", ENTITY_ID, None), NOW)

    def test_expired_purchase_inactive(self):
        assert not purchase_is_active(FakePurchase("file", ENTITY_ID, NOW - timedelta(seconds=1)), NOW)

    def test_naive_expiry_treated_as_utc(self):
        naive = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        assert purchase_is_active(FakePurchase("file", ENTITY_ID, naive), NOW)

    @pytest.mark.asyncio
    async def test_expired_purchase_falls_to_preview(self):
        engine = _engine(
            product=FakeProduct(creator_user_id=uuid4(), price=Decimal("30")),
            purchases=[FakePurchase("file", ENTITY_ID, NOW - timedelta(days=1))],
            profile=EntityAccessProfile(allow_preview=True),
        )
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.level == AccessLevel.PREVIEW


# ─── Preview and denial ───────────────────────────────────────────────────────

class TestPreviewAndDenied:
    @pytest.mark.asyncio
    async def test_preview_with_page_allowlist(self):
        engine = _engine(
            product=FakeProduct(creator_user_id=uuid4(), price=Decimal("30")),
            profile=EntityAccessProfile(allow_preview=True, accessible_pages=[0, 2, 2, -1]),
        )
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.is_preview
        assert decision.accessible_pages == frozenset({0, 2})

    @pytest.mark.asyncio
    async def test_empty_allowlist_means_all_pages(self):
        engine = _engine(profile=EntityAccessProfile(allow_preview=True, accessible_pages=[]))
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.is_preview
        assert decision.accessible_pages is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pages", [[-1], [None, "x"], [True], [1.5]])
    async def test_allowlist_without_valid_entries_grants_nothing(self, pages):
        engine = _engine(profile=EntityAccessProfile(allow_preview=True, accessible_pages=pages))
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.is_preview
        assert decision.accessible_pages == frozenset()

    def test_integer_like_entries_are_accepted(self):
        assert normalize_pages(["0", 2.0, " 3 ", -2]) == frozenset({0, 2, 3})
        assert normalize_pages(None) is None

    @pytest.mark.asyncio
    async def test_anonymous_preview(self):
        engine = _engine(profile=EntityAccessProfile(allow_preview=True, accessible_pages=[1]))
        decision = await engine.decide(None, "lesson_plan", ENTITY_ID)
        assert decision.is_preview
        assert decision.accessible_pages == frozenset({1})

    @pytest.mark.asyncio
    async def test_denied_without_preview(self):
        engine = _engine(
            product=FakeProduct(creator_user_id=uuid4(), price=Decimal("30")),
            profile=EntityAccessProfile(allow_preview=False),
        )
        decision = await engine.decide(_user(), "file", ENTITY_ID)
        assert decision.level == AccessLevel.DENIED
        assert not decision.has_access

    @pytest.mark.asyncio
    async def test_unknown_entity_denied(self):
        decision = await _engine().decide(_user(), "file", "missing")
        assert decision.level == AccessLevel.DENIED
