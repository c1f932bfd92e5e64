"""
Tests for the Segment Reconciler

Membership properties are checked against the in-memory record store; the
SQL-backed store is covered in test_record_store.py.
"""

import pytest
from unittest.mock import AsyncMock

from app.services.segments.errors import RuleValidationError, StoreFailure, Unauthenticated
from app.services.segments.reconciler import SegmentReconciler, reconcile
from app.services.segments.rules import parse_rule_set
from app.services.segments.scope import OrganizationScope, PersonalScope

from tests.factories import ProspectFactory
from tests.fakes import InMemoryRecordStore

SEGMENT = 7
OTHER_SEGMENT = 8
ACTOR = 1
OUTSIDER = 2

HIGH_ICP = parse_rule_set({
    "logic": "and",
    "rules": [{"field": "icp_score", "operator": "greater_than_or_equal", "value": 70}],
})

REPUTATION_OR_SCORE = parse_rule_set({
    "logic": "or",
    "rules": [
        {
            "logic": "and",
            "rules": [
                {"field": "rating", "operator": "greater_than_or_equal", "value": 4.5},
                {"field": "review_count", "operator": "greater_than_or_equal", "value": 20},
            ],
        },
        {"field": "icp_score", "operator": "greater_than_or_equal", "value": 70},
    ],
})


def prospect(record_id: int, owner_id: int = ACTOR, **fields) -> dict:
    return ProspectFactory(id=record_id, owner_id=owner_id, **fields)


@pytest.fixture
def scope() -> PersonalScope:
    return PersonalScope(actor_id=ACTOR)


# ============================================
# reconcile()
# ============================================


class TestReconcile:
    """The pure diff between current and target membership."""

    def test_diff(self):
        diff = reconcile({1, 2}, {1, 3})
        assert diff.to_add == {3}
        assert diff.to_remove == {2}

    def test_equal_sets_are_empty_diff(self):
        assert reconcile([4, 5], (5, 4)).is_empty

    def test_applying_diff_yields_target(self):
        current, target = {1, 2, 3, 9}, {2, 3, 4}
        diff = reconcile(current, target)
        assert (current - diff.to_remove) | diff.to_add == target

    def test_empty_target_removes_everything(self):
        diff = reconcile({1, 2}, set())
        assert diff.to_remove == {1, 2}
        assert not diff.to_add


# ============================================
# Scenarios
# ============================================


class TestApplyScenarios:

    @pytest.mark.asyncio
    async def test_or_of_ands_clear_others(self, scope):
        """A(4.8, 30) and C(score 75) match; B(4.2, 5) does not."""
        store = InMemoryRecordStore([
            prospect(1, rating=4.8, review_count=30),
            prospect(2, rating=4.2, review_count=5),
            prospect(3, icp_score=75),
        ])

        result = await SegmentReconciler(store).apply(SEGMENT, REPUTATION_OR_SCORE, scope, clear_others=True)

        assert store.members(SEGMENT) == {1, 3}
        assert store.segment_of(2) is None
        assert result.matched_count == 2
        assert result.reassigned_count == 2
        assert result.unassigned_count == 0

    @pytest.mark.asyncio
    async def test_membership_moves_from_ab_to_ac(self, scope):
        store = InMemoryRecordStore([
            prospect(1, icp_score=90, segment_id=SEGMENT),  # A: still matches
            prospect(2, icp_score=10, segment_id=SEGMENT),  # B: no longer matches
            prospect(3, icp_score=75),                      # C: newly matches
        ])

        result = await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=True)

        assert store.snapshot() == {1: SEGMENT, 2: None, 3: SEGMENT}
        assert (result.matched_count, result.reassigned_count, result.unassigned_count) == (2, 1, 1)
        assert result.clear_others is True

    @pytest.mark.asyncio
    async def test_unassign_runs_before_assign(self, scope):
        store = InMemoryRecordStore([
            prospect(1, icp_score=90, segment_id=SEGMENT),
            prospect(2, icp_score=10, segment_id=SEGMENT),
            prospect(3, icp_score=75),
        ])

        await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=True)

        assert store.calls == [
            ("segment_id", None, frozenset({2})),
            ("segment_id", SEGMENT, frozenset({1, 3})),
        ]

    @pytest.mark.asyncio
    async def test_takes_records_from_other_segments(self, scope):
        """Last segment applied wins."""
        store = InMemoryRecordStore([prospect(1, icp_score=80, segment_id=OTHER_SEGMENT)])

        result = await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope)

        assert store.segment_of(1) == SEGMENT
        assert result.reassigned_count == 1


# ============================================
# Properties
# ============================================


class TestApplyProperties:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("clear_others", [False, True])
    async def test_idempotent(self, scope, clear_others):
        store = InMemoryRecordStore([
            prospect(1, icp_score=90),
            prospect(2, icp_score=10, segment_id=SEGMENT),
            prospect(3, icp_score=70),
        ])
        reconciler = SegmentReconciler(store)

        await reconciler.apply(SEGMENT, HIGH_ICP, scope, clear_others=clear_others)
        first = store.snapshot()
        second = await reconciler.apply(SEGMENT, HIGH_ICP, scope, clear_others=clear_others)

        assert store.snapshot() == first
        assert second.reassigned_count == 0
        assert second.unassigned_count == 0
        assert second.matched_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("clear_others", [False, True])
    async def test_scope_containment(self, scope, clear_others):
        """Matching records of another owner are never touched, even if they hold this segment."""
        store = InMemoryRecordStore([
            prospect(1, icp_score=90),
            prospect(2, owner_id=OUTSIDER, icp_score=95),
            prospect(3, owner_id=OUTSIDER, icp_score=5, segment_id=SEGMENT),
            prospect(4, owner_id=OUTSIDER, icp_score=99, segment_id=OTHER_SEGMENT),
        ])

        result = await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=clear_others)

        assert store.segment_of(2) is None
        assert store.segment_of(3) == SEGMENT
        assert store.segment_of(4) == OTHER_SEGMENT
        assert result.matched_count == 1

    @pytest.mark.asyncio
    async def test_organization_scope_covers_all_members(self):
        org_scope = OrganizationScope(actor_id=ACTOR, tenant_id=50)
        store = InMemoryRecordStore([
            prospect(1, owner_id=ACTOR, organization_id=50, icp_score=80),
            prospect(2, owner_id=OUTSIDER, organization_id=50, icp_score=80),
            prospect(3, owner_id=ACTOR, organization_id=None, icp_score=80),
        ])

        await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, org_scope)

        assert store.members(SEGMENT) == {1, 2}

    @pytest.mark.asyncio
    async def test_clear_others_exactness(self, scope):
        store = InMemoryRecordStore([
            prospect(1, icp_score=90, segment_id=SEGMENT),
            prospect(2, icp_score=None, segment_id=SEGMENT),
            prospect(3, icp_score=71, segment_id=OTHER_SEGMENT),
            prospect(4, icp_score=69),
            prospect(5, icp_score=100),
        ])

        await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=True)

        assert store.members(SEGMENT) == {1, 3, 5}

    @pytest.mark.asyncio
    async def test_additive_keeps_stale_members(self, scope):
        store = InMemoryRecordStore([
            prospect(1, icp_score=90, segment_id=SEGMENT),
            prospect(2, icp_score=10, segment_id=SEGMENT),
            prospect(3, icp_score=75),
        ])

        result = await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope)

        assert store.members(SEGMENT) == {1, 2, 3}
        assert result.unassigned_count == 0
        assert all(value == SEGMENT for _, value, _ in store.calls)

    @pytest.mark.asyncio
    async def test_empty_rule_set_matches_nothing(self, scope):
        store = InMemoryRecordStore([
            prospect(1, icp_score=90, segment_id=SEGMENT),
            prospect(2, icp_score=10),
        ])

        result = await SegmentReconciler(store).apply(SEGMENT, parse_rule_set({}), scope, clear_others=True)

        assert store.members(SEGMENT) == set()
        assert result.matched_count == 0
        assert result.unassigned_count == 1

    @pytest.mark.asyncio
    async def test_unknown_field_mutates_nothing(self, scope):
        store = InMemoryRecordStore([prospect(1, icp_score=90, segment_id=SEGMENT)])
        rules = parse_rule_set({
            "logic": "and",
            "rules": [
                {"field": "icp_score", "operator": "greater_than_or_equal", "value": 70},
                {"field": "shoeSize", "operator": "equals", "value": 9},
            ],
        })

        with pytest.raises(RuleValidationError) as exc_info:
            await SegmentReconciler(store).apply(SEGMENT, rules, scope, clear_others=True)

        assert exc_info.value.field == "shoeSize"
        assert exc_info.value.operator == "equals"
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_missing_scope_is_unauthenticated(self):
        store = InMemoryRecordStore([prospect(1, icp_score=90)])

        with pytest.raises(Unauthenticated):
            await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, None)

        assert store.calls == []


# ============================================
# Store failures
# ============================================


class TestApplyFailures:

    @pytest.fixture
    def store(self) -> InMemoryRecordStore:
        return InMemoryRecordStore([
            prospect(1, icp_score=90, segment_id=SEGMENT),
            prospect(2, icp_score=10, segment_id=SEGMENT),
            prospect(3, icp_score=75),
        ])

    @pytest.mark.asyncio
    async def test_read_failure(self, scope, store):
        store.find = AsyncMock(side_effect=StoreFailure("Prospect query failed"))

        with pytest.raises(StoreFailure) as exc_info:
            await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=True)

        assert exc_info.value.phase == "read"
        assert store.snapshot() == {1: SEGMENT, 2: SEGMENT, 3: None}

    @pytest.mark.asyncio
    async def test_unassign_failure_aborts_before_assign(self, scope, store):
        store.bulk_set_field = AsyncMock(side_effect=StoreFailure("Prospect bulk update failed"))

        with pytest.raises(StoreFailure) as exc_info:
            await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=True)

        assert exc_info.value.phase == "unassign"
        assert store.bulk_set_field.await_count == 1

    @pytest.mark.asyncio
    async def test_assign_failure_is_repaired_by_rerun(self, scope, store):
        real_bulk_set = store.bulk_set_field
        attempts = []

        async def fail_on_assign(ids, field, value, within=None):
            attempts.append(value)
            if value == SEGMENT:
                raise StoreFailure("Prospect bulk update failed")
            return await real_bulk_set(ids, field, value, within=within)

        store.bulk_set_field = AsyncMock(side_effect=fail_on_assign)

        with pytest.raises(StoreFailure) as exc_info:
            await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=True)

        assert exc_info.value.phase == "assign"
        assert attempts == [None, SEGMENT]
        # Stale member removed, matches not yet assigned
        assert store.snapshot() == {1: SEGMENT, 2: None, 3: None}

        store.bulk_set_field = real_bulk_set
        result = await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope, clear_others=True)

        assert store.members(SEGMENT) == {1, 3}
        assert result.matched_count == 2

    @pytest.mark.asyncio
    async def test_count_failure(self, scope, store):
        store.count = AsyncMock(side_effect=StoreFailure("Prospect count failed"))

        with pytest.raises(StoreFailure) as exc_info:
            await SegmentReconciler(store).apply(SEGMENT, HIGH_ICP, scope)

        assert exc_info.value.phase == "count"
        # Assignment already landed; only the report failed
        assert store.members(SEGMENT) == {1, 2, 3}
