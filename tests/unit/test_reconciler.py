"""Unit tests for the bulk edit reconciler."""

import pytest
from unittest.mock import AsyncMock

from sync_engine.engine.reconciler import BulkEditReconciler, ReconcilerState
from sync_engine.engine.transition_policy import NONE_STATUS
from sync_engine.schemas.models import PendingEdit, Record
from sync_engine.utils.errors import InvalidTransitionError, PublishError, TransportError, ValidationError

CAL = "Calibration Queue"
PROD = "Production Queue"
TEST = "Test Queue"


def server_records(**states):
    return [Record(id=record_id, fields={"name": record_id}, status=status) for record_id, status in states.items()]


@pytest.fixture
def reconciler(policy, notifications, metrics):
    reconciler = BulkEditReconciler(
        policy=policy,
        publisher=AsyncMock(return_value={"success": True, "updatedCount": 2}),
        refetch=AsyncMock(return_value=None),
        notifications=notifications,
        metrics=metrics,
        view_name="test-view",
    )
    reconciler.load_baseline(server_records(a=CAL, b=PROD, c=TEST, d=None))
    return reconciler


class TestManualEdits:

    def test_valid_edit_is_recorded(self, reconciler):
        edit = reconciler.set_edit("a", PROD)
        assert edit.from_state == CAL
        assert edit.to_state == PROD
        assert reconciler.state is ReconcilerState.EDITING

    def test_invalid_edit_raises_without_mutation(self, reconciler):
        with pytest.raises(InvalidTransitionError) as exc:
            reconciler.set_edit("a", CAL)
        assert exc.value.record_id == "a"
        assert reconciler.pending == {}
        assert reconciler.state is ReconcilerState.IDLE

    def test_undefined_status_is_rejected(self, reconciler):
        with pytest.raises(InvalidTransitionError):
            reconciler.set_edit("a", "Archived")
        assert reconciler.effective_state("a") == CAL

    def test_edit_chain_back_to_server_state(self, reconciler):
        reconciler.set_edit("a", TEST)
        assert reconciler.effective_state("a") == TEST

        assert reconciler.set_edit("a", CAL) is None

        assert reconciler.effective_state("a") == CAL
        assert reconciler.compute_diff() == []

    def test_last_write_wins(self, reconciler):
        reconciler.set_edit("b", TEST)
        reconciler.set_edit("b", NONE_STATUS)
        diff = reconciler.compute_diff()
        assert [(e.record_id, e.from_state, e.to_state) for e in diff] == [("b", PROD, NONE_STATUS)]

    def test_unknown_record_is_rejected(self, reconciler):
        with pytest.raises(ValidationError):
            reconciler.set_edit("zzz", PROD)

    def test_revert(self, reconciler):
        reconciler.set_edit("a", PROD)
        reconciler.set_edit("b", TEST)
        assert reconciler.revert("a")
        assert [e.record_id for e in reconciler.compute_diff()] == ["b"]
        reconciler.revert_all()
        assert reconciler.compute_diff() == []
        assert reconciler.state is ReconcilerState.IDLE


class TestBulkEdits:

    def test_bulk_requires_minimum_selection(self, reconciler):
        reconciler.select("a")
        assert not reconciler.bulk_options().enabled
        with pytest.raises(ValidationError):
            reconciler.set_bulk_edit(NONE_STATUS)

    def test_options_are_intersection_of_server_states(self, reconciler):
        reconciler.select_all(["a", "b", "c"])
        options = reconciler.bulk_options()
        assert options.enabled
        assert options.options == (NONE_STATUS,)

    def test_bulk_overrides_manual_edits(self, reconciler):
        reconciler.set_edit("a", PROD)
        reconciler.select_all(["a", "b"])
        reconciler.set_bulk_edit(TEST)

        diff = {e.record_id: e.to_state for e in reconciler.compute_diff()}
        assert diff == {"a": TEST, "b": TEST}

    def test_invalid_bulk_value_changes_nothing(self, reconciler):
        reconciler.select_all(["a", "c"])
        with pytest.raises(InvalidTransitionError):
            reconciler.set_bulk_edit(TEST)
        assert not reconciler.bulk_active
        assert reconciler.compute_diff() == []

    def test_bulk_skips_rows_already_in_target_state(self, reconciler):
        reconciler.select_all(["a", "d"])
        reconciler.set_bulk_edit(NONE_STATUS)

        diff = reconciler.compute_diff()
        assert [(e.record_id, e.to_state) for e in diff] == [("a", NONE_STATUS)]

    def test_shrinking_selection_clears_bulk(self, reconciler):
        reconciler.select_all(["a", "b"])
        reconciler.set_bulk_edit(NONE_STATUS)
        reconciler.toggle("b")
        assert not reconciler.bulk_active
        assert reconciler.compute_diff() == []

    def test_manual_edit_keeps_bulk_proposals(self, reconciler):
        reconciler.select_all(["a", "b"])
        reconciler.set_bulk_edit(TEST)
        reconciler.set_edit("b", CAL)

        assert not reconciler.bulk_active
        diff = {e.record_id: e.to_state for e in reconciler.compute_diff()}
        assert diff == {"a": TEST, "b": CAL}

    def test_incompatible_selection_notifies(self, reconciler, notifications):
        reconciler.select_all(["a", "b"])
        reconciler.set_bulk_edit(TEST)
        reconciler.select("c")
        assert not reconciler.bulk_active
        assert notifications.codes() == ["bulk_unavailable"]

    def test_clear_bulk_and_selection(self, reconciler):
        reconciler.select_all(["a", "b", "d"])
        reconciler.set_bulk_edit(TEST)
        reconciler.deselect("d")
        assert reconciler.bulk_active

        reconciler.clear_bulk()
        assert reconciler.compute_diff() == []
        assert reconciler.selection == ["a", "b"]

        reconciler.set_bulk_edit(TEST)
        reconciler.clear_selection()
        assert reconciler.selection == []
        assert not reconciler.bulk_active
        assert reconciler.state is ReconcilerState.IDLE


class TestPublish:

    @pytest.mark.asyncio
    async def test_publish_sends_diff_and_clears_edits(self, reconciler, metrics):
        reconciler.set_edit("a", PROD)
        reconciler.set_edit("d", TEST)

        result = await reconciler.publish()

        reconciler.publisher.assert_awaited_once_with([
            {"id": "a", "status": PROD, "currentStatus": CAL},
            {"id": "d", "status": TEST, "currentStatus": None},
        ])
        reconciler.refetch.assert_awaited_once()
        assert result.updated_count == 2
        assert not result.ambiguous
        assert reconciler.pending == {}
        assert reconciler.state is ReconcilerState.IDLE
        assert metrics.get_metrics()["publish_ok"] == 1

    @pytest.mark.asyncio
    async def test_clearing_status_is_sent_as_null(self, reconciler):
        reconciler.publisher.return_value = {"success": True, "updatedCount": 1}
        reconciler.set_edit("b", NONE_STATUS)

        await reconciler.publish()

        assert reconciler.publisher.await_args.args[0] == [{"id": "b", "status": None, "currentStatus": PROD}]

    @pytest.mark.asyncio
    async def test_refetch_replaces_baseline(self, reconciler):
        reconciler.refetch.return_value = server_records(a=PROD, b=PROD, c=TEST, d=TEST)
        reconciler.set_edit("a", PROD)
        reconciler.set_edit("d", TEST)

        await reconciler.publish()

        assert reconciler.server_state("a") == PROD
        assert reconciler.server_state("d") == TEST

    @pytest.mark.asyncio
    async def test_count_mismatch_is_ambiguous(self, reconciler, notifications):
        reconciler.publisher.return_value = {"success": True, "updatedCount": 1}
        reconciler.set_edit("a", PROD)
        reconciler.set_edit("b", TEST)

        result = await reconciler.publish()

        assert result.ambiguous
        assert "partial_publish" in notifications.codes()
        reconciler.refetch.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", ["two", 2.5, True, None])
    async def test_unusable_count_is_ambiguous(self, reconciler, notifications, count):
        reconciler.publisher.return_value = {"success": True, "updatedCount": count}
        reconciler.set_edit("a", PROD)
        reconciler.set_edit("b", TEST)

        result = await reconciler.publish()

        assert result.ambiguous
        assert result.updated_count == 0
        assert "partial_publish" in notifications.codes()
        assert reconciler.pending == {}

    @pytest.mark.asyncio
    async def test_numeric_string_count_is_accepted(self, reconciler):
        reconciler.publisher.return_value = {"success": True, "updatedCount": "2"}
        reconciler.set_edit("a", PROD)
        reconciler.set_edit("b", TEST)

        result = await reconciler.publish()

        assert not result.ambiguous
        assert result.updated_count == 2

    @pytest.mark.asyncio
    async def test_failed_publish_keeps_edits_and_refetches(self, reconciler, notifications):
        reconciler.publisher.side_effect = TransportError("connection reset")
        reconciler.set_edit("a", PROD)

        with pytest.raises(PublishError):
            await reconciler.publish()

        reconciler.refetch.assert_awaited_once()
        assert "a" in reconciler.pending
        assert reconciler.state is ReconcilerState.EDITING
        assert "publish_failed" in notifications.codes()

    @pytest.mark.asyncio
    async def test_rejected_publish_raises(self, reconciler):
        reconciler.publisher.return_value = {"error": "Invalid transition for record a"}
        reconciler.set_edit("a", PROD)

        with pytest.raises(PublishError, match="Invalid transition for record a"):
            await reconciler.publish()

    @pytest.mark.asyncio
    async def test_invalid_diff_is_never_sent(self, reconciler):
        with pytest.raises(InvalidTransitionError):
            await reconciler.publish([PendingEdit(record_id="c", from_state=PROD, to_state=TEST)])

        reconciler.publisher.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nothing_to_publish(self, reconciler):
        assert not reconciler.can_publish()
        with pytest.raises(ValidationError):
            await reconciler.publish()

    @pytest.mark.asyncio
    async def test_refetch_failure_is_reported(self, reconciler, notifications):
        reconciler.refetch.side_effect = TransportError("down")
        reconciler.publisher.return_value = {"success": True, "updatedCount": 1}
        reconciler.set_edit("a", PROD)

        result = await reconciler.publish()

        assert not result.refetched
        assert "refetch_failed" in notifications.codes()
        assert reconciler.state is ReconcilerState.IDLE
