"""
Pending-edit tracking and publish round-trips for stateful records.

``BulkEditReconciler`` keeps the user's proposed status changes apart from
the last-known server states, validates every proposal against the
``TransitionPolicy`` and publishes only the non-trivial diff. After every
publish attempt it re-reads the server so the baseline never drifts.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import structlog

from ..framework.metrics import SyncMetrics
from ..schemas.models import PendingEdit, Record
from ..utils.errors import (
    FetchError,
    InvalidTransitionError,
    PublishError,
    ValidationError,
    create_error_context,
)
from .notifications import NotificationCenter
from .transition_policy import BulkOptions, TransitionPolicy

Publisher = Callable[[List[Dict[str, Any]]], Awaitable[Dict[str, Any]]]
Refetcher = Callable[[], Awaitable[Optional[Iterable[Record]]]]


class ReconcilerState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    PUBLISHING = "publishing"
    RECONCILING = "reconciling"


@dataclass
class PublishResult:
    """Outcome of one publish round-trip."""
    updated_count: int
    requested_count: int
    ambiguous: bool = False
    refetched: bool = False
    updates: List[Dict[str, Any]] = field(default_factory=list)


class BulkEditReconciler:
    """Tracks per-row and bulk status edits for the records of one view."""

    def __init__(
        self,
        policy: Optional[TransitionPolicy] = None,
        publisher: Optional[Publisher] = None,
        refetch: Optional[Refetcher] = None,
        notifications: Optional[NotificationCenter] = None,
        metrics: Optional[SyncMetrics] = None,
        bulk_min_selection: int = 2,
        view_name: str = "default",
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy or TransitionPolicy()
        self.publisher = publisher
        self.refetch = refetch
        self.notifications = notifications or NotificationCenter(view_name)
        self.metrics = metrics
        self.bulk_min_selection = bulk_min_selection
        self.view_name = view_name
        self.clock = clock
        self.logger = structlog.get_logger("reconciler").bind(view=view_name)

        self.state = ReconcilerState.IDLE
        self.baseline: Dict[str, str] = {}
        self.pending: Dict[str, PendingEdit] = {}
        self.selection: List[str] = []
        self.bulk_value: Optional[str] = None

    # ------------------------------------------------------------------
    # Baseline
    # ------------------------------------------------------------------

    def load_baseline(self, records: Iterable[Record], replace: bool = False) -> None:
        """
        Record the server state of ``records``.

        With ``replace`` the baseline is rebuilt from scratch, which is what
        happens after a publish refetch. Otherwise newly seen records are
        merged in so pending edits survive pagination and filter changes.
        """
        if replace:
            self.baseline = {}
        for record in records:
            self.baseline[record.id] = self.policy.normalise(record.status)
        for record_id, edit in list(self.pending.items()):
            server_state = self.baseline.get(record_id)
            if server_state is None:
                continue
            edit.from_state = server_state
            if edit.to_state == server_state:
                del self.pending[record_id]
        self._sync_state()

    def server_state(self, record_id: str) -> str:
        if record_id not in self.baseline:
            raise ValidationError(f"Unknown record {record_id}", field="record_id", value=record_id)
        return self.baseline[record_id]

    def effective_state(self, record_id: str) -> str:
        """Bulk value for selected rows, else the manual proposal, else the server state."""
        server_state = self.server_state(record_id)
        if self.bulk_active and record_id in self.selection:
            return self.bulk_value
        edit = self.pending.get(record_id)
        return edit.to_state if edit else server_state

    # ------------------------------------------------------------------
    # Manual edits
    # ------------------------------------------------------------------

    def set_edit(self, record_id: str, proposed: Optional[str]) -> Optional[PendingEdit]:
        """
        Propose ``proposed`` for one row.

        Raises ``InvalidTransitionError`` without mutating anything when the
        row's current effective state cannot move to ``proposed``. Proposing
        the server state removes the pending edit.
        """
        self._ensure_editable()
        current = self.effective_state(record_id)
        target = self.policy.normalise(proposed)
        if not self.policy.is_valid(current, target):
            raise InvalidTransitionError(
                f'Cannot change from "{current}" to "{target}". {self.policy.describe(current)}',
                from_state=current,
                to_state=target,
                record_id=record_id,
                context=create_error_context(view=self.view_name, operation="set_edit", record_id=record_id),
            )

        if self.bulk_active:
            self._materialise_bulk()
            self.bulk_value = None

        server_state = self.baseline[record_id]
        if target == server_state:
            self.pending.pop(record_id, None)
            edit = None
        else:
            edit = PendingEdit(record_id=record_id, from_state=server_state, to_state=target, timestamp=self.clock())
            self.pending[record_id] = edit
        self._sync_state()
        return edit

    def revert(self, record_id: str) -> bool:
        self._ensure_editable()
        removed = self.pending.pop(record_id, None) is not None
        if self.bulk_active and record_id in self.selection:
            self.selection.remove(record_id)
            self._check_bulk_selection()
            removed = True
        self._sync_state()
        return removed

    def revert_all(self) -> None:
        self._ensure_editable()
        self.pending.clear()
        self.bulk_value = None
        self._sync_state()

    # ------------------------------------------------------------------
    # Selection and bulk edits
    # ------------------------------------------------------------------

    @property
    def bulk_active(self) -> bool:
        return self.bulk_value is not None

    @property
    def bulk_available(self) -> bool:
        return len(self.selection) >= self.bulk_min_selection

    def select(self, record_id: str) -> None:
        self.server_state(record_id)
        if record_id not in self.selection:
            self.selection.append(record_id)
            self._check_bulk_compatible()

    def deselect(self, record_id: str) -> None:
        if record_id in self.selection:
            self.selection.remove(record_id)
            self._check_bulk_selection()

    def toggle(self, record_id: str) -> bool:
        """Flip selection of one row; returns whether it is now selected."""
        if record_id in self.selection:
            self.deselect(record_id)
            return False
        self.select(record_id)
        return True

    def select_all(self, record_ids: Iterable[str]) -> None:
        self.selection = [rid for rid in dict.fromkeys(record_ids) if rid in self.baseline]
        self._check_bulk_selection()
        self._check_bulk_compatible()

    def clear_selection(self) -> None:
        self.selection = []
        self.bulk_value = None
        self._sync_state()

    def bulk_options(self) -> BulkOptions:
        """Statuses every selected row may move to, from its server state."""
        if not self.bulk_available:
            return BulkOptions(
                options=(),
                enabled=False,
                message=f"Select at least {self.bulk_min_selection} records to update in bulk.",
            )
        return self.policy.bulk_options(self.baseline[rid] for rid in self.selection)

    def set_bulk_edit(self, proposed: Optional[str]) -> None:
        """
        Apply one status to every selected row.

        Validated per row against its server state; if any row rejects it,
        nothing changes. Overrides manual edits on the selected rows.
        """
        self._ensure_editable()
        if not self.bulk_available:
            raise ValidationError(
                f"Bulk edits need at least {self.bulk_min_selection} selected records",
                field="selection",
                value=len(self.selection),
            )
        target = self.policy.normalise(proposed)
        invalid = [rid for rid in self.selection if not self.policy.is_valid(self.baseline[rid], target)]
        if invalid:
            raise InvalidTransitionError(
                f'Invalid transition to "{target}" for {len(invalid)} selected record(s)',
                to_state=target,
                details={"record_ids": invalid},
                context=create_error_context(view=self.view_name, operation="set_bulk_edit"),
            )
        for record_id in self.selection:
            self.pending.pop(record_id, None)
        self.bulk_value = target
        self._sync_state()

    def clear_bulk(self) -> None:
        self.bulk_value = None
        self._sync_state()

    # ------------------------------------------------------------------
    # Diff and publish
    # ------------------------------------------------------------------

    def compute_diff(self) -> List[PendingEdit]:
        """Effective proposals that differ from the server state."""
        diff: Dict[str, PendingEdit] = {}
        for record_id, edit in self.pending.items():
            if record_id in self.baseline and edit.to_state != self.baseline[record_id]:
                diff[record_id] = edit
        if self.bulk_active:
            for record_id in self.selection:
                server_state = self.baseline[record_id]
                if self.bulk_value != server_state:
                    diff[record_id] = PendingEdit(
                        record_id=record_id,
                        from_state=server_state,
                        to_state=self.bulk_value,
                        timestamp=self.clock(),
                    )
        return list(diff.values())

    def can_publish(self) -> bool:
        return self.state is ReconcilerState.EDITING and bool(self.compute_diff())

    async def publish(self, diff: Optional[List[PendingEdit]] = None) -> PublishResult:
        """
        Send the diff, then re-read the server.

        Raises ``InvalidTransitionError`` before sending anything when a diff
        entry is not a valid move from its server state, and ``PublishError``
        (after the refetch) when the round-trip fails. Pending edits are only
        cleared on success.
        """
        self._ensure_editable()
        if self.publisher is None:
            raise PublishError("No publisher configured", context=create_error_context(view=self.view_name, operation="publish"))

        diff = self.compute_diff() if diff is None else diff
        if not diff:
            raise ValidationError("No changes to publish", field="diff")

        for edit in diff:
            edit.from_state = self.baseline.get(edit.record_id, edit.from_state)
        errors = self.policy.validate_transitions(diff)
        if errors:
            raise InvalidTransitionError(
                f"{len(errors)} pending edit(s) are no longer valid transitions",
                details={"errors": errors},
                context=create_error_context(view=self.view_name, operation="publish"),
            )

        updates = [
            {
                "id": edit.record_id,
                "status": self.policy.to_server(edit.to_state),
                "currentStatus": self.policy.to_server(edit.from_state),
            }
            for edit in diff
        ]

        self.state = ReconcilerState.PUBLISHING
        self.logger.info("Publishing edits", count=len(updates))
        failure: Optional[Exception] = None
        response: Dict[str, Any] = {}
        try:
            response = await self.publisher(updates)
            if not isinstance(response, dict) or response.get("success") is False or response.get("error"):
                message = response.get("error") if isinstance(response, dict) else None
                raise PublishError(message or "Publish was rejected by the server", requested_count=len(updates))
        except (FetchError, PublishError) as e:
            failure = e

        self.state = ReconcilerState.RECONCILING
        try:
            if failure is None:
                published = {edit.record_id for edit in diff}
                for record_id in published:
                    self.pending.pop(record_id, None)
                self.selection = [rid for rid in self.selection if rid not in published]
                self.bulk_value = None
            refetched = await self._refetch()
        finally:
            self.state = ReconcilerState.IDLE
            self._sync_state()

        if failure is not None:
            if self.metrics:
                self.metrics.record_publish(self.view_name, "failed")
            message = getattr(failure, "message", str(failure))
            self.notifications.error("publish_failed", f"Failed to publish updates: {message}")
            if isinstance(failure, PublishError):
                raise failure
            raise PublishError(
                f"Failed to publish updates: {message}",
                requested_count=len(updates),
                context=create_error_context(view=self.view_name, operation="publish"),
            ) from failure

        updated_count = _accepted_count(response.get("updatedCount"))
        ambiguous = updated_count is None or updated_count != len(updates)
        if ambiguous:
            if self.metrics:
                self.metrics.record_publish(self.view_name, "partial")
            self.notifications.warning(
                "partial_publish",
                f"Server accepted {updated_count if updated_count is not None else 'an unknown number of'} "
                f"of {len(updates)} updates; the list has been reloaded from the server.",
                requested=len(updates),
                accepted=updated_count,
            )
        elif self.metrics:
            self.metrics.record_publish(self.view_name, "ok")

        self.logger.info("Publish finished", requested=len(updates), accepted=updated_count, refetched=refetched)
        return PublishResult(
            updated_count=updated_count if updated_count is not None else 0,
            requested_count=len(updates),
            ambiguous=ambiguous,
            refetched=refetched,
            updates=updates,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _refetch(self) -> bool:
        if self.refetch is None:
            return False
        try:
            records = await self.refetch()
        except FetchError as e:
            self.notifications.error(
                "refetch_failed",
                f"Could not reload records after publishing: {e.message}",
            )
            return False
        if records is not None:
            self.load_baseline(records, replace=True)
        return True

    def _ensure_editable(self) -> None:
        if self.state in (ReconcilerState.PUBLISHING, ReconcilerState.RECONCILING):
            raise ValidationError(
                f"Edits are locked while {self.state.value}",
                field="state",
                value=self.state.value,
            )

    def _materialise_bulk(self) -> None:
        for record_id in self.selection:
            server_state = self.baseline[record_id]
            if self.bulk_value != server_state:
                self.pending[record_id] = PendingEdit(
                    record_id=record_id,
                    from_state=server_state,
                    to_state=self.bulk_value,
                    timestamp=self.clock(),
                )

    def _check_bulk_selection(self) -> None:
        if self.bulk_active and not self.bulk_available:
            self.bulk_value = None
        self._sync_state()

    def _check_bulk_compatible(self) -> None:
        if self.bulk_active and not all(self.policy.is_valid(self.baseline[rid], self.bulk_value) for rid in self.selection):
            self.notifications.warning(
                "bulk_unavailable",
                f'"{self.bulk_value}" is not a valid status for every selected record; bulk update cleared.',
            )
            self.bulk_value = None
        self._sync_state()

    def _sync_state(self) -> None:
        if self.state in (ReconcilerState.PUBLISHING, ReconcilerState.RECONCILING):
            return
        self.state = ReconcilerState.EDITING if (self.pending or self.bulk_active) else ReconcilerState.IDLE


def _accepted_count(value: Any) -> Optional[int]:
    """``updatedCount`` as an int, or None when the server sent something unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None
