"""Unit tests for the search debouncer."""

import asyncio

import pytest
from unittest.mock import AsyncMock

from sync_engine.engine.debouncer import SearchDebouncer

QUIET = 0.1


@pytest.mark.asyncio
async def test_burst_of_keystrokes_fires_once_with_last_term():
    reset = AsyncMock()
    debouncer = SearchDebouncer(reset, quiet_period=QUIET)

    for term in ["a", "ac", "acm", "acme"]:
        debouncer.on_term_change(term)
        await asyncio.sleep(QUIET / 5)

    assert reset.await_count == 0
    await asyncio.sleep(QUIET * 3)

    reset.assert_awaited_once_with("acme")
    assert debouncer.active_term == "acme"
    assert debouncer.fired_count == 1


@pytest.mark.asyncio
async def test_each_settled_term_fires():
    reset = AsyncMock()
    debouncer = SearchDebouncer(reset, quiet_period=QUIET)

    debouncer.on_term_change("one")
    await asyncio.sleep(QUIET * 3)
    debouncer.on_term_change("two")
    await asyncio.sleep(QUIET * 3)

    assert [c.args[0] for c in reset.await_args_list] == ["one", "two"]


@pytest.mark.asyncio
async def test_unchanged_term_after_normalisation_is_skipped():
    reset = AsyncMock()
    debouncer = SearchDebouncer(reset, quiet_period=QUIET, initial_term="acme")

    debouncer.on_term_change("  acme ")
    await asyncio.sleep(QUIET * 3)

    reset.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_drops_pending_timer():
    reset = AsyncMock()
    debouncer = SearchDebouncer(reset, quiet_period=QUIET)

    debouncer.on_term_change("x")
    assert debouncer.pending
    debouncer.cancel()
    await asyncio.sleep(QUIET * 3)

    assert not debouncer.pending
    reset.assert_not_awaited()


@pytest.mark.asyncio
async def test_flush_fires_immediately():
    reset = AsyncMock()
    debouncer = SearchDebouncer(reset, quiet_period=10)

    debouncer.on_term_change("now")
    await debouncer.flush()

    reset.assert_awaited_once_with("now")
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_refetch_failure_is_contained():
    reset = AsyncMock(side_effect=RuntimeError("boom"))
    debouncer = SearchDebouncer(reset, quiet_period=QUIET)

    debouncer.on_term_change("x")
    await asyncio.sleep(QUIET * 3)

    reset.assert_awaited_once()
    assert debouncer.active_term == "x"
