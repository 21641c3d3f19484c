"""
Tests for PacingPolicy sequential / bounded-concurrency execution.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from order_assets.core.shared.pacing import PacingPolicy


def _on_error(item, error):
    return {"item": item, "success": False, "error": str(error)}


class TestSequential:

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        async def worker(item):
            return {"item": item, "success": True}

        results = await PacingPolicy().run([3, 1, 2], worker, _on_error)
        assert [r["item"] for r in results] == [3, 1, 2]

    @pytest.mark.asyncio
    async def test_failure_isolated_to_item(self):
        async def worker(item):
            if item == "bad":
                raise ValueError("broken")
            return {"item": item, "success": True}

        results = await PacingPolicy().run(["a", "bad", "c"], worker, _on_error)
        assert [r["success"] for r in results] == [True, False, True]
        assert results[1]["error"] == "broken"

    @pytest.mark.asyncio
    async def test_delay_between_items_only(self):
        async def worker(item):
            return {"item": item, "success": True}

        with patch("order_assets.core.shared.pacing.asyncio.sleep", new=AsyncMock()) as sleep:
            await PacingPolicy(delay_seconds=0.1).run([1, 2, 3], worker, _on_error)

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.1)

    @pytest.mark.asyncio
    async def test_item_timeout_is_item_failure(self):
        async def worker(item):
            if item == "slow":
                await asyncio.sleep(5)
            return {"item": item, "success": True}

        results = await PacingPolicy(item_timeout=0.05).run(["slow", "fast"], worker, _on_error)
        assert results[0]["success"] is False
        assert "timed out" in results[0]["error"]
        assert results[1]["success"] is True

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        worker = AsyncMock()
        assert await PacingPolicy().run([], worker, _on_error) == []
        worker.assert_not_awaited()


class TestBoundedConcurrency:

    @pytest.mark.asyncio
    async def test_never_exceeds_limit(self):
        running = 0
        peak = 0

        async def worker(item):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return {"item": item, "success": True}

        results = await PacingPolicy(max_concurrency=2).run(list(range(6)), worker, _on_error)

        assert peak <= 2
        assert [r["item"] for r in results] == list(range(6))

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            PacingPolicy(max_concurrency=0)
