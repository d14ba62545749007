# tests/test_batching.py

import asyncio
import pytest

from app.core.batching import chunked, process_in_batches


class TestChunked:

    def test_splits_evenly_and_keeps_remainder(self):
        assert list(chunked([1, 2, 3, 4, 5, 6, 7], 3)) == [[1, 2, 3], [4, 5, 6], [7]]

    def test_empty(self):
        assert list(chunked([], 3)) == []

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestProcessInBatches:

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        async def handler(n):
            await asyncio.sleep(0.01 * (5 - n))
            return n * 10

        assert await process_in_batches([1, 2, 3, 4, 5], handler, batch_size=2) == [10, 20, 30, 40, 50]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        running = 0
        peak = 0

        async def handler(n):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return n

        await process_in_batches(list(range(10)), handler, batch_size=3)

        assert peak == 3
