# tests/test_allocation.py

"""
Tests for partial allocation accounting.
"""

import pytest

from app.core.allocation import batch_get_allocation_info, get_allocation_info
from tests.fakes import FakeRepository, make_invoice, make_line_item, make_transaction


@pytest.fixture
def repo():
    repo = FakeRepository()
    repo.add_transaction(make_transaction("tx-1", amount=-30000))
    repo.add_transaction(make_transaction("tx-2", amount=-5000))
    repo.add_invoice(make_invoice("inv-1"))
    return repo


class TestAllocationInfo:

    @pytest.mark.asyncio
    async def test_unallocated(self, repo):
        info = await get_allocation_info(repo, "tx-1")

        assert info.amount_agorot == 30000
        assert info.allocated_agorot == 0
        assert info.remaining_agorot == 30000
        assert not info.is_fully_allocated

    @pytest.mark.asyncio
    async def test_partial_then_full(self, repo):
        repo.line_items["li-1"] = make_line_item("li-1", total=10000, transaction_id="tx-1")

        info = await get_allocation_info(repo, "tx-1")
        assert info.remaining_agorot == 20000
        assert not info.is_fully_allocated

        repo.line_items["li-2"] = make_line_item("li-2", total=20000, transaction_id="tx-1")

        info = await get_allocation_info(repo, "tx-1")
        assert info.allocated_agorot == 30000
        assert info.remaining_agorot == 0
        assert info.is_fully_allocated

    @pytest.mark.asyncio
    async def test_explicit_allocation_wins_over_total(self, repo):
        repo.line_items["li-1"] = make_line_item(
            "li-1", total=50000, transaction_id="tx-1", allocation_amount_agorot=12000,
        )

        info = await get_allocation_info(repo, "tx-1")

        assert info.allocated_agorot == 12000
        assert info.remaining_agorot == 18000

    @pytest.mark.asyncio
    async def test_over_allocation_clamps_to_zero(self, repo):
        repo.line_items["li-1"] = make_line_item("li-1", total=8000, transaction_id="tx-2")

        info = await get_allocation_info(repo, "tx-2")

        assert info.remaining_agorot == 0
        assert info.is_fully_allocated

    @pytest.mark.asyncio
    async def test_batch_uses_two_reads_and_skips_unknown(self, repo):
        result = await batch_get_allocation_info(repo, ["tx-1", "tx-2", "tx-1", "missing"])

        assert set(result) == {"tx-1", "tx-2"}
        assert repo.calls == ["get_transaction_amounts", "get_allocations_for_transactions"]

    @pytest.mark.asyncio
    async def test_batch_empty(self, repo):
        assert await batch_get_allocation_info(repo, []) == {}
        assert repo.calls == []
