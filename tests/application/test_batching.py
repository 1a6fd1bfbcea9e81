"""Tests for batch helpers."""

import asyncio

import pytest

from storeseed.application.batching import (
    FailurePolicy,
    chunked,
    create_in_batch,
    delete_in_batch,
    run_bounded,
)
from storeseed.domain.exceptions import (
    ItemRejectedError,
    RemoteApiError,
    RemoteAuthError,
    RemoteUnavailableError,
)
from storeseed.infrastructure.store_client import BatchItemResult, CreateResult


class Recorder:
    """Collects on_created callbacks."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int, bool]] = []

    async def __call__(self, key: str, external_id: int, existed: bool) -> None:
        self.calls.append((key, external_id, existed))


def _payloads(keys: list[str]) -> list[dict]:
    return [{"sku": key} for key in keys]


class TestChunked:
    """Tests for chunked."""

    def test_splits_with_remainder(self) -> None:
        """Last chunk holds the remainder."""
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self) -> None:
        """Empty input yields nothing."""
        assert list(chunked([], 3)) == []

    def test_invalid_size(self) -> None:
        """Chunk size must be positive."""
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestCreateInBatch:
    """Tests for create_in_batch."""

    @pytest.mark.asyncio
    async def test_partial_rejection_continues(self) -> None:
        """Under CONTINUE_ON_ITEM_ERROR, rejections are collected."""
        keys = ["A", "B", "C"]

        async def create_batch(payloads):
            return [
                BatchItemResult(id=1),
                BatchItemResult(id=None, error="Invalid SKU"),
                BatchItemResult(id=3, existed=True),
            ]

        async def create_one(payload):
            raise AssertionError("fallback not expected")

        recorder = Recorder()
        outcome = await create_in_batch(
            keys,
            _payloads(keys),
            create_batch=create_batch,
            create_one=create_one,
            on_created=recorder,
            policy=FailurePolicy.CONTINUE_ON_ITEM_ERROR,
            resource="simple_items",
        )

        assert outcome.created == ["A"]
        assert outcome.existed == ["C"]
        assert outcome.rejected == {"B": "Invalid SKU"}
        assert not outcome.fell_back
        assert recorder.calls == [("A", 1, False), ("C", 3, True)]

    @pytest.mark.asyncio
    async def test_abort_records_successes_then_raises(self) -> None:
        """Under ABORT, successes in the batch are mapped before failing."""
        keys = ["A", "B", "C"]

        async def create_batch(payloads):
            return [
                BatchItemResult(id=None, error="Bad"),
                BatchItemResult(id=2),
                BatchItemResult(id=3),
            ]

        recorder = Recorder()
        with pytest.raises(ItemRejectedError) as exc_info:
            await create_in_batch(
                keys,
                _payloads(keys),
                create_batch=create_batch,
                create_one=None,
                on_created=recorder,
                policy=FailurePolicy.ABORT,
                resource="composite_items",
            )

        assert exc_info.value.key == "A"
        assert recorder.calls == [("B", 2, False), ("C", 3, False)]

    @pytest.mark.asyncio
    async def test_failed_batch_falls_back_to_single_creates(self) -> None:
        """A batch call that fails is retried one item at a time."""
        keys = ["A", "B"]
        created = []

        async def create_batch(payloads):
            raise RemoteApiError("Gateway timeout", 504)

        async def create_one(payload):
            created.append(payload["sku"])
            if payload["sku"] == "B":
                raise RemoteApiError("Invalid SKU", 400)
            return CreateResult(id=10)

        recorder = Recorder()
        outcome = await create_in_batch(
            keys,
            _payloads(keys),
            create_batch=create_batch,
            create_one=create_one,
            on_created=recorder,
            policy=FailurePolicy.CONTINUE_ON_ITEM_ERROR,
            resource="simple_items",
        )

        assert outcome.fell_back
        assert created == ["A", "B"]
        assert outcome.created == ["A"]
        assert outcome.rejected == {"B": "Invalid SKU"}

    @pytest.mark.asyncio
    async def test_unreachable_batch_falls_back(self) -> None:
        """A transport failure on the batch call also falls back."""

        async def create_batch(payloads):
            raise RemoteUnavailableError("reset")

        async def create_one(payload):
            return CreateResult(id=5, existed=True)

        outcome = await create_in_batch(
            ["A"],
            _payloads(["A"]),
            create_batch=create_batch,
            create_one=create_one,
            on_created=Recorder(),
            policy=FailurePolicy.ABORT,
            resource="simple_items",
        )

        assert outcome.fell_back
        assert outcome.existed == ["A"]

    @pytest.mark.asyncio
    async def test_auth_failure_propagates(self) -> None:
        """Credential failures are never retried."""

        async def create_batch(payloads):
            raise RemoteAuthError("denied", 401)

        with pytest.raises(RemoteAuthError):
            await create_in_batch(
                ["A"],
                _payloads(["A"]),
                create_batch=create_batch,
                create_one=None,
                on_created=Recorder(),
                policy=FailurePolicy.CONTINUE_ON_ITEM_ERROR,
                resource="simple_items",
            )

    @pytest.mark.asyncio
    async def test_unreachable_during_fallback_propagates(self) -> None:
        """Losing the store during the fallback is fatal."""

        async def create_batch(payloads):
            raise RemoteApiError("Server error", 500)

        async def create_one(payload):
            raise RemoteUnavailableError("down")

        with pytest.raises(RemoteUnavailableError):
            await create_in_batch(
                ["A"],
                _payloads(["A"]),
                create_batch=create_batch,
                create_one=create_one,
                on_created=Recorder(),
                policy=FailurePolicy.CONTINUE_ON_ITEM_ERROR,
                resource="simple_items",
            )


class TestDeleteInBatch:
    """Tests for delete_in_batch."""

    @pytest.mark.asyncio
    async def test_per_item_failures(self) -> None:
        """Failed ids are reported next to deleted ones."""

        async def delete_batch(ids):
            return [BatchItemResult(id=1), BatchItemResult(id=2, error="Locked")]

        outcome = await delete_in_batch(
            [1, 2], delete_batch=delete_batch, delete_one=None, resource="items"
        )

        assert outcome.deleted == [1]
        assert outcome.failed == {2: "Locked"}

    @pytest.mark.asyncio
    async def test_fallback(self) -> None:
        """A failed batch call deletes one by one and continues past failures."""
        attempted = []

        async def delete_batch(ids):
            raise RemoteApiError("Server error", 500)

        async def delete_one(resource_id):
            attempted.append(resource_id)
            if resource_id == 2:
                raise RemoteApiError("Not found", 404)

        outcome = await delete_in_batch(
            [1, 2, 3], delete_batch=delete_batch, delete_one=delete_one, resource="items"
        )

        assert attempted == [1, 2, 3]
        assert outcome.deleted == [1, 3]
        assert list(outcome.failed) == [2]
        assert outcome.fell_back

    @pytest.mark.asyncio
    async def test_auth_failure_propagates(self) -> None:
        """Credential failures stop deletion."""

        async def delete_batch(ids):
            raise RemoteAuthError("denied", 403)

        with pytest.raises(RemoteAuthError):
            await delete_in_batch(
                [1], delete_batch=delete_batch, delete_one=None, resource="items"
            )


class TestRunBounded:
    """Tests for run_bounded."""

    @pytest.mark.asyncio
    async def test_limit_and_order(self) -> None:
        """At most `limit` run at once; results keep input order."""
        running = 0
        peak = 0

        async def work(value: int) -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return value * 2

        results = await run_bounded([lambda v=v: work(v) for v in range(6)], 2)

        assert results == [0, 2, 4, 6, 8, 10]
        assert peak == 2

    @pytest.mark.asyncio
    async def test_error_cancels_the_rest(self) -> None:
        """The first failure propagates and pending work is cancelled."""
        finished = []

        async def fail() -> None:
            raise RemoteAuthError("denied", 401)

        async def slow() -> None:
            await asyncio.sleep(1)
            finished.append(True)

        with pytest.raises(RemoteAuthError):
            await run_bounded([fail, slow, slow], 3)

        assert finished == []

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        """No factories, no results."""
        assert await run_bounded([], 4) == []
