"""Batch helpers shared by the provisioning and teardown pipelines.

Creation and deletion go through the store's batch endpoints, with a
one-by-one fallback when a batch call fails as a whole. How per-item
rejections are treated is decided by an explicit FailurePolicy.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

import structlog

from storeseed.domain.exceptions import (
    ConnectivityOrAuthError,
    ItemRejectedError,
    RemoteApiError,
    RemoteAuthError,
    RemoteError,
    RemoteUnavailableError,
)
from storeseed.infrastructure.store_client import BatchItemResult, CreateResult

logger = structlog.get_logger()

T = TypeVar("T")


class FailurePolicy(str, Enum):
    """How a phase reacts when the store rejects one resource.

    ABORT: the rejection ends the run.
    CONTINUE_ON_ITEM_ERROR: the rejection is logged and skipped.
    """

    ABORT = "abort"
    CONTINUE_ON_ITEM_ERROR = "continue_on_item_error"


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split a sequence into lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


# ============================================================================
# Creation
# ============================================================================


@dataclass
class BatchOutcome:
    """What happened to one batch of creations.

    Attributes:
        created: Keys created by this batch.
        existed: Keys whose create hit a duplicate and reused the existing id.
        rejected: Keys rejected by the store, with the reason.
        fell_back: True if the batch call failed and items were created one by one.
    """

    created: list[str] = field(default_factory=list)
    existed: list[str] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)
    fell_back: bool = False


def _reject(
    outcome: BatchOutcome,
    key: str,
    reason: str,
    policy: FailurePolicy,
    resource: str,
) -> None:
    if policy == FailurePolicy.ABORT:
        raise ItemRejectedError(resource, key, reason)
    logger.warning("Store rejected item, skipping", resource=resource, key=key, reason=reason)
    outcome.rejected[key] = reason


async def create_in_batch(
    keys: list[str],
    payloads: list[dict[str, Any]],
    *,
    create_batch: Callable[[list[dict[str, Any]]], Awaitable[list[BatchItemResult]]],
    create_one: Callable[[dict[str, Any]], Awaitable[CreateResult]],
    on_created: Callable[[str, int, bool], Awaitable[None]],
    policy: FailurePolicy,
    resource: str,
) -> BatchOutcome:
    """Create one batch of resources.

    Each success is reported through ``on_created`` as soon as it is
    known, so ids are mapped even when a later rejection aborts the run.

    Args:
        keys: Catalog keys, parallel to ``payloads``.
        payloads: Resource bodies.
        create_batch: Sends the whole batch.
        create_one: Sends a single resource (used by the fallback).
        on_created: Called with (key, id, existed) for every success.
        policy: Reaction to per-item rejections.
        resource: Resource type name for logs and errors.

    Returns:
        BatchOutcome describing the batch.

    Raises:
        ItemRejectedError: Under ABORT, on the first rejection.
        ConnectivityOrAuthError: On authentication failures, and when the
            store is unreachable during the fallback.
    """
    outcome = BatchOutcome()
    try:
        results = await create_batch(payloads)
    except RemoteAuthError:
        raise
    except (RemoteUnavailableError, RemoteApiError) as e:
        # The batch call itself failed; try each item on its own
        logger.warning(
            "Batch create failed, retrying items one by one",
            resource=resource,
            size=len(payloads),
            error=e.message,
        )
        outcome.fell_back = True
        await _create_individually(keys, payloads, create_one, on_created, policy, resource, outcome)
        return outcome

    # Map every success before aborting on the first rejection
    first_rejection: tuple[str, str] | None = None
    for key, result in zip(keys, results):
        if result.ok:
            await on_created(key, result.id, result.existed)
            (outcome.existed if result.existed else outcome.created).append(key)
        elif policy == FailurePolicy.ABORT:
            first_rejection = first_rejection or (key, result.error or "Unknown error")
        else:
            _reject(outcome, key, result.error or "Unknown error", policy, resource)

    if first_rejection is not None:
        _reject(outcome, *first_rejection, policy, resource)
    return outcome


async def _create_individually(
    keys: list[str],
    payloads: list[dict[str, Any]],
    create_one: Callable[[dict[str, Any]], Awaitable[CreateResult]],
    on_created: Callable[[str, int, bool], Awaitable[None]],
    policy: FailurePolicy,
    resource: str,
    outcome: BatchOutcome,
) -> None:
    for key, payload in zip(keys, payloads):
        try:
            result = await create_one(payload)
        except ConnectivityOrAuthError:
            raise
        except RemoteApiError as e:
            _reject(outcome, key, e.message, policy, resource)
            continue
        await on_created(key, result.id, result.existed)
        (outcome.existed if result.existed else outcome.created).append(key)


# ============================================================================
# Deletion
# ============================================================================


@dataclass
class DeleteOutcome:
    """What happened to one batch of deletions."""

    deleted: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    fell_back: bool = False


async def delete_in_batch(
    ids: list[int],
    *,
    delete_batch: Callable[[list[int]], Awaitable[list[BatchItemResult]]],
    delete_one: Callable[[int], Awaitable[None]],
    resource: str,
) -> DeleteOutcome:
    """Delete one batch of resources, continuing past individual failures.

    Args:
        ids: Remote ids.
        delete_batch: Deletes the whole batch.
        delete_one: Deletes a single resource (used by the fallback).
        resource: Resource type name for logs.

    Returns:
        DeleteOutcome with deleted ids and failures.

    Raises:
        RemoteAuthError: The store rejects our credentials.
    """
    outcome = DeleteOutcome()
    try:
        results = await delete_batch(ids)
    except RemoteAuthError:
        raise
    except RemoteError as e:
        # Fall back to single deletes for this batch only
        logger.warning(
            "Batch delete failed, deleting one by one",
            resource=resource,
            size=len(ids),
            error=e.message,
        )
        outcome.fell_back = True
        for resource_id in ids:
            try:
                await delete_one(resource_id)
            except RemoteAuthError:
                raise
            except RemoteError as item_error:
                logger.warning(
                    "Delete failed",
                    resource=resource,
                    resource_id=resource_id,
                    error=item_error.message,
                )
                outcome.failed[resource_id] = item_error.message
            else:
                outcome.deleted.append(resource_id)
        return outcome

    for result in results:
        if result.ok:
            outcome.deleted.append(result.id)
        else:
            logger.warning(
                "Delete failed",
                resource=resource,
                resource_id=result.id,
                error=result.error,
            )
            outcome.failed[result.id] = result.error or "Unknown error"
    return outcome


# ============================================================================
# Bounded concurrency
# ============================================================================


async def run_bounded(
    factories: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
) -> list[T]:
    """Run coroutine factories with at most ``limit`` in flight.

    Results keep the order of ``factories``. If any of them raises, the
    others are cancelled and the first error propagates.

    Args:
        factories: Zero-argument callables returning awaitables.
        limit: Maximum concurrent awaitables (1 runs them in order).

    Returns:
        Results in input order.
    """
    semaphore = asyncio.Semaphore(max(limit, 1))

    async def run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    tasks = [asyncio.ensure_future(run(factory)) for factory in factories]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        # Cancel the rest and wait so nothing outlives the caller
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
