# shop_api/core/sequence.py
"""
Public integer identifiers for stored resources.

Every product and item carries an ``id`` that is independent of MongoDB's
``_id``. Values come from one counter document per sequence key in the
counters collection::

    {"_id": "productId", "sequence_value": 6}

``sequence_value`` is the last value handed out, so the next allocation
returns ``sequence_value + 1``.

WARNING: ``SequenceAllocator.allocate`` never fails the caller's request.
When the counter cannot be incremented it returns a best-effort value
instead (``max(id) + 1`` from the resource collection, or a value derived
from the wall clock). Those values are NOT reserved in the counter, so a
later regular allocation can hand out the same number again, and two
clock-derived values issued within the same second are identical. Every
such fallback is logged at WARNING and counted in
``sequence_degraded_allocations_total`` so outages are visible.
"""
import time
from enum import Enum
from typing import Callable, Dict, Optional

from loguru import logger
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from shop_api.core import metrics

# Clock-derived fallback ids stay below this bound
TIMESTAMP_FALLBACK_MODULUS = 1_000_000


class AllocatorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


class DegradedPath(str, Enum):
    # counter handle missing or allocator marked failed
    STORE_UNAVAILABLE = "store_unavailable"
    # increment raised or returned no usable document
    INCREMENT_FAILED = "increment_failed"


class SequenceAllocator:
    """
    Issues monotonically increasing ids per named sequence.

    The counter collection and the resource collections used for recovery
    scans are injected through ``bind`` (or the constructor); nothing is
    looked up globally.
    """

    def __init__(
        self,
        counters=None,
        resources: Optional[Dict[str, object]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._counters = None
        self._resources: Dict[str, object] = {}
        self._clock = clock
        self.state = AllocatorState.UNINITIALIZED
        self.last_error: Optional[str] = None
        if counters is not None:
            self.bind(counters, resources)

    def bind(self, counters, resources: Optional[Dict[str, object]] = None) -> None:
        """Attach the counter collection and the sequence key -> resource collection map."""
        self._counters = counters
        self._resources = dict(resources or {})
        self.state = AllocatorState.READY
        self.last_error = None
        logger.debug(f"Sequence allocator bound (sequences: {sorted(self._resources) or 'none'}).")

    def mark_failed(self, reason: str) -> None:
        self.state = AllocatorState.FAILED
        self.last_error = reason
        logger.error(f"Sequence allocator marked as failed: {reason}")

    @property
    def ready(self) -> bool:
        return self.state is AllocatorState.READY and self._counters is not None

    async def ensure(self, sequence_key: str, initial_value: int = 1) -> None:
        """
        Create the counter for ``sequence_key`` only if it does not exist yet.

        Safe to call on every startup: an existing counter keeps its value.
        Store errors mark the allocator as failed and are re-raised.
        """
        if self._counters is None:
            raise RuntimeError("Sequence allocator has no counter collection bound.")
        try:
            await self._counters.update_one(
                {"_id": sequence_key},
                {"$setOnInsert": {"sequence_value": initial_value}},
                upsert=True,
            )
        except PyMongoError as e:
            self.mark_failed(f"ensure('{sequence_key}') failed: {e}")
            raise
        self.state = AllocatorState.READY
        self.last_error = None
        logger.info(f"Counter '{sequence_key}' initialized (seed value {initial_value} if new).")

    async def set_sequence(self, sequence_key: str, value: int) -> None:
        """Force the counter to ``value``; the next allocation returns ``value + 1``."""
        if self._counters is None:
            raise RuntimeError("Sequence allocator has no counter collection bound.")
        await self._counters.update_one(
            {"_id": sequence_key},
            {"$set": {"sequence_value": value}},
            upsert=True,
        )
        logger.info(f"Counter '{sequence_key}' set to {value}.")

    async def current(self, sequence_key: str) -> Optional[int]:
        if self._counters is None:
            return None
        doc = await self._counters.find_one({"_id": sequence_key})
        if not doc:
            return None
        return doc.get("sequence_value")

    async def allocate(self, sequence_key: str) -> int:
        """
        Return the next id for ``sequence_key``.

        The regular path is a single atomic ``$inc`` on the counter document.
        A counter document that has disappeared is recreated once from the
        highest stored id before retrying the increment.
        Never raises for store trouble; see the module docstring for the
        fallback values and their collision hazard.
        """
        if not self.ready:
            return await self._degraded(sequence_key, DegradedPath.STORE_UNAVAILABLE,
                                        f"allocator state is '{self.state.value}'")

        try:
            updated_doc = await self._increment(sequence_key)
            if updated_doc is None and await self._recreate_counter(sequence_key):
                updated_doc = await self._increment(sequence_key)
        except PyMongoError as e:
            return await self._degraded(sequence_key, DegradedPath.INCREMENT_FAILED, repr(e))

        value = updated_doc.get("sequence_value") if updated_doc else None
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            return await self._degraded(
                sequence_key, DegradedPath.INCREMENT_FAILED,
                f"unexpected counter document: {updated_doc!r}",
            )

        metrics.SEQUENCE_ALLOCATIONS_TOTAL.labels(sequence_key=sequence_key).inc()
        logger.debug(f"Next sequence value for '{sequence_key}': {value}")
        return value

    async def _increment(self, sequence_key: str) -> Optional[dict]:
        return await self._counters.find_one_and_update(
            {"_id": sequence_key},
            {"$inc": {"sequence_value": 1}},
            return_document=ReturnDocument.AFTER,
        )

    async def _recreate_counter(self, sequence_key: str) -> bool:
        """
        Insert a missing counter at the highest stored id.

        Returns False when the resource collection cannot be scanned; seeding
        blindly would hand out ids that already exist.
        """
        next_id = await self._max_id_plus_one(sequence_key)
        if next_id is None:
            return False
        logger.warning(f"Counter '{sequence_key}' is missing; recreating it at {next_id - 1}.")
        try:
            await self._counters.update_one(
                {"_id": sequence_key},
                {"$setOnInsert": {"sequence_value": next_id - 1}},
                upsert=True,
            )
        except DuplicateKeyError:
            # a concurrent request recreated it first
            pass
        return True

    async def _degraded(self, sequence_key: str, path: DegradedPath, reason: str) -> int:
        # Recovery scan first, clock last. Neither reserves the value in the counter.
        metrics.SEQUENCE_DEGRADED_TOTAL.labels(sequence_key=sequence_key, path=path.value).inc()
        log = logger.bind(sequence_key=sequence_key, path=path.value)

        recovered = await self._max_id_plus_one(sequence_key)
        if recovered is not None:
            log.warning(
                f"Sequence '{sequence_key}' degraded ({path.value}: {reason}); "
                f"issuing {recovered} from max existing id. Value is not reserved and may collide."
            )
            return recovered

        fallback = self.timestamp_fallback()
        log.warning(
            f"Sequence '{sequence_key}' degraded ({path.value}: {reason}); recovery scan unavailable, "
            f"issuing clock-derived {fallback}. Value is not unique within the same second."
        )
        return fallback

    async def _max_id_plus_one(self, sequence_key: str) -> Optional[int]:
        collection = self._resources.get(sequence_key)
        if collection is None:
            logger.warning(f"No resource collection registered for sequence '{sequence_key}'.")
            return None
        try:
            last = await collection.find_one(
                {"id": {"$type": "number"}},
                projection={"_id": 0, "id": 1},
                sort=[("id", DESCENDING)],
            )
        except PyMongoError as e:
            logger.error(f"Max-id scan for sequence '{sequence_key}' failed: {e!r}")
            return None
        if not last:
            return 1
        return int(last["id"]) + 1

    def timestamp_fallback(self) -> int:
        """Seconds since the epoch folded into 1..999999."""
        return int(self._clock()) % TIMESTAMP_FALLBACK_MODULUS or 1
