"""Observation accumulator: collects scanned / listed counts before submission.

One accumulator belongs to one user counting one location (or editing one
pending record). Counts are kept in buckets keyed by ``(product_id,
unit_kind)``; repeated observations for the same bucket are summed.

Every change schedules a debounced snapshot to a :class:`DraftStore` so an
interrupted count can be restored later. Drafts older than the configured
TTL are discarded instead of being restored.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from stockcount.core.config import settings
from stockcount.core.draft_store import DraftStore, draft_key as build_draft_key
from stockcount.models.reconciliation import ConfirmationPolicy, UnitKind
from stockcount.services.scheduling import Debouncer, Scheduler, ThreadingScheduler

logger = logging.getLogger(__name__)

BucketKey = Tuple[int, UnitKind]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntryMode(str, Enum):
    """How counts are entered.

    SCAN: quantities come from barcode scans; a bucket that drops to zero is
    removed. LIST: quantities are typed against a product list; an explicit
    zero is kept and means "counted, none found", while a missing bucket
    means "not counted yet".
    """

    SCAN = "scan"
    LIST = "list"


@dataclass(frozen=True)
class ScannedObservation:
    """Accumulated count for one product in one unit kind."""

    product_id: int
    location_id: int
    quantity: int
    unit_kind: UnitKind


class ObservationAccumulator:
    """Upsert-and-sum store for counts, with draft auto-save."""

    def __init__(
        self,
        user_id: str,
        location_id: int,
        draft_store: Optional[DraftStore] = None,
        scheduler: Optional[Scheduler] = None,
        mode: EntryMode = EntryMode.SCAN,
        record_id: Optional[int] = None,
        policy_hint: Optional[ConfirmationPolicy] = None,
        debounce_seconds: Optional[float] = None,
        draft_ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.user_id = user_id
        self.location_id = location_id
        self.mode = mode
        self.record_id = record_id
        self.policy_hint = policy_hint
        self.draft_store = draft_store
        self.draft_ttl = draft_ttl or timedelta(hours=settings.draft_ttl_hours)
        self._clock = clock
        self._buckets: Dict[BucketKey, int] = {}
        self._lock = threading.RLock()

        if debounce_seconds is None:
            debounce_seconds = settings.draft_autosave_debounce_seconds
        self._debouncer: Optional[Debouncer] = None
        if draft_store is not None:
            self._debouncer = Debouncer(
                scheduler or ThreadingScheduler(), debounce_seconds, self._save_draft
            )

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------
    def record_observation(self, product_id: int, unit_kind: UnitKind, quantity_delta: int) -> int:
        """Add quantity_delta to the (product, unit kind) bucket.

        Returns the bucket quantity after the change (0 when removed).
        """
        key = (product_id, UnitKind(unit_kind))
        with self._lock:
            if key not in self._buckets and quantity_delta <= 0:
                # Nothing to take away from a product that was never counted
                return 0
            quantity = self._buckets.get(key, 0) + quantity_delta
            self._store(key, quantity)
            result = self._buckets.get(key, 0)
        self._changed()
        return result

    def set_observation_quantity(self, product_id: int, unit_kind: UnitKind, absolute_quantity: int) -> int:
        """Overwrite the bucket with absolute_quantity (negative values clamp to 0)."""
        key = (product_id, UnitKind(unit_kind))
        if absolute_quantity < 0:
            logger.debug(f"Clamping negative quantity {absolute_quantity} for product {product_id} to 0")
        with self._lock:
            self._store(key, absolute_quantity)
            result = self._buckets.get(key, 0)
        self._changed()
        return result

    def remove_observation(self, product_id: int, unit_kind: Optional[UnitKind] = None) -> None:
        """Drop one bucket, or every bucket of the product when unit_kind is None."""
        with self._lock:
            kinds = [UnitKind(unit_kind)] if unit_kind is not None else list(UnitKind)
            for kind in kinds:
                self._buckets.pop((product_id, kind), None)
        self._changed()

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()
        self._changed()

    def _store(self, key: BucketKey, quantity: int) -> None:
        if quantity <= 0:
            if self.mode == EntryMode.LIST:
                self._buckets[key] = 0
            else:
                self._buckets.pop(key, None)
            return
        self._buckets[key] = quantity

    def get_quantity(self, product_id: int, unit_kind: UnitKind) -> Optional[int]:
        """Bucket quantity, or None when the product was never counted in that unit."""
        with self._lock:
            return self._buckets.get((product_id, UnitKind(unit_kind)))

    def observations(self) -> List[ScannedObservation]:
        """Snapshot of all buckets, in first-counted order."""
        with self._lock:
            return [
                ScannedObservation(
                    product_id=product_id,
                    location_id=self.location_id,
                    quantity=quantity,
                    unit_kind=unit_kind,
                )
                for (product_id, unit_kind), quantity in self._buckets.items()
            ]

    def product_ids(self) -> List[int]:
        with self._lock:
            seen: Dict[int, None] = {}
            for product_id, _ in self._buckets:
                seen.setdefault(product_id, None)
            return list(seen)

    @property
    def is_empty(self) -> bool:
        return not self._buckets

    def __len__(self) -> int:
        return len(self._buckets)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------
    @property
    def draft_key(self) -> str:
        scope = self.record_id if self.record_id is not None else self.location_id
        return build_draft_key(self.user_id, scope)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-serialisable draft payload."""
        with self._lock:
            observations = [
                {"productId": product_id, "unitKind": unit_kind.value, "quantity": quantity}
                for (product_id, unit_kind), quantity in self._buckets.items()
            ]
        return {
            "timestamp": self._clock().isoformat(),
            "observations": observations,
            "locationId": self.location_id,
            "policyHint": self.policy_hint.value if self.policy_hint else None,
        }

    def _changed(self) -> None:
        if self._debouncer is not None:
            self._debouncer.trigger()

    def _save_draft(self) -> None:
        # Best effort: storage failures are logged only.
        if self.draft_store is None:
            return
        key = self.draft_key
        try:
            if self.is_empty:
                self.draft_store.clear(key)
            else:
                self.draft_store.save(key, self.snapshot())
        except Exception as e:
            logger.warning(f"Draft save failed for {key}: {e}")

    def flush(self) -> bool:
        """Write a pending draft now (window close). Returns False if nothing was pending."""
        if self._debouncer is None:
            return False
        return self._debouncer.flush()

    def discard_draft(self) -> None:
        """Cancel any pending save and delete the stored draft."""
        if self._debouncer is not None:
            self._debouncer.cancel()
        if self.draft_store is not None:
            self.draft_store.clear(self.draft_key)

    def bind_to_record(self, record_id: int) -> None:
        """Key further drafts by the record being edited instead of the location."""
        if record_id == self.record_id:
            return
        previous_key = self.draft_key
        self.record_id = record_id
        if self.draft_store is None:
            return
        if self._debouncer is not None:
            self._debouncer.cancel()
        self.draft_store.clear(previous_key)
        self._save_draft()

    def restore(self) -> bool:
        """Load the stored draft into the buckets.

        Returns True when a draft was restored. Drafts past the TTL are
        cleared and ignored.
        """
        if self.draft_store is None:
            return False
        key = self.draft_key
        data = self.draft_store.load(key)
        if not data:
            return False

        saved_at = _parse_timestamp(data.get("timestamp"))
        if saved_at is None or self._clock() - saved_at > self.draft_ttl:
            logger.info(f"Discarding stale draft {key} (saved at {data.get('timestamp')})")
            self.draft_store.clear(key)
            return False

        buckets: Dict[BucketKey, int] = {}
        for entry in data.get("observations", []):
            try:
                product_id = int(entry["productId"])
                unit_kind = UnitKind(entry["unitKind"])
                quantity = max(int(entry["quantity"]), 0)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed draft entry in {key}: {entry!r} ({e})")
                continue
            if quantity == 0 and self.mode == EntryMode.SCAN:
                continue
            buckets[(product_id, unit_kind)] = quantity

        with self._lock:
            self._buckets = buckets
        hint = data.get("policyHint")
        self.policy_hint = ConfirmationPolicy(hint) if hint in {p.value for p in ConfirmationPolicy} else None
        logger.info(f"Restored draft {key} with {len(buckets)} observation(s)")
        return True


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
