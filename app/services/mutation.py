"""
Demand Capacity Engine
Optimistic Mutation Coordinator.

Every write goes through ``MutationCoordinator.mutate``:

    idle → applying (local) → persisting (remote) → committed | rolled_back

1. snapshot the current collection
2. apply ``transform`` and publish the result at once, so readers see the
   change before the persistence call returns
3. call ``persist``
4. success → committed; ``PersistenceError`` → the pre-call snapshot is
   published again and the failure comes back as a typed result

A composite change (status + summary + history) is a single transform, so it
commits or rolls back as one unit. Last resolved call wins; there is no
version check and no cancellation.

Usage:
    store = DemandStore(repository.list_demands())
    coordinator = MutationCoordinator(store)
    result = coordinator.mutate(
        lambda items: replace_demand(items, updated),
        lambda: repository.update_demand(updated),
        label="transition",
    )
"""

from __future__ import annotations

import logging
from typing import Callable, NamedTuple

from app.core.exceptions import PersistenceError
from app.models.domain import Demand

logger = logging.getLogger(__name__)


class MutationState:
    IDLE = "idle"
    APPLYING = "applying"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    # rejected before anything was applied (invalid transition)
    REJECTED = "rejected"


class MutationResult(NamedTuple):
    state: str
    value: object = None
    error: Exception | None = None
    message: str = ""

    @property
    def committed(self) -> bool:
        return self.state == MutationState.COMMITTED

    @property
    def rolled_back(self) -> bool:
        return self.state == MutationState.ROLLED_BACK


class DemandStore:
    """Holds the current immutable snapshot of the demand collection.

    Snapshots are tuples of frozen ``Demand`` records, so handing one out
    never exposes mutable state. Only the coordinator publishes.
    """

    def __init__(self, demands=()):
        self._items: tuple = tuple(demands)

    def snapshot(self) -> tuple:
        return self._items

    def publish(self, demands) -> None:
        self._items = tuple(demands)

    def get(self, demand_id: str) -> Demand | None:
        for demand in self._items:
            if demand.id == demand_id:
                return demand
        return None

    def __len__(self):
        return len(self._items)

    def __iter__(self):
        return iter(self._items)


# ── Collection transforms ────────────────────────────────────────────────────


def add_demand(items: tuple, demand: Demand) -> tuple:
    return items + (demand,)


def replace_demand(items: tuple, demand: Demand) -> tuple:
    return tuple(demand if d.id == demand.id else d for d in items)


def remove_demand(items: tuple, demand_id: str) -> tuple:
    return tuple(d for d in items if d.id != demand_id)


# ── Coordinator ──────────────────────────────────────────────────────────────


class MutationCoordinator:
    """Applies a change locally, persists it, and undoes it if persisting fails."""

    def __init__(self, store: DemandStore):
        self.store = store
        self.state = MutationState.IDLE

    def mutate(
        self,
        transform: Callable[[tuple], tuple],
        persist: Callable[[], object],
        *,
        label: str = "mutation",
    ) -> MutationResult:
        before = self.store.snapshot()

        self.state = MutationState.APPLYING
        try:
            self.store.publish(transform(before))
        except Exception:
            self.store.publish(before)
            self.state = MutationState.IDLE
            raise

        self.state = MutationState.PERSISTING
        try:
            value = persist()
        except PersistenceError as exc:
            self.store.publish(before)
            self.state = MutationState.ROLLED_BACK
            logger.warning("Mutation rolled back label=%s: %s", label, exc)
            return MutationResult(MutationState.ROLLED_BACK, error=exc, message=str(exc))
        except Exception:
            self.store.publish(before)
            self.state = MutationState.ROLLED_BACK
            logger.exception("Mutation failed unexpectedly label=%s", label)
            raise

        self.state = MutationState.COMMITTED
        logger.debug("Mutation committed label=%s", label)
        return MutationResult(MutationState.COMMITTED, value=value)
