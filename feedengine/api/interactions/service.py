import logging
import time
from typing import Callable, List, Optional

from pydantic import ValidationError

from feedengine.api.interactions.models import Interaction, InteractionList
from feedengine.config.constants import (
    INTERACTIONS_STORAGE_KEY,
    MAX_USER_INTERACTIONS,
    InteractionKind,
)
from feedengine.shared.error_handler import ErrorHandler
from feedengine.shared.storage import KeyValueStore


class InteractionService:
    """
    Append-only, capped log of the user's interactions.

    Handles:
    - Recording interactions (view, click, like, save, share, cart_add)
    - Keeping only the most recent MAX_USER_INTERACTIONS entries (FIFO)
    - Persisting the whole log to durable local storage after every append
    - Restoring the log at startup, treating corrupt data as empty
    """

    def __init__(
        self,
        storage: KeyValueStore,
        max_interactions: int = MAX_USER_INTERACTIONS,
        storage_key: str = INTERACTIONS_STORAGE_KEY,
        clock: Callable[[], float] = time.time,
    ):
        self._error_handler = ErrorHandler(__name__)
        self.logger = logging.getLogger(__name__)
        self._storage = storage
        self._storage_key = storage_key
        self._clock = clock
        self.max_interactions = max_interactions
        self._interactions: List[Interaction] = []
        self._total_recorded = 0

    @property
    def interactions(self) -> List[Interaction]:
        return list(self._interactions)

    @property
    def total_recorded(self) -> int:
        """Monotonic count of interactions ever added to this log, loaded ones included"""
        return self._total_recorded

    def __len__(self) -> int:
        return len(self._interactions)

    def record(self, item_id: str, kind: InteractionKind) -> Interaction:
        """
        Record an interaction and persist the log.

        Args:
            item_id: Content item ID
            kind: Type of interaction

        Returns:
            The recorded Interaction
        """
        interaction = Interaction(
            item_id=item_id, kind=InteractionKind(kind), timestamp=self._clock()
        )

        # Append and trim in one step
        self._interactions.append(interaction)
        if len(self._interactions) > self.max_interactions:
            self._interactions = self._interactions[-self.max_interactions:]
        self._total_recorded += 1

        self.logger.debug(f"Tracked {interaction.kind.value} interaction: item={item_id}")
        self._persist()
        return interaction

    def track_view(self, item_id: str) -> Interaction:
        return self.record(item_id, InteractionKind.VIEW)

    def track_click(self, item_id: str) -> Interaction:
        return self.record(item_id, InteractionKind.CLICK)

    def track_like(self, item_id: str) -> Interaction:
        return self.record(item_id, InteractionKind.LIKE)

    def track_save(self, item_id: str) -> Interaction:
        return self.record(item_id, InteractionKind.SAVE)

    def track_share(self, item_id: str) -> Interaction:
        return self.record(item_id, InteractionKind.SHARE)

    def track_cart_add(self, item_id: str) -> Interaction:
        return self.record(item_id, InteractionKind.CART_ADD)

    def recent(self, since_sequence: int) -> List[Interaction]:
        """
        Interactions recorded after the given sequence number.

        Entries already trimmed from the log are gone; at most the whole
        current log is returned.
        """
        pending = self._total_recorded - since_sequence
        if pending <= 0:
            return []
        return list(self._interactions[-pending:])

    def _persist(self) -> None:
        try:
            self._storage.set(
                self._storage_key,
                InteractionList.dump_json(self._interactions).decode("utf-8"),
            )
        except Exception as e:
            self._error_handler.handle_storage_error(
                e, "persisting interactions", {"count": len(self._interactions)}
            )

    def load(self) -> List[Interaction]:
        """
        Restore the log from durable storage.

        Absent or corrupt data leaves the log empty; this never raises.

        Returns:
            The restored interactions
        """
        self._interactions = []
        self._total_recorded = 0

        try:
            raw: Optional[str] = self._storage.get(self._storage_key)
        except Exception as e:
            self._error_handler.handle_storage_error(e, "loading interactions")
            return []

        if not raw:
            return []

        try:
            restored = InteractionList.validate_json(raw)
        except ValidationError as e:
            self._error_handler.handle_storage_error(
                e, "loading interactions", {"reason": "corrupt log"}
            )
            return []

        self._interactions = restored[-self.max_interactions:]
        self._total_recorded = len(self._interactions)
        self.logger.info(f"Loaded {len(self._interactions)} interactions from storage")
        return list(self._interactions)

    def clear(self) -> None:
        self._interactions = []
        self._total_recorded = 0
        self._persist()
