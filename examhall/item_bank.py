"""Per-assessment ordered, read-only list of scoring items."""
import logging
from typing import Dict, Iterator, List, Optional, Sequence

from .schemas import Item, ItemView
from .store import RecordStore

logger = logging.getLogger(__name__)


class ItemBank:
    """Immutable view of an assessment's items, ordered by creation time."""

    def __init__(self, assessment_id: str, items: Sequence[Item]):
        foreign = [i.id for i in items if i.exam_id != assessment_id]
        if foreign:
            raise ValueError(f"Items {foreign} do not belong to assessment {assessment_id}")
        self.assessment_id = assessment_id
        self._items: tuple[Item, ...] = tuple(items)
        self._by_id: Dict[str, Item] = {i.id: i for i in self._items}

    @classmethod
    async def load(cls, store: RecordStore, assessment_id: str) -> "ItemBank":
        items = await store.list(Item, {"exam_id": assessment_id}, order="created_at")
        logger.debug("Loaded %d items for assessment %s", len(items), assessment_id)
        return cls(assessment_id, items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Item]:
        return iter(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    @property
    def items(self) -> tuple[Item, ...]:
        return self._items

    def get(self, item_id: str) -> Optional[Item]:
        return self._by_id.get(item_id)

    @property
    def total_weight(self) -> int:
        return sum(i.marks for i in self._items)

    def views(self) -> List[ItemView]:
        """Participant-facing projection (no correct labels)."""
        return [ItemView.of(i) for i in self._items]
