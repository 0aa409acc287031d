from typing import Any, List, Tuple
from collections.abc import Mapping
import json

from agentflow.domain.models.context import ScoredItem


STRING_LIMIT = 200
ESSENTIAL_FIELDS = ("id", "type", "status", "description", "result", "summary")
ESSENTIAL_METADATA = ("type", "category", "created_at")
FALLBACK_FIELD_COUNT = 3


def item_payload(item: ScoredItem) -> str:
    """Compact JSON form of an item; its length is the item's size in bytes"""
    return json.dumps(
        item.model_dump(mode="python"),
        default=str,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True
    )


def items_payload_size(items: List[ScoredItem]) -> int:
    """Size of the serialized item list; an empty list counts as zero"""
    if not items:
        return 0
    return 2 + sum(len(item_payload(item)) for item in items) + len(items) - 1


class ContextOptimizer:
    """Fits ranked items into a byte budget, compressing where that helps"""

    def fit(self, ranked: List[ScoredItem], max_size: int) -> Tuple[List[ScoredItem], int, int]:
        """Greedy fill in rank order.

        Returns the kept items, their serialized list size, and how many of
        them were compressed. Stops at the first item that does not fit
        even compressed; later items are dropped.
        """

        kept: List[ScoredItem] = []
        current_size = 0
        compressed_count = 0

        for item in ranked:
            # "[" + "]" for the first item, "," before every later one
            overhead = 2 if not kept else 1

            item_size = len(item_payload(item))
            if current_size + overhead + item_size <= max_size:
                kept.append(item)
                current_size += overhead + item_size
                continue

            compressed = self.compress_item(item)
            compressed_size = len(item_payload(compressed))
            if current_size + overhead + compressed_size <= max_size:
                kept.append(compressed)
                current_size += overhead + compressed_size
                compressed_count += 1
                continue

            break

        return kept, current_size, compressed_count

    def compress_item(self, item: ScoredItem) -> ScoredItem:
        """Reduced copy keeping key, source, score and essential metadata"""

        metadata = {
            name: item.metadata[name]
            for name in ESSENTIAL_METADATA
            if name in item.metadata
        }

        return ScoredItem(
            key=item.key,
            data=self.compress_data(item.data),
            metadata=metadata,
            source=item.source,
            source_kind=item.source_kind,
            score=item.score,
            compressed=True
        )

    def compress_data(self, data: Any) -> Any:
        if isinstance(data, str):
            return data[:STRING_LIMIT] + "..." if len(data) > STRING_LIMIT else data

        if isinstance(data, Mapping):
            compressed = {
                key: data[key] for key in ESSENTIAL_FIELDS if key in data
            }
            if not compressed:
                compressed = {
                    key: data[key] for key in list(data.keys())[:FALLBACK_FIELD_COUNT]
                }
            return compressed

        if isinstance(data, (list, tuple)):
            return list(data[:FALLBACK_FIELD_COUNT])

        return data
