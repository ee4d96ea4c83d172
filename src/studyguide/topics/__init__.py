"""Topic normalization, classification and inventory building."""

from .inventory import (
    TopicInventory,
    TopicKind,
    build_topic_inventory,
    classify_topic_label,
    is_garbage_topic_label,
    summarize_inventory,
)
from .normalize import normalize_for_comparison, normalize_tokens

__all__ = [
    "TopicInventory",
    "TopicKind",
    "build_topic_inventory",
    "classify_topic_label",
    "is_garbage_topic_label",
    "normalize_for_comparison",
    "normalize_tokens",
    "summarize_inventory",
]
