"""Named table schemas with alias-aware header matching."""

from __future__ import annotations

from dataclasses import dataclass, field
import re


_HEADER_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class TableSchema:
    id: str
    required_headers: tuple[str, ...]
    header_aliases: dict[str, tuple[str, ...]] = field(default_factory=dict, hash=False)
    must_exist: bool = True

    def accepted_labels(self, required: str) -> tuple[str, ...]:
        return (required, *self.header_aliases.get(required, ()))


RAPID_APPROACH_SCHEMA = TableSchema(
    id="rapid-approach-summary",
    required_headers=("Clue", "Think of", "Why (discriminator)", "Confirm/Monitor", "Treat/Next step"),
    header_aliases={
        "Why (discriminator)": ("Why", "Discriminator", "Key discriminator", "Distinguishing feature"),
        "Confirm/Monitor": ("Confirm", "Confirmatory test", "Monitor", "Monitoring"),
        "Treat/Next step": ("Treat", "Treatment", "Management", "Next step", "Next"),
    },
)

TREATMENTS_SCHEMA = TableSchema(
    id="treatments-management",
    required_headers=("Drug/Class", "Mechanism", "Toxicity", "Monitoring", "Pearls"),
    header_aliases={
        "Drug/Class": ("Drug", "Drug class", "Class"),
        "Mechanism": ("MOA", "Mode of action", "Mechanism of action"),
        "Toxicity": ("Signature toxicity", "Key toxicity", "Adverse effects", "Adverse events"),
        "Monitoring": ("Monitor", "Monitoring", "Monitor/Interactions", "Monitor & interactions"),
        "Pearls": ("Pearl", "Key pearls", "PK", "PK pearls", "Clinical pearls"),
    },
)

TABLE_SCHEMAS: dict[str, TableSchema] = {schema.id: schema for schema in (RAPID_APPROACH_SCHEMA, TREATMENTS_SCHEMA)}


def get_table_schema(schema_id: str) -> TableSchema | None:
    return TABLE_SCHEMAS.get(schema_id)


def normalize_header_label(label: str) -> str:
    """Lowercase and reduce punctuation runs to single spaces."""

    return _HEADER_NON_ALNUM_RE.sub(" ", (label or "").lower()).strip()


def missing_headers(schema: TableSchema, detected: list[str]) -> list[str]:
    """Required headers with no canonical or alias match among ``detected``."""

    normalized = {normalize_header_label(item) for item in detected} - {""}
    missing: list[str] = []
    for required in schema.required_headers:
        candidates = {normalize_header_label(label) for label in schema.accepted_labels(required)}
        if not candidates & normalized:
            missing.append(required)
    return missing
