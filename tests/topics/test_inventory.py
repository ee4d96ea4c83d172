from __future__ import annotations

import pytest

from studyguide.ingestion.models import SlideBlock
from studyguide.topics.inventory import (
    KIND_BUCKET_NAMES,
    TopicInventory,
    build_topic_inventory,
    classify_topic_label,
    is_garbage_topic_label,
    normalize_topic_label,
    summarize_inventory,
)


@pytest.mark.parametrize(
    ("label", "kind"),
    [
        ("Tacrolimus", "drug"),
        ("Basiliximab", "drug"),
        ("Calcineurin inhibitors", "drug_class"),
        ("IL-2 signaling pathway", "process"),
        ("Antigen -> T cell activation", "process"),
        ("Acute rejection", "condition"),
        ("Graft loss", "condition"),
        ("Summary", "garbage"),
        ("Learning Objectives", "garbage"),
        ("Jane Smith, MD", "garbage"),
        ("Mechanism", "garbage"),
        ("```plaintext", "garbage"),
    ],
)
def test_classify_topic_label(label: str, kind: str) -> None:
    assert classify_topic_label(label) == kind


def test_garbage_detection_spares_arrows_and_multiword_pathways() -> None:
    assert is_garbage_topic_label("Overview") is True
    assert is_garbage_topic_label("12") is True
    assert is_garbage_topic_label("---") is True
    assert is_garbage_topic_label("x" * 200) is True
    assert is_garbage_topic_label("Overview: antigen -> T cell") is False
    assert is_garbage_topic_label("Mechanism of JAK-STAT signaling") is False


def test_normalize_topic_label_strips_numbering_prefixes_and_suffixes() -> None:
    assert normalize_topic_label("2. Acute rejection - Overview") == "Acute rejection"
    assert normalize_topic_label("Case 3: Chronic rejection") == "Chronic rejection"
    assert normalize_topic_label("Learning Objectives") == ""


def test_build_topic_inventory_buckets_labels_without_duplicates() -> None:
    slides = [
        SlideBlock(index=1, page=1, text="1. Learning Objectives\nTacrolimus\nAcute rejection"),
        SlideBlock(index=2, page=2, text="Calcineurin inhibitors\nIL-2 signaling pathway"),
        SlideBlock(index=3, page=3, text="Summary"),
        SlideBlock(index=4, page=4, text="tacrolimus"),
    ]

    inventory = build_topic_inventory(slides)

    assert inventory.conditions == ["Tacrolimus", "Acute rejection", "Calcineurin inhibitors"]
    assert inventory.drugs == ["Tacrolimus"]
    assert inventory.drug_classes == ["Calcineurin inhibitors"]
    assert inventory.phenotypes == ["Acute rejection"]
    assert inventory.processes == ["IL-2 signaling pathway"]
    assert inventory.mechanisms == ["IL-2 signaling pathway"]
    assert inventory.garbage == ["Summary"]


def test_build_topic_inventory_skips_code_blocks() -> None:
    slides = [SlideBlock(index=1, page=1, text="Anemia\n```\nHyperkalemia\n```\nHyponatremia")]

    inventory = build_topic_inventory(slides)

    assert inventory.conditions == ["Anemia", "Hyponatremia"]


def test_kind_buckets_never_hold_garbage() -> None:
    slides = [SlideBlock(index=1, page=1, text="Outline\nReferences"), SlideBlock(index=2, page=2, text="Agenda")]

    inventory = build_topic_inventory(slides)

    assert all(not inventory.bucket(name) for name in KIND_BUCKET_NAMES)
    assert inventory.garbage == ["Outline", "Agenda"]


def test_inventory_add_bucket_and_summary() -> None:
    inventory = TopicInventory()

    assert inventory.add("drugs", "Tacrolimus") is True
    assert inventory.add("drugs", "  TACROLIMUS ") is False
    assert inventory.add("drugs", "") is False
    with pytest.raises(KeyError):
        inventory.bucket("unknown")
    assert summarize_inventory(inventory)["drugs"] == 1
    assert inventory.to_dict()["drugs"] == ["Tacrolimus"]
