from __future__ import annotations

from studyguide.extraction.merge import merge_chunk_results
from studyguide.extraction.models import ChunkResult, ExtractFact, ExtractSection, ExtractSlide


def _slide(n: int, fact: str) -> ExtractSlide:
    return ExtractSlide(n=n, page=n, sections=[ExtractSection(heading="Topic", facts=[ExtractFact(text=fact)])])


def test_merge_sorts_slides_and_keeps_first_seen_duplicate() -> None:
    results = [
        ChunkResult(lecture_title="", start_slide=1, end_slide=3, slides=[_slide(3, "late"), _slide(1, "one")]),
        ChunkResult(lecture_title="Renal", start_slide=3, end_slide=4, slides=[_slide(3, "overlap"), _slide(4, "four")]),
    ]

    merged = merge_chunk_results(results)

    assert [slide.n for slide in merged.slides] == [1, 3, 4]
    assert merged.slides[1].iter_fact_texts() == ["late"]
    assert merged.lecture_title == "Renal"


def test_merge_does_not_assume_adjacent_ranges() -> None:
    results = [
        ChunkResult(lecture_title="A", start_slide=1, end_slide=2, slides=[_slide(2, "two")]),
        ChunkResult(lecture_title="B", start_slide=7, end_slide=9, slides=[_slide(9, "nine")]),
    ]

    merged = merge_chunk_results(results)

    assert [slide.n for slide in merged.slides] == [2, 9]
    assert merged.lecture_title == "A"


def test_merge_of_no_results_is_empty() -> None:
    merged = merge_chunk_results([])

    assert merged.slides == []
    assert merged.lecture_title == ""
