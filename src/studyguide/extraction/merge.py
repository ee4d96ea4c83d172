"""Deterministic merge of per-chunk extraction results."""

from __future__ import annotations

import logging
from typing import Sequence

from studyguide.extraction.models import ChunkResult, DocumentExtract, ExtractSlide


logger = logging.getLogger(__name__)


def merge_chunk_results(results: Sequence[ChunkResult]) -> DocumentExtract:
    """Union chunk results into one extract with slides sorted and unique by index.

    Results are consumed in the given processing order; when a slide index repeats,
    the first-seen occurrence wins. The lecture title comes from the first result
    reporting a non-empty one.
    """

    lecture_title = ""
    by_index: dict[int, ExtractSlide] = {}

    for result in results:
        if not lecture_title and result.lecture_title.strip():
            lecture_title = result.lecture_title.strip()
        for slide in result.slides:
            if slide.n in by_index:
                logger.debug("Dropping duplicate slide %d from chunk %d-%d", slide.n, result.start_slide, result.end_slide)
                continue
            by_index[slide.n] = slide

    return DocumentExtract(lecture_title=lecture_title, slides=[by_index[index] for index in sorted(by_index)])
