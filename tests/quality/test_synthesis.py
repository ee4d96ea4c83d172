from __future__ import annotations

import pytest

from studyguide.extraction.models import DerivedFacts
from studyguide.quality import SynthesisGateError, SynthesisSummary, ensure_synthesis, validate_step_b, validate_synthesis
from studyguide.quality.synthesis import CompareRow, CompareTopic, RapidApproachRow, coverage_tokens, word_count


def _summary(**overrides) -> SynthesisSummary:
    values = {
        "high_yield_summary": [f"alpha{index} beta{index}" for index in range(10)],
        "one_page_last_minute_review": [f"gamma{index} delta{index}" for index in range(14)],
        "rapid_approach_table": [
            RapidApproachRow(
                clue=f"clue{index} sign",
                think_of=f"dx{index}",
                why=f"reason{index} detail",
                confirm=f"test{index}",
            )
            for index in range(12)
        ],
        "compare_differential": [
            CompareTopic(
                topic=f"compare{topic}",
                rows=[
                    CompareRow(dx1=f"left{topic}x{row}", dx2=f"right{topic}x{row}", how_to_tell=f"tell{topic}x{row}")
                    for row in range(4)
                ],
            )
            for topic in range(2)
        ],
    }
    values.update(overrides)
    return SynthesisSummary(**values)


def _codes(failures) -> list[str]:
    return [failure.code for failure in failures]


def test_word_count_and_coverage_tokens() -> None:
    assert word_count("Tacrolimus: trough 5-10 ng/mL") == 6
    assert coverage_tokens("The IL-2 signaling of T cells") == ["il", "signaling", "cells"]


def test_valid_summary_passes_both_validators() -> None:
    summary = _summary()

    assert validate_step_b(DerivedFacts(), summary) == []
    assert validate_synthesis(summary) == []


def test_bullet_over_word_limit_is_reported_with_path() -> None:
    long_bullet = " ".join(f"word{index}" for index in range(17))
    summary = _summary(high_yield_summary=[long_bullet, *(f"alpha{index} beta{index}" for index in range(9))])

    failures = validate_step_b(DerivedFacts(), summary)

    assert _codes(failures) == ["BULLET_TOO_LONG"]
    assert failures[0].path == "high_yield_summary[0]"


def test_too_few_bullets() -> None:
    summary = _summary(high_yield_summary=[f"alpha{index} beta{index}" for index in range(5)])

    failures = validate_step_b(DerivedFacts(), summary)

    assert _codes(failures) == ["TOO_FEW_BULLETS"]
    assert failures[0].path == "high_yield_summary"


def test_identical_bullets_are_redundant_and_overlapping() -> None:
    repeated = ["Tacrolimus causes dose dependent nephrotoxicity"] * 12
    summary = _summary(high_yield_summary=repeated)

    codes = _codes(validate_step_b(DerivedFacts(), summary))

    assert "REDUNDANT_BULLETS" in codes
    assert "HIGH_NGRAM_OVERLAP" in codes


def test_exam_atom_coverage_below_target() -> None:
    derived = DerivedFacts(exam_atoms=["Cyclosporine gingival hyperplasia", "Tacrolimus tremor"])

    failures = validate_step_b(derived, _summary())

    assert _codes(failures) == ["LOW_COVERAGE"]
    assert failures[0].details == {"covered": 0, "atoms": 2}


def test_exam_atoms_covered_by_synthesized_text() -> None:
    derived = DerivedFacts(exam_atoms=["Cyclosporine gingival hyperplasia", "Tacrolimus tremor"])
    bullets = [
        "Cyclosporine causes gingival hyperplasia",
        "Tacrolimus causes tremor",
        *(f"alpha{index} beta{index}" for index in range(8)),
    ]

    assert validate_step_b(derived, _summary(high_yield_summary=bullets)) == []


def test_glue_must_be_grounded_in_source() -> None:
    derived = DerivedFacts(raw_facts=["Tacrolimus causes tremor"], abbrev_map={"CNI": "calcineurin inhibitor"})

    grounded = validate_step_b(derived, _summary(supplemental_glue=["Tacrolimus tremor"]))
    abbreviation = validate_step_b(derived, _summary(supplemental_glue=["CNI dosing overview"]))
    invented = validate_step_b(derived, _summary(supplemental_glue=["Unrelated zebra content"]))

    assert grounded == []
    assert abbreviation == []
    assert _codes(invented) == ["GLUE_RULE_VIOLATION"]
    assert invented[0].path == "supplemental_glue[0]"


def test_incomplete_rapid_row_is_invalid() -> None:
    rows = [
        RapidApproachRow(clue=f"clue{index} sign", think_of=f"dx{index}", why=f"reason{index}", confirm=f"test{index}")
        for index in range(11)
    ]
    rows.append(RapidApproachRow(clue="clue11 sign", think_of="dx11", why="reason11"))

    failures = validate_step_b(DerivedFacts(), _summary(rapid_approach_table=rows))

    assert _codes(failures) == ["TABLE_ROW_INVALID"]
    assert failures[0].path == "rapid_approach_table[11]"


def test_missing_core_lists_are_reported() -> None:
    summary = SynthesisSummary.from_dict({"high_yield_summary": [f"alpha{index} beta{index}" for index in range(10)]})

    failures = validate_synthesis(summary)

    assert summary.missing_lists == ("one_page_last_minute_review", "rapid_approach_table")
    assert _codes(failures) == ["SYNTHESIS_MISSING", "SYNTHESIS_MISSING"]


def test_mostly_empty_list_is_reported() -> None:
    bullets = ["one", "two", "three", "four", "", "", "", "", "", ""]

    codes = _codes(validate_synthesis(_summary(high_yield_summary=bullets)))

    assert codes == ["SYNTHESIS_EMPTY", "SYNTHESIS_TOO_FEW"]


def test_from_dict_tolerates_malformed_items() -> None:
    summary = SynthesisSummary.from_dict(
        {
            "high_yield_summary": ["  Tacrolimus  ", 7],
            "one_page_last_minute_review": [],
            "rapid_approach_table": ["junk", {"clue": "Tremor", "think_of": "Tacrolimus", "why": "CNI", "confirm": "Trough"}],
        }
    )

    assert summary.high_yield_summary == ["Tacrolimus", ""]
    assert summary.rapid_approach_table[0].is_complete is False
    assert summary.rapid_approach_table[1].is_complete is True
    assert summary.missing_lists == ()


def test_ensure_synthesis_raises_with_every_failure() -> None:
    summary = _summary(high_yield_summary=[f"alpha{index} beta{index}" for index in range(5)])

    with pytest.raises(SynthesisGateError) as error:
        ensure_synthesis(DerivedFacts(), summary)

    assert error.value.gate == "synthesis"
    assert error.value.codes == ["SYNTHESIS_TOO_FEW", "TOO_FEW_BULLETS"]
    assert "synthesis gate failed" in str(error.value)
