from __future__ import annotations

import pytest

from studyguide.ingestion.models import SlideBlock
from studyguide.quality import (
    BodyCoverageGateError,
    PlaceholderGateError,
    StructureGateError,
    TableSchemaGateError,
    check_body_coverage,
    check_structure,
    check_style_contract,
    check_table_schemas,
    document_text,
    ensure_document_gates,
    ensure_structure,
    ensure_table_schemas,
)
from studyguide.quality.table_schemas import RAPID_APPROACH_SCHEMA, TREATMENTS_SCHEMA
from studyguide.registry.models import FactRegistry, FactRegistryFact, FactRegistryFields, FactRegistryTopic, ToxicityFacts
from studyguide.render import REQUIRED_SECTION_IDS, RenderInput, render_study_guide_html
from studyguide.topics.inventory import TopicInventory


def _fact(text: str, span_id: str = "S1") -> list[FactRegistryFact]:
    return [FactRegistryFact(text=text, span_id=span_id)]


def _registry() -> FactRegistry:
    tacrolimus = FactRegistryTopic(
        topic_id="tacrolimus",
        label="Tacrolimus",
        kind="drug",
        fields=FactRegistryFields(
            mechanism=_fact("Inhibits calcineurin and IL-2 transcription"),
            clinical_use_indications=_fact("Maintenance immunosuppression after kidney transplant"),
            toxicity_adverse_effects=ToxicityFacts(common=_fact("Tremor"), serious=_fact("Nephrotoxicity")),
            pk_pearls=_fact("Metabolized by CYP3A4"),
            monitoring=_fact("Monitor trough levels"),
        ),
    )
    rejection = FactRegistryTopic(
        topic_id="acute_rejection",
        label="Acute rejection",
        kind="condition",
        fields=FactRegistryFields(
            definition_or_role=_fact("T-cell mediated injury within weeks", "S2"),
            mechanism=_fact("Recipient T cells recognize donor HLA", "S2"),
            monitoring=_fact("Biopsy confirms tubulitis", "S2"),
        ),
    )
    return FactRegistry(topics=[tacrolimus, rejection])


def _inventory() -> TopicInventory:
    return TopicInventory(conditions=["Acute rejection", "Tacrolimus"], drugs=["Tacrolimus"])


def _rendered() -> str:
    return render_study_guide_html(
        RenderInput(
            lecture_title="Transplant Immunology",
            slides=[SlideBlock(index=1, page=1, text="Transplant Immunology\nTacrolimus overview")],
            inventory=_inventory(),
            registry=_registry(),
        )
    )


def _table(schema_id: str, headers: list[str]) -> str:
    cells = "".join(f"<th>{header}</th>" for header in headers)
    return f'<table data-table-id="{schema_id}"><thead><tr>{cells}</tr></thead></table>'


def test_rendered_document_passes_all_document_gates() -> None:
    html = _rendered()

    ensure_document_gates(html, _inventory())


def test_document_text_drops_style_blocks() -> None:
    text = document_text(_rendered())

    assert ".hl.buzz" not in text
    assert "Transplant Immunology" in text
    assert "  " not in text


def test_missing_required_tables_are_reported() -> None:
    failures = check_table_schemas("<html><body><main></main></body></html>")

    assert [failure.code for failure in failures] == ["TABLE_MISSING", "TABLE_MISSING"]
    assert [failure.details["table_id"] for failure in failures] == ["rapid-approach-summary", "treatments-management"]


def test_header_mismatch_reports_detected_expected_and_missing() -> None:
    html = _table("treatments-management", ["Drug", "MOA", "Side effects", "Monitor", "PK"])

    failures = check_table_schemas(html, schemas=[TREATMENTS_SCHEMA])

    assert len(failures) == 1
    assert failures[0].code == "TABLE_HEADERS_MISSING"
    assert failures[0].details["missing"] == ["Toxicity"]
    assert failures[0].details["detected"] == ["Drug", "MOA", "Side effects", "Monitor", "PK"]
    assert failures[0].details["expected"] == list(TREATMENTS_SCHEMA.required_headers)
    with pytest.raises(TableSchemaGateError):
        ensure_table_schemas(html, schemas=[TREATMENTS_SCHEMA])


def test_header_aliases_satisfy_schema() -> None:
    html = _table("rapid-approach-summary", ["Clue", "Think of", "Why", "Confirm", "Next step"])

    assert check_table_schemas(html, schemas=[RAPID_APPROACH_SCHEMA]) == []


def test_body_coverage_ignores_the_appendix() -> None:
    html = (
        "<html><body><main><section id='core'><h1>Core</h1><p>Tacrolimus</p></section>"
        "<section id='slide-by-slide-appendix'><p>Acute rejection</p></section></main></body></html>"
    )

    failures = check_body_coverage(["Tacrolimus", "Acute rejection"], html)

    assert [failure.details["label"] for failure in failures] == ["Acute rejection"]
    assert failures[0].path == "topic:acute rejection"
    assert failures[0].details["sections"] == ["Core"]
    assert failures[0].details["main_found"] is True


def test_body_coverage_matches_on_tokens() -> None:
    html = "<html><body><main><p>Graft rejection in renal transplant</p></main></body></html>"

    assert check_body_coverage(["Rejection of renal grafts"], html) == []


def test_document_gates_report_uncovered_inventory_condition() -> None:
    inventory = _inventory()
    inventory.conditions.append("Chronic allograft nephropathy")

    with pytest.raises(BodyCoverageGateError) as error:
        ensure_document_gates(_rendered(), inventory)

    assert error.value.codes == ["BODY_COVERAGE_MISSING"]


def test_document_gates_reject_placeholder_text_first() -> None:
    html = _rendered().replace("Missing items: none", "Missing items: Not stated")

    with pytest.raises(PlaceholderGateError):
        ensure_document_gates(html, _inventory())


def test_structure_reports_every_missing_section() -> None:
    failures = check_structure("<html><body></body></html>")

    assert [failure.path for failure in failures] == [f"section:{section_id}" for section_id in REQUIRED_SECTION_IDS]


def test_style_contract_flags_missing_legend_and_tables() -> None:
    paths = {failure.path for failure in check_style_contract("<html><body></body></html>")}

    assert "legend:container" in paths
    assert "legend:buzz" in paths
    assert "css:.hl.cutoff" in paths
    assert {"table:tri", "table:compare", "table:cutoff"} <= paths
    with pytest.raises(StructureGateError):
        ensure_structure("<html><body></body></html>")


def test_rendered_document_meets_style_contract() -> None:
    html = _rendered()

    assert check_structure(html) == []
    assert check_style_contract(html) == []
