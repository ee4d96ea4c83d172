"""Quality gates that block publication of a study guide."""

from .failures import (
    BodyCoverageGateError,
    DrugCoverageGateError,
    GateFailure,
    PlaceholderGateError,
    QualityGateError,
    StructureGateError,
    SynthesisGateError,
    TableSchemaGateError,
    TopicClassificationGateError,
    TopicDensityGateError,
    TopicKindGateError,
)
from .gates import (
    check_body_coverage,
    check_drug_coverage,
    check_placeholders,
    check_registry,
    check_structure,
    check_style_contract,
    check_table_schemas,
    check_topic_classification,
    check_topic_density,
    check_topic_kinds,
    document_text,
    ensure_body_coverage,
    ensure_document_gates,
    ensure_drug_coverage,
    ensure_no_placeholders,
    ensure_registry_gates,
    ensure_structure,
    ensure_table_schemas,
    ensure_topic_classification,
    ensure_topic_density,
    ensure_topic_kinds,
)
from .synthesis import SynthesisSummary, ensure_synthesis, validate_step_b, validate_synthesis
from .table_schemas import TABLE_SCHEMAS, TableSchema, get_table_schema

__all__ = [
    "BodyCoverageGateError",
    "DrugCoverageGateError",
    "GateFailure",
    "PlaceholderGateError",
    "QualityGateError",
    "StructureGateError",
    "SynthesisGateError",
    "SynthesisSummary",
    "TABLE_SCHEMAS",
    "TableSchema",
    "TableSchemaGateError",
    "TopicClassificationGateError",
    "TopicDensityGateError",
    "TopicKindGateError",
    "check_body_coverage",
    "check_drug_coverage",
    "check_placeholders",
    "check_registry",
    "check_structure",
    "check_style_contract",
    "check_table_schemas",
    "check_topic_classification",
    "check_topic_density",
    "check_topic_kinds",
    "document_text",
    "ensure_body_coverage",
    "ensure_document_gates",
    "ensure_drug_coverage",
    "ensure_no_placeholders",
    "ensure_registry_gates",
    "ensure_structure",
    "ensure_synthesis",
    "ensure_table_schemas",
    "ensure_topic_classification",
    "ensure_topic_density",
    "ensure_topic_kinds",
    "get_table_schema",
    "validate_step_b",
    "validate_synthesis",
]
