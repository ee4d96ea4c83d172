"""Structured gate failures and the exceptions raised for them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass(frozen=True, slots=True)
class GateFailure:
    """One machine-readable quality gate violation."""

    code: str
    message: str
    path: str | None = None
    details: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.path is not None:
            payload["path"] = self.path
        if self.details:
            payload["details"] = dict(self.details)
        return payload


@dataclass(slots=True)
class QualityGateError(RuntimeError):
    """A gate blocked publication; ``failures`` carries every violation."""

    gate: str
    failures: list[GateFailure]

    @property
    def codes(self) -> list[str]:
        return list(dict.fromkeys(failure.code for failure in self.failures))

    def __str__(self) -> str:
        summary = "; ".join(failure.message for failure in self.failures[:10])
        if len(self.failures) > 10:
            summary += f"; ... ({len(self.failures) - 10} more)"
        return f"{self.gate} gate failed [{', '.join(self.codes)}]: {summary}"


class PlaceholderGateError(QualityGateError):
    """Placeholder filler text found."""


class TopicKindGateError(QualityGateError):
    """A registry topic has a kind outside the allowed set."""


class TopicClassificationGateError(QualityGateError):
    """Garbage labels leaked into inventory kind buckets."""


class TopicDensityGateError(QualityGateError):
    """A topic has too few grounded facts."""


class DrugCoverageGateError(QualityGateError):
    """A drug topic lacks required fields."""


class TableSchemaGateError(QualityGateError):
    """Required tables or headers are missing."""


class BodyCoverageGateError(QualityGateError):
    """Inventory topics are absent from the rendered main body."""


class SynthesisGateError(QualityGateError):
    """The synthesis summary violates bounds, redundancy or coverage rules."""


class StructureGateError(QualityGateError):
    """Required sections or style contract elements are missing."""


def raise_for_failures(error_cls: type[QualityGateError], gate: str, failures: Sequence[GateFailure]) -> None:
    if failures:
        raise error_cls(gate=gate, failures=list(failures))
