"""Style contract shared by the renderer and the structure/style checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


HighlightCategory = Literal[
    "disease",
    "symptom",
    "histology",
    "treatment",
    "diagnostic",
    "gene",
    "enzyme",
    "buzz",
    "cutoff",
    "mechanism",
]


@dataclass(frozen=True, slots=True)
class LegendItem:
    label: str
    class_name: HighlightCategory


HIGHLIGHT_LEGEND_ITEMS: tuple[LegendItem, ...] = (
    LegendItem("Disease", "disease"),
    LegendItem("Symptom", "symptom"),
    LegendItem("Histology", "histology"),
    LegendItem("Treatment", "treatment"),
    LegendItem("Diagnostic", "diagnostic"),
    LegendItem("Gene", "gene"),
    LegendItem("Enzyme", "enzyme"),
    LegendItem("Buzz", "buzz"),
    LegendItem("Cutoff", "cutoff"),
    LegendItem("Mechanism", "mechanism"),
)

REQUIRED_HIGHLIGHT_CLASSES = tuple(f"hl {item.class_name}" for item in HIGHLIGHT_LEGEND_ITEMS)
REQUIRED_TABLE_CLASS_NAMES = ("tri", "compare", "cutoff")

REQUIRED_SECTION_IDS = (
    "core-conditions",
    "condition-coverage",
    "rapid-approach-summary",
    "differential-diagnosis",
    "cutoffs-formulas",
    "coverage-qa",
    "slide-by-slide-appendix",
)

# Regions excluded from body coverage checks.
APPENDIX_SELECTORS = ("#slide-by-slide-appendix", "#appendix", ".appendix")

BASE_STUDY_GUIDE_CSS = """\
:root { color-scheme: light; --bg-app: #F0F3F2; --bg-surface: #F7F8F6; --bg-surface-alt: #F2F4F2; --bg-surface-hover: #FBFCFA; --text-primary: #1F2A2E; --text-secondary: #5E6B70; --border-subtle: #E2E6E4; }
body { font-family: Arial, sans-serif; line-height: 1.5; background: var(--bg-app); color: var(--text-primary); }
.sticky-header { position: sticky; top: 0; background: var(--bg-surface-alt); padding: 8px; font-size: 1.2em; font-weight: bold; text-align: center; border-bottom: 1px solid var(--border-subtle); }
nav.toc { position: fixed; top: 0; left: 0; width: 220px; height: 100%; overflow: auto; background: var(--bg-surface-alt); border-right: 1px solid var(--border-subtle); padding: 6px; }
nav.toc a { text-decoration: none; display: block; margin: 4px 0; font-size: 0.9em; }
main.content { margin-left: 230px; padding: 10px; }
.scrollable { overflow-x: auto; }
table { border-collapse: collapse; width: 100%; margin: 10px 0; }
th, td { border: 1px solid var(--border-subtle); padding: 4px 8px; text-align: left; vertical-align: top; }
th { background: var(--bg-surface-alt); position: sticky; top: 0; }
details { margin: 8px 0; }
summary { font-weight: bold; cursor: pointer; }

.hl { padding: 0 4px; border-radius: 4px; font-weight: 600; box-decoration-break: clone; }
.hl.disease   { background:#f8d7da; color:#7f1d1d; border-bottom:2px solid #f1aeb5; }
.hl.symptom   { background:#fff3cd; color:#664d03; border-bottom:2px solid #ffe08a; }
.hl.histology { background:#dbeafe; color:#0c4a6e; border-bottom:2px solid #a5d8ff; }
.hl.treatment { background:#d1e7dd; color:#0f5132; border-bottom:2px solid #95d5b2; }
.hl.diagnostic{ background:#e7dbff; color:#3f1d7a; border-bottom:2px solid #c9b6ff; }
.hl.gene      { background:#fde2ef; color:#7a284b; border-bottom:2px solid #f3a6c6; }
.hl.enzyme    { background:#ffe8d6; color:#7a3f00; border-bottom:2px solid #ffc078; }
.hl.buzz      { background:#efe2d1; color:#5a3821; border-bottom:2px solid #d2b48c; }
.hl.cutoff    { background:#d9f2f2; color:#0b4f4f; border-bottom:2px solid #a7e0e0; }
.hl.mechanism { background:#dbeafe; color:#0c4a6e; border-bottom:2px solid #a5d8ff; }

.legend { display: flex; flex-wrap: wrap; gap: 6px; margin: 8px 0 2px; }
.pill { display: inline-block; padding: 2px 8px; border-radius: 999px; font-size: 0.85em; font-weight: 700; border: 1px solid var(--border-subtle); }
.pill.disease   { background:#f8d7da; color:#7f1d1d; }
.pill.symptom   { background:#fff3cd; color:#664d03; }
.pill.histology { background:#dbeafe; color:#0c4a6e; }
.pill.treatment { background:#d1e7dd; color:#0f5132; }
.pill.diagnostic{ background:#e7dbff; color:#3f1d7a; }
.pill.gene      { background:#fde2ef; color:#7a284b; }
.pill.enzyme    { background:#ffe8d6; color:#7a3f00; }
.pill.buzz      { background:#efe2d1; color:#5a3821; }
.pill.cutoff    { background:#d9f2f2; color:#0b4f4f; }
.pill.mechanism { background:#dbeafe; color:#0c4a6e; }

table.tri thead th:nth-child(1) { background:#ffe9a8; }
table.tri thead th:nth-child(2) { background:#b8daff; }
table.tri thead th:nth-child(3) { background:#e8f3ef; }
table.tri tbody td:nth-child(1) { background:#fffaf0; }
table.tri tbody td:nth-child(2) { background:#f2f8ff; }
table.tri tbody td:nth-child(3) { background:#f7fbf9; }
table.compare thead th { background: var(--bg-surface-alt); }
table.cutoff thead th { background: var(--bg-surface-alt); }

@media print { .hl { box-shadow: inset 0 -1px 0 rgba(0,0,0,0.2); } }
"""


def render_legend() -> str:
    lines = ['<div class="legend">']
    lines.extend(f'  <span class="pill {item.class_name}">{item.label}</span>' for item in HIGHLIGHT_LEGEND_ITEMS)
    lines.append("</div>")
    return "\n".join(lines)


def render_style_block(extra_css: str = "") -> str:
    extra = f"\n{extra_css.strip()}" if extra_css.strip() else ""
    return f"<style>\n{BASE_STUDY_GUIDE_CSS}{extra}\n</style>"
