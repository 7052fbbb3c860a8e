# -*- coding: utf-8 -*-
"""
dataset_qa.py - Dataset quality analysis for quiz-style sheets

Each row after the header rows is one record: a question cell, up to four
variant cells and a 0/1 code cell paired with each variant (1 marks the
correct answer). No model calls; the pass is pure and synchronous.

Checks (severity):
  Empty Question            high
  Missing Variants          high    every variant blank
  No Correct Answer         high    variants present, no code == 1
  Invalid Code              medium  code not in {0, 1}
  Multiple Correct Answers  medium  more than one code == 1
  Incomplete Variants       low     some but not all variants blank
  Duplicate Variants        low     same variant text twice

Tier:
  poor  more than ``poor_high_ratio`` of records carry a high-severity issue
  fair  any high-severity issue, or more than ``fair_any_ratio`` of records
        carry any issue
  good  otherwise
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .config import DatasetQAConfig, RecordSchema
from .models import Grid

logger = logging.getLogger(__name__)

VALID_CODES = {"0", "1"}
CORRECT_CODE = "1"

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"


@dataclass
class QualityIssue:
    row: int
    severity: str
    title: str
    detail: str = ""


@dataclass
class QualityReport:
    total_records: int = 0
    empty_questions: int = 0
    questions_with_missing_variants: int = 0
    questions_with_partial_variants: int = 0
    questions_with_invalid_codes: int = 0
    questions_without_correct: int = 0
    questions_with_multiple_correct: int = 0
    questions_with_duplicate_variants: int = 0
    records_with_issues: int = 0
    records_with_high_severity: int = 0
    tier: str = "good"
    issues: List[QualityIssue] = field(default_factory=list)
    issues_truncated: bool = False

    def rate(self, count: int) -> float:
        return count / self.total_records if self.total_records else 0.0

    @property
    def rates(self) -> Dict[str, float]:
        return {
            "empty_content": self.rate(self.empty_questions),
            "missing_variants": self.rate(self.questions_with_missing_variants),
            "invalid_codes": self.rate(self.questions_with_invalid_codes),
            "no_correct_answer": self.rate(self.questions_without_correct),
            "multiple_correct_answers": self.rate(self.questions_with_multiple_correct),
            "duplicate_variants": self.rate(self.questions_with_duplicate_variants),
        }

    def issues_titled(self, title: str) -> List[QualityIssue]:
        return [i for i in self.issues if i.title == title]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["rates"] = {k: round(v, 4) for k, v in self.rates.items()}
        return data


def _text(grid: Grid, row: int, col: int) -> str:
    if col < 0 or col >= grid.n_cols:
        return ""
    return grid.cell(row, col).cleaned.strip()


def _check_record(grid: Grid, row: int, schema: RecordSchema) -> List[QualityIssue]:
    issues: List[QualityIssue] = []
    question = _text(grid, row, schema.question_col)
    variants = [_text(grid, row, c) for c in schema.variant_cols]
    codes = [_text(grid, row, c) for c in schema.code_cols]

    if not question:
        issues.append(QualityIssue(row, SEVERITY_HIGH, "Empty Question",
                                   "Question text is empty"))

    present = [v for v in variants if v]
    if variants and not present:
        issues.append(QualityIssue(row, SEVERITY_HIGH, "Missing Variants",
                                   "All answer variants are empty"))
    elif len(present) < len(variants):
        issues.append(QualityIssue(row, SEVERITY_LOW, "Incomplete Variants",
                                   f"{len(variants) - len(present)} of {len(variants)} variants empty"))

    invalid = [
        (n + 1, code) for n, (variant, code) in enumerate(zip(variants, codes))
        if (variant or code) and code not in VALID_CODES
    ]
    if invalid:
        shown = ", ".join(f"code {n}={code!r}" for n, code in invalid)
        issues.append(QualityIssue(row, SEVERITY_MEDIUM, "Invalid Code",
                                   f"Codes must be 0 or 1: {shown}"))

    correct = sum(1 for code in codes if code == CORRECT_CODE)
    if present and correct == 0:
        issues.append(QualityIssue(row, SEVERITY_HIGH, "No Correct Answer",
                                   "No variant is marked with code 1"))
    elif correct > 1:
        issues.append(QualityIssue(row, SEVERITY_MEDIUM, "Multiple Correct Answers",
                                   f"{correct} variants are marked with code 1"))

    folded = [v.casefold() for v in present]
    if len(set(folded)) < len(folded):
        issues.append(QualityIssue(row, SEVERITY_LOW, "Duplicate Variants",
                                   "Two or more variants have the same text"))
    return issues


COUNTERS = {
    "Empty Question": "empty_questions",
    "Missing Variants": "questions_with_missing_variants",
    "Incomplete Variants": "questions_with_partial_variants",
    "Invalid Code": "questions_with_invalid_codes",
    "No Correct Answer": "questions_without_correct",
    "Multiple Correct Answers": "questions_with_multiple_correct",
    "Duplicate Variants": "questions_with_duplicate_variants",
}


def quality_tier(report: QualityReport, config: DatasetQAConfig) -> str:
    if report.rate(report.records_with_high_severity) > config.poor_high_ratio:
        return "poor"
    if report.records_with_high_severity > 0:
        return "fair"
    if report.rate(report.records_with_issues) > config.fair_any_ratio:
        return "fair"
    return "good"


def analyze_dataset(grid: Grid, config: Optional[DatasetQAConfig] = None) -> QualityReport:
    """Completeness and validity metrics for every record in ``grid``."""
    config = config or DatasetQAConfig()
    schema = config.schema
    report = QualityReport()

    all_issues: List[QualityIssue] = []
    for row in range(schema.header_rows, grid.n_rows):
        report.total_records += 1
        issues = _check_record(grid, row, schema)
        if not issues:
            continue
        report.records_with_issues += 1
        if any(i.severity == SEVERITY_HIGH for i in issues):
            report.records_with_high_severity += 1
        for issue in issues:
            attr = COUNTERS[issue.title]
            setattr(report, attr, getattr(report, attr) + 1)
        all_issues.extend(issues)

    report.issues = all_issues[:config.max_issues]
    report.issues_truncated = len(all_issues) > config.max_issues
    report.tier = quality_tier(report, config)
    logger.info(
        f"Dataset quality: {report.tier} ({report.records_with_issues}/{report.total_records} "
        f"records with issues, {len(all_issues)} issues)"
    )
    return report
