from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, TypeAdapter

from .api.models import Finding
from .policy.thresholds import SeverityCounts, TriggeredThreshold, Verdict
from .publish.pipeline import PublishResult

_FINDINGS = TypeAdapter(list[Finding])


class Report(BaseModel):
    verdict: Verdict
    success: bool
    error: Optional[str] = None
    project_uuid: Optional[str] = None
    project_url: Optional[str] = None
    stale: bool = False
    totals: Optional[SeverityCounts] = None
    new: Optional[SeverityCounts] = None
    triggered: list[TriggeredThreshold] = Field(default_factory=list)
    findings: list[Finding] = Field(default_factory=list)


def build_report(result: PublishResult, frontend_url: str | None = None) -> Report:
    evaluation = result.evaluation
    project_url = None
    if frontend_url and result.project_uuid:
        project_url = f"{frontend_url.rstrip('/')}/projects/{result.project_uuid}"
    return Report(
        verdict=result.verdict,
        success=result.success,
        error=str(result.error) if result.error else None,
        project_uuid=result.project_uuid,
        project_url=project_url,
        stale=result.stale,
        totals=evaluation.totals if evaluation else None,
        new=evaluation.new if evaluation else None,
        triggered=evaluation.triggered if evaluation else [],
        findings=result.findings,
    )


def write_report(path: Path, result: PublishResult, frontend_url: str | None = None) -> Report:
    report = build_report(result, frontend_url)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.model_dump_json(indent=2, by_alias=True), encoding="utf-8")
    return report


def findings_json(findings: list[Finding]) -> str:
    """Findings serialized the way the API serves them, camelCase keys included."""
    return _FINDINGS.dump_json(findings, by_alias=True, indent=2).decode("utf-8")


def load_baseline(path: Path) -> list[Finding]:
    """Findings of a previous run: either a report written by
    :func:`write_report` or a bare findings array as served by the API."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("findings", [])
    return _FINDINGS.validate_python(data)
