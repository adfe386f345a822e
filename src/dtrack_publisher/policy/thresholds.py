from __future__ import annotations

from enum import Enum
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..api.models import Finding, Severity


class Verdict(str, Enum):
    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"

    @property
    def rank(self) -> int:
        return _VERDICT_RANK[self]

    def worst(self, other: "Verdict") -> "Verdict":
        return self if self.rank >= other.rank else other


_VERDICT_RANK = {Verdict.SUCCESS: 0, Verdict.UNSTABLE: 1, Verdict.FAILURE: 2}


class SeverityCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    unassigned: int = 0

    @classmethod
    def of(cls, findings: Iterable[Finding]) -> "SeverityCounts":
        counts = {s: 0 for s in Severity}
        for f in findings:
            counts[f.severity] += 1
        return cls(**{s.value.lower(): n for s, n in counts.items()})

    def get(self, severity: Severity) -> int:
        return getattr(self, severity.value.lower())

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low + self.unassigned


class SeverityLimits(BaseModel):
    """Per-severity limits; ``None`` or 0 means no limit."""

    model_config = ConfigDict(frozen=True)

    critical: Optional[int] = Field(default=None, ge=0)
    high: Optional[int] = Field(default=None, ge=0)
    medium: Optional[int] = Field(default=None, ge=0)
    low: Optional[int] = Field(default=None, ge=0)
    unassigned: Optional[int] = Field(default=None, ge=0)

    def get(self, severity: Severity) -> int | None:
        limit = getattr(self, severity.value.lower())
        return limit or None


class ThresholdSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    unstable: SeverityLimits = Field(default_factory=SeverityLimits)
    failed: SeverityLimits = Field(default_factory=SeverityLimits)


class ThresholdConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_findings: ThresholdSet = Field(default_factory=ThresholdSet)
    new_findings: ThresholdSet = Field(default_factory=ThresholdSet)


class TriggeredThreshold(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: Literal["total", "new"]
    severity: Severity
    count: int
    limit: int
    outcome: Verdict


class Evaluation(BaseModel):
    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    totals: SeverityCounts
    new: SeverityCounts | None = None
    triggered: list[TriggeredThreshold] = Field(default_factory=list)


def new_findings(current: Iterable[Finding], baseline: Iterable[Finding]) -> list[Finding]:
    """Findings of ``current`` whose identity does not occur in ``baseline``."""
    seen = {f.key for f in baseline}
    return [f for f in current if f.key not in seen]


def _check(dimension: Literal["total", "new"], counts: SeverityCounts, limits: ThresholdSet) -> list[TriggeredThreshold]:
    hits: list[TriggeredThreshold] = []
    for outcome, by_severity in ((Verdict.FAILURE, limits.failed), (Verdict.UNSTABLE, limits.unstable)):
        for severity in Severity:
            limit = by_severity.get(severity)
            count = counts.get(severity)
            # at least `limit` findings trigger, not more than
            if limit is not None and count >= limit:
                hits.append(
                    TriggeredThreshold(dimension=dimension, severity=severity, count=count, limit=limit, outcome=outcome)
                )
    return hits


def evaluate(
    findings: Iterable[Finding],
    config: ThresholdConfig,
    baseline: Iterable[Finding] | None = None,
) -> Evaluation:
    """Compare finding counts against ``config`` and return the worst outcome.

    Suppressed findings are ignored. Without a baseline the new-findings
    limits are not checked at all.
    """
    current = [f for f in findings if not f.suppressed]
    totals = SeverityCounts.of(current)
    new = SeverityCounts.of(new_findings(current, baseline)) if baseline is not None else None
    if not current:
        return Evaluation(verdict=Verdict.SUCCESS, totals=totals, new=new)

    triggered = _check("total", totals, config.total_findings)
    if new is not None:
        triggered += _check("new", new, config.new_findings)

    verdict = Verdict.SUCCESS
    for hit in triggered:
        verdict = verdict.worst(hit.outcome)
    return Evaluation(verdict=verdict, totals=totals, new=new, triggered=triggered)
