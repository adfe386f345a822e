from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import ValidationError


class Severity(str, Enum):
    """Severity buckets, most severe first.

    Dependency-Track also reports INFO; it and any value we do not know
    land in UNASSIGNED.
    """

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNASSIGNED = "UNASSIGNED"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return cls.UNASSIGNED


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "null":
        return None
    return value


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    uuid: str
    name: str
    version: str | None = None  # servers omit it for default-versioned projects

    @field_validator("version", mode="before")
    @classmethod
    def _normalize_version(cls, v):
        return _blank_to_none(v) if isinstance(v, str) or v is None else v


class Component(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uuid: str | None = None
    name: str
    group: str | None = None
    version: str | None = None
    purl: str | None = None


class Vulnerability(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uuid: str | None = None
    vuln_id: str = Field(alias="vulnId")
    source: str = "NVD"
    severity: Severity = Severity.UNASSIGNED
    title: str | None = None
    cwe_id: int | None = Field(default=None, alias="cweId")


class Analysis(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    state: str | None = None
    is_suppressed: bool = Field(default=False, alias="isSuppressed")


class Finding(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    component: Component
    vulnerability: Vulnerability
    analysis: Analysis = Field(default_factory=Analysis)
    matrix: str | None = None

    @property
    def severity(self) -> Severity:
        return self.vulnerability.severity

    @property
    def suppressed(self) -> bool:
        return self.analysis.is_suppressed

    @property
    def key(self) -> tuple[str, str, str, str, str]:
        """Identity used to recognise the same finding across separate uploads."""
        c, v = self.component, self.vulnerability
        return (c.group or "", c.name, c.version or "", v.source, v.vuln_id)


class UploadResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    token: str | None = None  # present only when the server tracks this upload
    status_code: int | None = None
    reason: str = ""


class TokenStatus(BaseModel):
    processing: bool


# --- Project references ---

class ById(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["id"] = "id"
    uuid: str

    def describe(self) -> str:
        return self.uuid


class ByNameVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["name_version"] = "name_version"
    name: str
    version: str
    auto_create: bool = False

    def describe(self) -> str:
        return f"{self.name} {self.version}"


ProjectRef = Union[ById, ByNameVersion]


def project_reference(
    project_id: str | None = None,
    name: str | None = None,
    version: str | None = None,
    auto_create: bool = False,
) -> ProjectRef:
    """Build a project reference from loosely supplied caller options.

    Exactly one of ``project_id`` or the ``name``/``version`` pair must be
    given; anything else raises :class:`ValidationError`.
    """
    project_id = _blank_to_none(project_id)
    name = _blank_to_none(name)
    version = _blank_to_none(version)
    if project_id and not (name or version):
        return ById(uuid=project_id)
    if name and version and not project_id:
        return ByNameVersion(name=name, version=version, auto_create=auto_create)
    raise ValidationError("either a project id or both a project name and version must be given, not both")
