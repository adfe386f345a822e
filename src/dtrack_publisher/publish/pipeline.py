"""Upload-and-track pipeline.

upload -> [synchronous: wait for processing -> resolve project -> fetch
findings -> evaluate thresholds] -> PublishResult

Components raise; :meth:`Publisher.publish` is the one place where those
errors are folded into a :class:`PublishResult` for the caller to inspect.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..api.models import ByNameVersion, Finding, ProjectRef, UploadResult, project_reference
from ..client.api import ApiClient
from ..errors import DependencyTrackError, UploadFailedError
from ..policy.thresholds import Evaluation, ThresholdConfig, Verdict, evaluate
from ..settings import PublisherSettings
from .poller import CompletionPoller
from .resolver import ProjectResolver
from .upload import UploadOrchestrator

log = logging.getLogger(__name__)


class PublishRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact: Path
    project: ProjectRef = Field(discriminator="kind")
    synchronous: bool = False
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    baseline: Optional[list[Finding]] = None

    @classmethod
    def build(
        cls,
        artifact: Path | str,
        *,
        project_id: str | None = None,
        project_name: str | None = None,
        project_version: str | None = None,
        auto_create: bool = False,
        synchronous: bool = False,
        thresholds: ThresholdConfig | None = None,
        baseline: list[Finding] | None = None,
    ) -> "PublishRequest":
        project = project_reference(project_id, project_name, project_version, auto_create)
        return cls(
            artifact=Path(artifact),
            project=project,
            synchronous=synchronous,
            thresholds=thresholds or ThresholdConfig(),
            baseline=baseline,
        )


class PublishResult(BaseModel):
    """Outcome of one pipeline run.

    ``success`` is False when the run could not complete (``error`` says
    why); a completed run may still carry an UNSTABLE or FAILURE verdict.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    verdict: Verdict
    findings: list[Finding] = Field(default_factory=list)
    evaluation: Optional[Evaluation] = None
    upload: Optional[UploadResult] = None
    project_uuid: Optional[str] = None
    stale: bool = False  # findings fetched without confirming processing finished
    error: Optional[DependencyTrackError] = Field(default=None, exclude=True)

    @classmethod
    def failed(cls, error: DependencyTrackError, upload: UploadResult | None = None) -> "PublishResult":
        return cls(success=False, verdict=Verdict.FAILURE, upload=upload, error=error)


class Publisher:
    def __init__(
        self,
        settings: PublisherSettings,
        client: ApiClient,
        *,
        abort: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ):
        self.settings = settings
        self.client = client
        self.resolver = ProjectResolver(client, settings.project_resolution)
        self.uploader = UploadOrchestrator(client)
        self.poller = CompletionPoller(
            client,
            settings.polling_interval,
            settings.polling_timeout_seconds(),
            abort=abort,
            clock=clock,
            sleep=sleep,
        )

    def publish(self, request: PublishRequest) -> PublishResult:
        try:
            return self._publish(request)
        except DependencyTrackError as e:
            log.error("%s", e)
            return PublishResult.failed(e)

    def _publish(self, request: PublishRequest) -> PublishResult:
        project = request.project
        if isinstance(project, ByNameVersion) and self.settings.auto_create_projects and not project.auto_create:
            project = project.model_copy(update={"auto_create": True})

        upload = self.uploader.submit(request.artifact, project)
        if not upload.accepted:
            return PublishResult.failed(UploadFailedError(upload.status_code, upload.reason), upload)
        if not request.synchronous:
            return PublishResult(success=True, verdict=Verdict.SUCCESS, upload=upload)

        stale = False
        if upload.token:
            self.poller.wait(upload.token)
        else:
            log.warning(
                "Dependency-Track returned no token for this upload; findings may not reflect it yet"
            )
            stale = True

        # resolved after the upload: auto-create may have just created the project
        project_uuid = self.resolver.resolve(project)
        findings = self.client.get_findings(project_uuid)
        evaluation = evaluate(findings, request.thresholds, request.baseline)
        log.info(
            "%d finding(s) for project %s, verdict %s",
            len(findings),
            project_uuid,
            evaluation.verdict.value,
        )
        for hit in evaluation.triggered:
            log.warning(
                "%s %s findings: %d >= %d -> %s",
                hit.dimension,
                hit.severity.value,
                hit.count,
                hit.limit,
                hit.outcome.value,
            )
        return PublishResult(
            success=True,
            verdict=evaluation.verdict,
            findings=findings,
            evaluation=evaluation,
            upload=upload,
            project_uuid=project_uuid,
            stale=stale,
        )


def publish_bom(
    request: PublishRequest,
    settings: PublisherSettings,
    api_key: SecretStr | str,
    *,
    http: httpx.Client | None = None,
    abort: threading.Event | None = None,
) -> PublishResult:
    """Single entry point: run the whole pipeline with a fresh client."""
    key = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key
    with ApiClient.from_settings(settings, key, http=http) as client:
        return Publisher(settings, client, abort=abort).publish(request)
