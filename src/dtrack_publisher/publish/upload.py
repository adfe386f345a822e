from __future__ import annotations

import logging
import os
from pathlib import Path

from ..api.models import ProjectRef, UploadResult
from ..client.api import ApiClient
from ..errors import ValidationError

log = logging.getLogger(__name__)


def check_artifact(artifact: Path | str | None) -> Path:
    """Fail fast unless ``artifact`` names an existing, readable file."""
    if artifact is None or not str(artifact).strip():
        raise ValidationError("no artifact (BOM file) specified")
    path = Path(artifact)
    if not path.exists():
        raise ValidationError(f"artifact {path} does not exist")
    if not path.is_file():
        raise ValidationError(f"artifact {path} is not a file")
    if not os.access(path, os.R_OK):
        raise ValidationError(f"artifact {path} is not readable")
    return path


class UploadOrchestrator:
    def __init__(self, client: ApiClient):
        self.client = client

    def submit(self, artifact: Path | str | None, project: ProjectRef) -> UploadResult:
        """Validate locally, then upload. Rejections come back as ``accepted=False``."""
        path = check_artifact(artifact)
        log.info("Uploading %s to project %s", path, project.describe())
        result = self.client.upload(project, path)
        if result.accepted:
            log.info("Upload accepted%s", f" (token {result.token})" if result.token else "")
        else:
            log.error("Upload of %s failed", path)
        return result
