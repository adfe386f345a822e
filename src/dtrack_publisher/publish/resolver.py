from __future__ import annotations

import logging
from typing import Literal

from ..api.models import ById, ByNameVersion, Project, ProjectRef
from ..client.api import ApiClient
from ..errors import ProjectNotFoundError

log = logging.getLogger(__name__)


class ProjectResolver:
    """Turn a project reference into a project uuid.

    ``strategy="lookup"`` asks the server's lookup endpoint; ``"listing"``
    walks the paginated project list, for servers or API keys where lookup
    is not available. Results are cached so a reference is resolved at most
    once per resolver.
    """

    def __init__(self, client: ApiClient, strategy: Literal["lookup", "listing"] = "lookup"):
        self.client = client
        self.strategy = strategy
        self._resolved: dict[ProjectRef, str] = {}

    def resolve(self, ref: ProjectRef) -> str:
        if isinstance(ref, ById):
            return ref.uuid
        cached = self._resolved.get(ref)
        if cached is not None:
            return cached
        project = self.find(ref)
        self._resolved[ref] = project.uuid
        return project.uuid

    def find(self, ref: ByNameVersion) -> Project:
        if self.strategy == "listing":
            return self._find_in_listing(ref.name, ref.version)
        project = self.client.lookup_project(ref.name, ref.version)
        log.debug("Resolved %s to %s", ref.describe(), project.uuid)
        return project

    def _find_in_listing(self, name: str, version: str) -> Project:
        for project in self.client.get_projects():
            if project.name == name and (project.version or "") == version:
                log.debug("Resolved %s %s to %s from project listing", name, version, project.uuid)
                return project
        raise ProjectNotFoundError(name, version)
