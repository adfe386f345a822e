"""dtrack_publisher/client/api.py

All Dependency-Track HTTP calls live here.

Every request carries the API key and an ``Accept: application/json`` header
and is bounded by the configured connect and read timeouts. Transport
failures become :class:`ConnectivityError`, unexpected statuses become
:class:`ProtocolError` and bodies that do not decode become
:class:`DecodeError`. Nothing is retried.
"""

from __future__ import annotations

import base64
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TypeVar
from urllib.parse import quote

import httpx
import pydantic
from pydantic import TypeAdapter

from ..api.models import ById, ByNameVersion, Finding, Project, ProjectRef, TokenStatus, UploadResult
from ..errors import ConnectivityError, DecodeError, ProtocolError
from ..settings import PublisherSettings

log = logging.getLogger(__name__)

API_KEY_HEADER = "X-Api-Key"
API_URL = "/api/v1"
PROJECT_URL = API_URL + "/project"
PROJECT_LOOKUP_URL = PROJECT_URL + "/lookup"
PROJECT_FINDINGS_URL = API_URL + "/finding/project"
BOM_URL = API_URL + "/bom"
BOM_TOKEN_URL = BOM_URL + "/token"

PROJECTS_PAGE_SIZE = 500

T = TypeVar("T")

_PROJECT = TypeAdapter(Project)
_PROJECT_LIST = TypeAdapter(list[Project])
_FINDING_LIST = TypeAdapter(list[Finding])
_TOKEN_STATUS = TypeAdapter(TokenStatus)


class ApiClient:
    """Thin synchronous client for the subset of the Dependency-Track API we need.

    ``http`` may be any ``httpx.Client`` (tests pass a FastAPI ``TestClient``);
    when omitted the client owns one and :meth:`close` releases it.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        connection_timeout: float,
        read_timeout: float,
        http: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = httpx.Timeout(read_timeout, connect=connection_timeout)
        self._owns_http = http is None
        self._http = http if http is not None else httpx.Client()

    @classmethod
    def from_settings(cls, settings: PublisherSettings, api_key: str, http: httpx.Client | None = None) -> "ApiClient":
        return cls(
            settings.url,
            api_key,
            connection_timeout=settings.connection_timeout,
            read_timeout=settings.read_timeout,
            http=http,
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- plumbing ---

    def _headers(self) -> dict[str, str]:
        return {API_KEY_HEADER: self._api_key, "Accept": "application/json"}

    @contextmanager
    def _send(self, operation: str, method: str, path: str, **kwargs: Any) -> Iterator[httpx.Response]:
        """Send a request and yield the response with its body still unread.

        Bodies are read explicitly (:meth:`_read`, :meth:`_error_body`) so a
        broken error body cannot hide the status that came with it.
        """
        request = self._http.build_request(
            method,
            self.base_url + path,
            headers=self._headers(),
            timeout=self._timeout,
            **kwargs,
        )
        try:
            response = self._http.send(request, stream=True)
        except httpx.TransportError as e:
            raise ConnectivityError(operation, detail=str(e) or type(e).__name__) from e
        try:
            yield response
        finally:
            response.close()

    def _read(self, operation: str, response: httpx.Response) -> bytes:
        try:
            return response.read()
        except httpx.TransportError as e:
            raise ConnectivityError(operation, detail=str(e) or type(e).__name__) from e

    def _error_body(self, response: httpx.Response) -> str | None:
        """Best-effort read of an error body; never masks the primary error."""
        try:
            response.read()
        except (httpx.HTTPError, httpx.StreamError) as e:
            log.debug("Could not read error body from %s: %s", response.url, e)
            return None
        body = response.text.strip()
        if body:
            log.error("%s", body)
        return body or None

    def _expect_ok(self, operation: str, response: httpx.Response) -> None:
        if response.status_code != httpx.codes.OK:
            body = self._error_body(response)
            raise ProtocolError(operation, response.status_code, response.reason_phrase, body)

    def _decode(self, operation: str, response: httpx.Response, adapter: TypeAdapter[T]) -> T:
        content = self._read(operation, response)
        try:
            return adapter.validate_json(content)
        except pydantic.ValidationError as e:
            raise DecodeError(operation, detail=f"unexpected response body: {e.error_count()} error(s)") from e

    # --- operations ---

    def test_connection(self) -> str:
        """Probe the server; returns its ``X-Powered-By`` header (may be empty)."""
        operation = "Connection test"
        with self._send(operation, "GET", PROJECT_URL) as response:
            self._expect_ok(operation, response)
            return response.headers.get("X-Powered-By", "").strip()

    def get_projects(self) -> list[Project]:
        """Return all active projects, in server order.

        Pages are requested until the server answers with an empty page. The
        server is trusted never to send an empty page in the middle of the
        listing; no further pages are requested after the first empty one.
        """
        projects: list[Project] = []
        page = 1
        while True:
            fetched = self._get_projects_page(page)
            if not fetched:
                break
            projects.extend(fetched)
            page += 1
        return projects

    def _get_projects_page(self, page: int) -> list[Project]:
        operation = f"Listing projects (page {page})"
        params = {"limit": PROJECTS_PAGE_SIZE, "excludeInactive": "true", "page": page}
        with self._send(operation, "GET", PROJECT_URL, params=params) as response:
            self._expect_ok(operation, response)
            return self._decode(operation, response, _PROJECT_LIST)

    def lookup_project(self, name: str, version: str) -> Project:
        operation = f"Lookup of project {name!r} version {version!r}"
        params = {"name": name, "version": version}
        with self._send(operation, "GET", PROJECT_LOOKUP_URL, params=params) as response:
            self._expect_ok(operation, response)
            return self._decode(operation, response, _PROJECT)

    def get_findings(self, project_uuid: str) -> list[Finding]:
        """Findings of a project. Suppressed findings are excluded by the server."""
        operation = f"Retrieving findings of project {project_uuid}"
        with self._send(operation, "GET", f"{PROJECT_FINDINGS_URL}/{_quote(project_uuid)}") as response:
            self._expect_ok(operation, response)
            return self._decode(operation, response, _FINDING_LIST)

    def upload(self, project: ProjectRef, artifact: Path) -> UploadResult:
        """PUT the artifact as a base64 encoded BOM.

        A server rejection (or an unreadable artifact) is an ordinary
        ``UploadResult(accepted=False)``; only transport failures and
        undecodable 200 responses raise.
        """
        operation = "BOM upload"
        try:
            encoded = base64.b64encode(artifact.read_bytes()).decode("ascii")
        except OSError as e:
            log.error("Error processing %s: %s", artifact, e)
            return UploadResult(accepted=False)

        payload: dict[str, Any] = {"bom": encoded}
        if isinstance(project, ById):
            payload["project"] = project.uuid
        elif isinstance(project, ByNameVersion):
            payload["projectName"] = project.name
            payload["projectVersion"] = project.version
            payload["autoCreate"] = project.auto_create
        else:  # pragma: no cover
            raise TypeError(f"unsupported project reference {project!r}")

        with self._send(operation, "PUT", BOM_URL, json=payload) as response:
            status = response.status_code
            if status == httpx.codes.OK:
                return self._accepted(operation, response)

            if status == httpx.codes.BAD_REQUEST:
                log.error("The payload sent to Dependency-Track was rejected as invalid")
            elif status == httpx.codes.UNAUTHORIZED:
                log.error("Dependency-Track rejected the API key (unauthorized)")
            elif status == httpx.codes.NOT_FOUND:
                log.error("Project %s was not found in Dependency-Track", project.describe())
            else:
                log.error("%s failed: HTTP %s %s", operation, status, response.reason_phrase)
            self._error_body(response)
            return UploadResult(accepted=False, status_code=status, reason=response.reason_phrase)

    def _accepted(self, operation: str, response: httpx.Response) -> UploadResult:
        status = response.status_code
        content = self._read(operation, response)
        if not content.strip():
            return UploadResult(accepted=True, status_code=status)
        try:
            body = json.loads(content)
        except ValueError as e:
            raise DecodeError(operation, detail="upload response is not JSON") from e
        if not isinstance(body, dict):
            raise DecodeError(operation, detail="upload response is not a JSON object")
        token = body.get("token")
        if isinstance(token, str):
            token = token.strip() or None
        else:
            token = None
        return UploadResult(accepted=True, token=token, status_code=status)

    def is_token_being_processed(self, token: str) -> bool:
        operation = f"Checking processing state of token {token}"
        with self._send(operation, "GET", f"{BOM_TOKEN_URL}/{_quote(token)}") as response:
            self._expect_ok(operation, response)
            return self._decode(operation, response, _TOKEN_STATUS).processing


def _quote(segment: str) -> str:
    return quote(segment, safe="")
