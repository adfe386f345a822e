from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

import httpx
import pydantic

from .api.models import project_reference
from .client.api import ApiClient
from .errors import DependencyTrackError, ValidationError
from .policy.store import load_thresholds
from .policy.thresholds import Verdict
from .publish.pipeline import PublishRequest, publish_bom
from .publish.resolver import ProjectResolver
from .report import findings_json, load_baseline, write_report
from .settings import PublisherSettings, load_api_key

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_UNSTABLE = 3

_VERDICT_EXIT = {Verdict.SUCCESS: EXIT_OK, Verdict.UNSTABLE: EXIT_UNSTABLE, Verdict.FAILURE: EXIT_FAILURE}

# CLI option -> PublisherSettings field
_SETTING_OPTIONS = {
    "url": "url",
    "frontend_url": "frontend_url",
    "connection_timeout": "connection_timeout",
    "read_timeout": "read_timeout",
    "polling_interval": "polling_interval",
    "polling_timeout": "polling_timeout",
    "resolution": "project_resolution",
}


def _settings(args: argparse.Namespace) -> PublisherSettings:
    overrides = {
        field: getattr(args, opt)
        for opt, field in _SETTING_OPTIONS.items()
        if getattr(args, opt, None) is not None
    }
    if getattr(args, "auto_create", False):
        overrides["auto_create_projects"] = True
    return PublisherSettings(**overrides)


def _client(args: argparse.Namespace, settings: PublisherSettings) -> ApiClient:
    key = load_api_key(args.api_key_file)
    return ApiClient.from_settings(settings, key.get_secret_value(), http=args.http)


def cmd_publish(args: argparse.Namespace) -> int:
    settings = _settings(args)
    request = PublishRequest.build(
        args.artifact,
        project_id=args.project_id,
        project_name=args.project_name,
        project_version=args.project_version,
        auto_create=settings.auto_create_projects,
        synchronous=args.sync,
        thresholds=load_thresholds(args.thresholds),
        baseline=load_baseline(args.baseline) if args.baseline else None,
    )
    api_key = load_api_key(args.api_key_file)

    abort = threading.Event()
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGTERM, lambda *_: abort.set())
    try:
        result = publish_bom(request, settings, api_key, http=args.http, abort=abort)
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)

    if args.report:
        write_report(args.report, result, settings.frontend_url)
        print(f"Wrote {args.report}")
    if not result.success:
        print(f"FAIL: {result.error}", file=sys.stderr)
        return EXIT_USAGE if isinstance(result.error, ValidationError) else EXIT_FAILURE
    if not request.synchronous:
        print("BOM uploaded; not waiting for analysis.")
        return EXIT_OK
    if result.stale:
        print("Warning: processing could not be confirmed, findings may be stale.", file=sys.stderr)
    totals = result.evaluation.totals
    print(
        f"Findings: critical={totals.critical} high={totals.high} medium={totals.medium} "
        f"low={totals.low} unassigned={totals.unassigned}"
    )
    print(f"Verdict: {result.verdict.value}")
    return _VERDICT_EXIT[result.verdict]


def cmd_test_connection(args: argparse.Namespace) -> int:
    settings = _settings(args)
    with _client(args, settings) as client:
        powered_by = client.test_connection()
    print(f"Connection to {settings.url} OK" + (f" ({powered_by})" if powered_by else ""))
    return EXIT_OK


def cmd_projects(args: argparse.Namespace) -> int:
    settings = _settings(args)
    with _client(args, settings) as client:
        projects = client.get_projects()
    for p in projects:
        print(f"{p.uuid}  {p.name}  {p.version or '-'}")
    return EXIT_OK


def cmd_findings(args: argparse.Namespace) -> int:
    settings = _settings(args)
    ref = project_reference(args.project_id, args.project_name, args.project_version)
    with _client(args, settings) as client:
        uuid = ProjectResolver(client, settings.project_resolution).resolve(ref)
        findings = client.get_findings(uuid)
    doc = findings_json(findings)
    if args.out:
        args.out.write_text(doc, encoding="utf-8")
        print(f"Wrote {len(findings)} finding(s) of {uuid} to {args.out}")
    else:
        print(doc)
    return EXIT_OK


def _add_project_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--project-id", help="Project uuid")
    p.add_argument("--project-name", help="Project name (requires --project-version)")
    p.add_argument("--project-version", help="Project version (requires --project-name)")


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--url", help="Dependency-Track base URL (env DTRACK_URL)")
    common.add_argument("--api-key-file", type=Path, help="File holding the API key (default: env DTRACK_API_KEY)")
    common.add_argument("--connection-timeout", type=int, help="Connect timeout in seconds")
    common.add_argument("--read-timeout", type=int, help="Read timeout in seconds")
    common.add_argument("--resolution", choices=["lookup", "listing"], help="How name/version references are resolved")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    p = argparse.ArgumentParser(
        prog="dtrack-publisher",
        description="Publish SBOMs to Dependency-Track and gate on findings",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_pub = sub.add_parser("publish", parents=[common], help="Upload a BOM and optionally evaluate its findings")
    p_pub.add_argument("--artifact", required=True, help="BOM file to upload")
    _add_project_options(p_pub)
    p_pub.add_argument("--auto-create", action="store_true", help="Create the project if it does not exist")
    p_pub.add_argument("--sync", action="store_true", help="Wait for analysis and evaluate thresholds")
    p_pub.add_argument("--polling-interval", type=int, help="Seconds between processing checks")
    p_pub.add_argument("--polling-timeout", type=int, help="Minutes to wait for processing")
    p_pub.add_argument("--thresholds", type=Path, help="Threshold configuration (JSON)")
    p_pub.add_argument("--baseline", type=Path, help="Previous report or findings file for new-findings limits")
    p_pub.add_argument("--report", type=Path, help="Write a JSON report here")
    p_pub.add_argument("--frontend-url", help="UI base URL used for the project link in the report")
    p_pub.set_defaults(func=cmd_publish)

    p_conn = sub.add_parser("test-connection", parents=[common], help="Check URL and API key")
    p_conn.set_defaults(func=cmd_test_connection)

    p_proj = sub.add_parser("projects", parents=[common], help="List active projects")
    p_proj.set_defaults(func=cmd_projects)

    p_find = sub.add_parser("findings", parents=[common], help="Dump current findings of a project")
    _add_project_options(p_find)
    p_find.add_argument("--out", type=Path, help="Write findings here instead of stdout")
    p_find.set_defaults(func=cmd_findings)
    return p


def main(argv: list[str] | None = None, http: httpx.Client | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.http = http
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (pydantic.ValidationError, OSError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE
    except DependencyTrackError as e:
        print(f"FAIL: {e}", file=sys.stderr)
        return EXIT_USAGE if isinstance(e, ValidationError) else EXIT_FAILURE


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
