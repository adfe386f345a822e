import json

import pytest

from dtrack_publisher.cli import EXIT_FAILURE, EXIT_OK, EXIT_UNSTABLE, EXIT_USAGE, main

from fakes import API_KEY, BASE_URL, POWERED_BY, make_finding, make_project


@pytest.fixture
def key_file(tmp_path):
    p = tmp_path / "api-key"
    p.write_text(API_KEY + "\n")
    return p


@pytest.fixture
def run(http, key_file):
    def _run(*argv):
        cmd, rest = argv[0], list(argv[1:])
        return main([cmd, "--url", BASE_URL, "--api-key-file", str(key_file), *rest], http=http)

    return _run


def _thresholds(tmp_path, doc):
    p = tmp_path / "thresholds.json"
    p.write_text(json.dumps(doc))
    return str(p)


@pytest.mark.parametrize(
    "severities,expected,verdict",
    [
        (["LOW"], EXIT_OK, "SUCCESS"),
        (["HIGH", "HIGH"], EXIT_UNSTABLE, "UNSTABLE"),
        (["CRITICAL", "LOW"], EXIT_FAILURE, "FAILURE"),
    ],
)
def test_publish_sync_exit_codes(fake, run, bom, tmp_path, capsys, severities, expected, verdict):
    fake.findings["u-1"] = [make_finding(name=f"lib{i}", severity=s) for i, s in enumerate(severities)]
    thresholds = _thresholds(
        tmp_path,
        {"total_findings": {"unstable": {"high": 2}, "failed": {"critical": 1}}},
    )

    code = run("publish", "--artifact", str(bom), "--project-id", "u-1", "--sync", "--thresholds", thresholds)

    assert code == expected
    out = capsys.readouterr().out
    assert f"Verdict: {verdict}" in out
    assert "Findings: critical=" in out
    assert fake.headers[0]["x-api-key"] == API_KEY


def test_publish_async(fake, run, bom, capsys):
    code = run("publish", "--artifact", str(bom), "--project-name", "shop", "--project-version", "1.0", "--auto-create")
    assert code == EXIT_OK
    assert "not waiting for analysis" in capsys.readouterr().out
    assert fake.uploads[0]["autoCreate"] is True
    assert fake.paths() == ["/api/v1/bom"]


def test_report_is_reusable_as_baseline(fake, run, bom, tmp_path, capsys):
    fake.findings["u-1"] = [make_finding(name="a", severity="HIGH")]
    report = tmp_path / "out" / "report.json"
    assert run("publish", "--artifact", str(bom), "--project-id", "u-1", "--sync", "--report", str(report),
               "--frontend-url", "https://dt.example.com/") == EXIT_OK
    doc = json.loads(report.read_text())
    assert doc["verdict"] == "SUCCESS"
    assert doc["project_url"] == "https://dt.example.com/projects/u-1"
    assert doc["findings"][0]["vulnerability"]["vulnId"] == "CVE-2024-0001"
    assert f"Wrote {report}" in capsys.readouterr().out

    fake.findings["u-1"].append(make_finding(name="b", severity="HIGH"))
    thresholds = _thresholds(tmp_path, {"new_findings": {"unstable": {"high": 1}}})
    code = run("publish", "--artifact", str(bom), "--project-id", "u-1", "--sync",
               "--baseline", str(report), "--thresholds", thresholds)
    assert code == EXIT_UNSTABLE


def test_rejected_upload_fails(fake, run, bom, capsys):
    fake.upload_status = 401
    code = run("publish", "--artifact", str(bom), "--project-id", "u-1", "--sync")
    assert code == EXIT_FAILURE
    assert "FAIL:" in capsys.readouterr().err


def test_ambiguous_reference_is_a_usage_error(fake, run, bom):
    code = run("publish", "--artifact", str(bom), "--project-id", "u-1", "--project-name", "shop")
    assert code == EXIT_USAGE
    assert fake.requests == []


def test_missing_artifact_is_a_usage_error(fake, run, tmp_path):
    code = run("publish", "--artifact", str(tmp_path / "absent.json"), "--project-id", "u-1")
    assert code == EXIT_USAGE
    assert fake.requests == []


def test_missing_url_is_a_usage_error(http, key_file, capsys):
    code = main(["test-connection", "--api-key-file", str(key_file)], http=http)
    assert code == EXIT_USAGE
    assert "Invalid configuration" in capsys.readouterr().err


def test_settings_come_from_the_environment(monkeypatch, http, capsys):
    monkeypatch.setenv("DTRACK_URL", BASE_URL)
    monkeypatch.setenv("DTRACK_API_KEY", API_KEY)
    assert main(["test-connection"], http=http) == EXIT_OK
    assert capsys.readouterr().out.strip() == f"Connection to {BASE_URL} OK ({POWERED_BY})"


def test_connection_failure(fake, run, capsys):
    fake.overrides["/api/v1/project"] = (401, "")
    assert run("test-connection") == EXIT_FAILURE
    assert "HTTP 401" in capsys.readouterr().err


def test_projects(fake, run, capsys):
    fake.projects = [make_project("u-1", "shop", "1.0"), make_project("u-2", "billing", None)]
    assert run("projects") == EXIT_OK
    assert capsys.readouterr().out.splitlines() == ["u-1  shop  1.0", "u-2  billing  -"]


def test_findings_to_file(fake, run, tmp_path, capsys):
    fake.projects = [make_project("u-1", "shop", "1.0")]
    fake.findings["u-1"] = [make_finding(severity="MEDIUM")]
    out = tmp_path / "findings.json"

    code = run("findings", "--project-name", "shop", "--project-version", "1.0", "--resolution", "listing",
               "--out", str(out))

    assert code == EXIT_OK
    assert json.loads(out.read_text())[0]["vulnerability"]["severity"] == "MEDIUM"
    assert "Wrote 1 finding(s) of u-1" in capsys.readouterr().out


def test_findings_unknown_project(fake, run, capsys):
    assert run("findings", "--project-name", "shop", "--project-version", "9") == EXIT_FAILURE
    assert "HTTP 404 Not Found" in capsys.readouterr().err


def test_findings_to_stdout_use_api_field_names(fake, run, capsys):
    fake.findings["u-1"] = [make_finding(vuln_id="CVE-2024-0042", severity="LOW")]
    assert run("findings", "--project-id", "u-1") == EXIT_OK
    doc = json.loads(capsys.readouterr().out)
    assert doc[0]["vulnerability"]["vulnId"] == "CVE-2024-0042"
    assert doc[0]["analysis"]["isSuppressed"] is False
