import os

import pytest

from dtrack_publisher.api.models import ById, ByNameVersion, project_reference
from dtrack_publisher.errors import ValidationError
from dtrack_publisher.publish.upload import UploadOrchestrator, check_artifact


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"name": "shop"},
        {"version": "1.0"},
        {"project_id": "", "name": " ", "version": None},
        {"project_id": "u-1", "name": "shop", "version": "1.0"},
        {"project_id": "u-1", "name": "shop"},
    ],
)
def test_incomplete_or_ambiguous_reference_is_rejected(kwargs):
    with pytest.raises(ValidationError):
        project_reference(**kwargs)


def test_reference_variants():
    assert project_reference(project_id=" u-1 ") == ById(uuid="u-1")
    ref = project_reference(name="shop", version="1.0", auto_create=True)
    assert ref == ByNameVersion(name="shop", version="1.0", auto_create=True)


def test_check_artifact(tmp_path, bom):
    assert check_artifact(str(bom)) == bom
    with pytest.raises(ValidationError, match="no artifact"):
        check_artifact("")
    with pytest.raises(ValidationError, match="does not exist"):
        check_artifact(tmp_path / "nope.json")
    with pytest.raises(ValidationError, match="is not a file"):
        check_artifact(tmp_path)


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs a non-root POSIX user")
def test_check_artifact_unreadable(bom):
    bom.chmod(0)
    with pytest.raises(ValidationError, match="not readable"):
        check_artifact(bom)


def test_submit_validates_before_uploading(fake, client, tmp_path):
    with pytest.raises(ValidationError):
        UploadOrchestrator(client).submit(tmp_path / "missing.json", ById(uuid="u-1"))
    assert fake.requests == []


def test_submit(fake, client, bom):
    result = UploadOrchestrator(client).submit(bom, ById(uuid="u-1"))
    assert result.accepted and result.token == "token-1"
    assert len(fake.uploads) == 1


def test_submit_rejected(fake, client, bom):
    fake.upload_status = 401
    result = UploadOrchestrator(client).submit(bom, ById(uuid="u-1"))
    assert not result.accepted
    assert result.status_code == 401
