"""End-to-end tests for the pkgsources command line.

Each test runs ``main()`` against a real git repository in tmp_path with
the blob store's HTTP calls patched out.
"""

from __future__ import annotations

import hashlib
import json
import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from pkgsources.cli import build_parser, main

pytestmark = pytest.mark.skipif(
    shutil.which("git") is None, reason="git is not installed"
)

STORE = "https://sources.example.com/pkgs/demo"
TARBALL = b"\x1f\x8b\x08\x00" + bytes(range(256))
SPEC = "Name: demo\nVersion: 1.0\nSource0: %{name}-%{version}.tar.gz\nPatch0: fix.patch\n"


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """No .env, no user config, no global logging changes."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    with patch("pkgsources.cli.load_dotenv"), patch(
        "pkgsources.cli.setup_logging"
    ):
        yield


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "demo"
    root.mkdir()
    subprocess.run(
        ["git", "init", "--quiet", str(root)], check=True, capture_output=True
    )
    (root / "demo.spec").write_text(SPEC, encoding="utf-8")
    (root / "demo-1.0.tar.gz").write_bytes(TARBALL)
    (root / "fix.patch").write_text("--- a\n+++ b\n", encoding="utf-8")
    return root


def _tracked(root: Path) -> set[str]:
    out = subprocess.run(
        ["git", "ls-files"], cwd=root, check=True, capture_output=True,
        text=True,
    ).stdout
    return set(out.split())


def _git_add(root: Path, *names: str) -> None:
    subprocess.run(
        ["git", "add", "--", *names], cwd=root, check=True,
        capture_output=True,
    )


def _response(status_code: int = 200, chunks: list[bytes] | None = None):
    response = MagicMock()
    response.status_code = status_code
    response.iter_content.return_value = chunks or []
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Server Error"
        )
    return response


def _run(project: Path, *args: str) -> int:
    return main(["--dir", str(project), "--store-url", STORE, *args])


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_repeatable_source(self):
        args = build_parser().parse_args(
            ["--source", "a.patch", "--source", "b.tar.gz", "sync"]
        )
        assert args.source == ["a.patch", "b.tar.gz"]
        assert args.no_upload is False


class TestSync:
    def test_sync_uploads_and_tracks(self, project, capsys):
        with patch.object(
            requests.Session, "head", return_value=_response(404)
        ), patch.object(
            requests.Session, "post", return_value=_response(200)
        ) as mock_post:
            code = _run(project, "--json", "sync")

        assert code == 0
        report = json.loads(capsys.readouterr().out)
        assert report["counts"]["uploaded"] == 1
        assert report["upload_queue"] == ["demo-1.0.tar.gz"]
        mock_post.assert_called_once()

        manifest = json.loads((project / "sources.json").read_text())
        assert manifest == {
            "demo-1.0.tar.gz": hashlib.sha1(TARBALL).hexdigest()
        }
        tracked = _tracked(project)
        assert {"fix.patch", "sources.json"} <= tracked
        assert "demo-1.0.tar.gz" not in tracked

    def test_no_upload(self, project):
        with patch.object(
            requests.Session, "head", return_value=_response(404)
        ), patch.object(requests.Session, "post") as mock_post:
            code = _run(project, "sync", "--no-upload")

        assert code == 0
        mock_post.assert_not_called()

    def test_failed_upload_exits_non_zero(self, project, capsys):
        with patch.object(
            requests.Session, "head", return_value=_response(404)
        ), patch.object(
            requests.Session, "post", return_value=_response(500)
        ):
            code = _run(project, "sync")

        assert code == 1
        assert "Failed:" in capsys.readouterr().out

    def test_explicit_sources_skip_spec(self, project):
        _git_add(project, "demo.spec")
        with patch.object(
            requests.Session, "head", return_value=_response(200)
        ):
            code = _run(project, "--source", "fix.patch", "sync")

        assert code == 0
        assert not json.loads((project / "sources.json").read_text())
        assert (project / "demo.spec").exists()
        assert {"demo.spec", "fix.patch"} <= _tracked(project)

    def test_tracked_project_config_survives(self, project):
        config = project / ".pkgsources" / "config.yml"
        config.parent.mkdir()
        config.write_text("sources:\n  unknown_policy: skip\n")
        _git_add(project, "demo.spec", "fix.patch", ".pkgsources/config.yml")

        with patch.object(
            requests.Session, "head", return_value=_response(200)
        ):
            code = _run(project, "sync", "--no-upload")

        assert code == 0
        assert config.exists()
        assert ".pkgsources/config.yml" in _tracked(project)


class TestStatus:
    def test_status_changes_nothing(self, project, capsys):
        with patch.object(
            requests.Session, "head", return_value=_response(404)
        ):
            code = _run(project, "status")

        assert code == 0
        out = capsys.readouterr().out
        assert out.startswith("DRY RUN")
        assert "[ADD TO MANIFEST]" in out
        assert not (project / "sources.json").exists()
        assert _tracked(project) == set()


class TestImportTree:
    def test_binaries_leave_the_tree(self, project):
        with patch.object(
            requests.Session, "head", return_value=_response(404)
        ), patch.object(
            requests.Session, "post", return_value=_response(200)
        ):
            code = _run(project, "import-tree")

        assert code == 0
        assert not (project / "demo-1.0.tar.gz").exists()
        assert {"demo.spec", "fix.patch", "sources.json"} <= _tracked(
            project
        )


class TestFetch:
    def test_fetch_from_store(self, project):
        digest = hashlib.sha1(TARBALL).hexdigest()
        (project / "sources.json").write_text(
            json.dumps({"demo-1.0.tar.gz": digest})
        )
        (project / "demo-1.0.tar.gz").unlink()

        with patch.object(
            requests.Session,
            "get",
            return_value=_response(200, [TARBALL]),
        ) as mock_get:
            code = _run(project, "fetch")

        assert code == 0
        assert (project / "demo-1.0.tar.gz").read_bytes() == TARBALL
        assert mock_get.call_args[0][0] == f"{STORE}/{digest[:2]}/{digest}"


class TestErrors:
    def test_missing_store_url(self, project, capsys):
        code = main(["--dir", str(project), "status"])
        assert code == 1
        assert "Store URL not found" in capsys.readouterr().err

    def test_no_spec_file(self, project, capsys):
        (project / "demo.spec").unlink()
        code = _run(project, "status")
        assert code == 1
        assert "No spec file" in capsys.readouterr().err

    def test_not_a_git_repository(self, tmp_path, capsys):
        plain = tmp_path / "plain"
        plain.mkdir()
        code = _run(plain, "--source", "a.patch", "sync")
        assert code == 1
        assert "not inside a git working tree" in capsys.readouterr().err

    def test_corrupt_manifest(self, project, capsys):
        (project / "sources.json").write_text("{oops")
        code = _run(project, "sync")
        assert code == 1
        assert "Cannot parse manifest" in capsys.readouterr().err

    def test_invalid_config_file(self, project, capsys):
        config = project / ".pkgsources" / "config.yml"
        config.parent.mkdir()
        config.write_text("sources:\n  unknown_policy: fail\n")
        code = _run(project, "status")
        assert code == 1
        assert "invalid configuration" in capsys.readouterr().err


class TestInitConfig:
    def test_creates_config(self, project, capsys):
        code = main(["--dir", str(project), "init-config"])
        assert code == 0
        path = Path(capsys.readouterr().out.strip())
        assert path == project.resolve() / ".pkgsources" / "config.yml"
        assert path.exists()
