from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from repo_ingest import cli
from repo_ingest import settings as settings_module
from repo_ingest.config import IngestionResult
from repo_ingest.pipeline import ingest_repository_sync

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture

    from tests.conftest import FakeForge, RecordingSleep


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings_module, "ENV_FILE", "")
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)


def route_to(forge: FakeForge, sleep: RecordingSleep) -> Any:  # noqa: ANN401
    def run(identifier: str, **kwargs: Any) -> IngestionResult:  # noqa: ANN401
        return ingest_repository_sync(identifier, transport=forge.transport, sleep=sleep, **kwargs)

    return run


@pytest.mark.integration
def test_main_ingests_and_writes_markdown(
    tmp_path: Path,
    mocker: MockerFixture,
    forge: FakeForge,
    sleep: RecordingSleep,
    capsys: pytest.CaptureFixture[str],
) -> None:
    forge.add_file("src/app.py", "print('hi')\n")
    forge.add_file("src/util/helpers.py", "def helper():\n    return 1\n")
    forge.add_file("package-lock.json", "{}")
    mocker.patch.object(cli, "ingest_repository_sync", side_effect=route_to(forge, sleep))
    output = tmp_path / "export.md"

    exit_code = cli.main(["octo/app", "--output", str(output)])

    assert exit_code == 0
    captured = capsys.readouterr()
    assert "Imported 2 files from main." in captured.out
    assert "Checking repository access..." in captured.err
    assert "Downloading files (0/2)..." in captured.err
    md = output.read_text(encoding="utf-8")
    assert "## src/util/helpers.py size=" in md
    assert "package-lock.json" not in md


@pytest.mark.integration
def test_main_reports_partial_failures(
    mocker: MockerFixture,
    forge: FakeForge,
    sleep: RecordingSleep,
    capsys: pytest.CaptureFixture[str],
) -> None:
    for i in range(10):
        forge.add_file(f"src/m{i}.py", f"v = {i}\n")
    forge.fail_blob(forge.sha_of("src/m3.py"), times=3)
    forge.fail_blob(forge.sha_of("src/m8.py"), times=3)
    mocker.patch.object(cli, "ingest_repository_sync", side_effect=route_to(forge, sleep))

    exit_code = cli.main(["octo/app"])

    assert exit_code == 0
    assert "Imported 8 files from main (2 failed)." in capsys.readouterr().out


@pytest.mark.integration
def test_main_private_repository_without_token(
    mocker: MockerFixture,
    forge: FakeForge,
    sleep: RecordingSleep,
    capsys: pytest.CaptureFixture[str],
) -> None:
    forge.private = True
    forge.token = "secret"
    mocker.patch.object(cli, "ingest_repository_sync", side_effect=route_to(forge, sleep))

    exit_code = cli.main(["octo/app"])

    assert exit_code == 1
    err = capsys.readouterr().err
    assert "[authentication_required]" in err
    assert "Repository appears to be private. Using authentication..." in err


@pytest.mark.integration
def test_main_private_repository_with_token(
    mocker: MockerFixture,
    forge: FakeForge,
    sleep: RecordingSleep,
    capsys: pytest.CaptureFixture[str],
) -> None:
    forge.private = True
    forge.token = "secret"
    forge.add_file("main.go", "package main\n")
    mocker.patch.object(cli, "ingest_repository_sync", side_effect=route_to(forge, sleep))

    exit_code = cli.main(["octo/app", "--token", "secret"])

    assert exit_code == 0
    captured = capsys.readouterr()
    assert "Repository is private. Using branch: main" in captured.err
    assert "Imported 1 file from main." in captured.out


@pytest.mark.integration
def test_main_reports_tree_conflict(
    mocker: MockerFixture,
    forge: FakeForge,
    sleep: RecordingSleep,
    capsys: pytest.CaptureFixture[str],
) -> None:
    forge.add_file("lib//x.py", "x = 1\n")
    mocker.patch.object(cli, "ingest_repository_sync", side_effect=route_to(forge, sleep))

    exit_code = cli.main(["octo/app"])

    assert exit_code == 1
    assert "[tree_conflict]" in capsys.readouterr().err
