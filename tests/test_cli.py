from __future__ import annotations

import json
import os
import textwrap
from pathlib import Path

import pytest

from workon import cli
from workon.config import get_settings, session_path_for
from workon.session import CLIENT_CALLBACK, SessionEntry, SessionStore
from workon.tools import FakeToolRunner


class StubSignaller:
    def __init__(self, alive: set[int]) -> None:
        self.running = set(alive)

    def alive(self, pid: int) -> bool:
        return pid in self.running

    def terminate(self, pid: int) -> bool:
        self.running.discard(pid)
        return True

    def kill(self, pid: int) -> bool:
        return True


@pytest.fixture
def env(monkeypatch, tmp_path: Path):
    for key in list(os.environ):
        if key.startswith("WORKON_") or key.startswith("XDG_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("WORKON_KILL_GRACE", "0.01")
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    (root / "workon.yaml").write_text(
        textwrap.dedent(
            """
            resources:
              notes: myviewer docs/notes.md
              web: https://example.com
            layouts:
              dev:
                - [notes]
                - [web]
              broken:
                - [ghost]
            default_layout: dev
            """
        ).strip(),
        encoding="utf-8",
    )
    return root


def session_store(tmp_path: Path, root: Path) -> SessionStore:
    return SessionStore(session_path_for(root, tmp_path / "cache" / "workon"))


def test_no_command_prints_help(env, capsys) -> None:
    assert cli.main([]) == cli.EXIT_OK
    assert "usage: workon" in capsys.readouterr().out


def test_start_dry_run_prints_batch(env, project: Path, tmp_path: Path, capsys) -> None:
    code = cli.main(["start", str(project), "--dry-run"])

    captured = capsys.readouterr()
    assert code == cli.EXIT_OK
    batch = json.loads(captured.out)
    assert batch["session_file"] == str(session_store(tmp_path, project).path)
    assert [resource["name"] for resource in batch["resources"]] == ["notes", "web"]
    assert batch["resources"][0]["cmd"] == f"myviewer {project.resolve() / 'docs' / 'notes.md'}"
    assert batch["layout"] == [["notes"], ["web"]]
    assert "DRY-RUN" in captured.err


def test_start_rejects_undefined_layout_resource(env, project: Path, capsys) -> None:
    code = cli.main(["start", str(project), "--layout", "broken"])

    assert code == cli.EXIT_FAILED
    assert "undefined resource: 'ghost'" in capsys.readouterr().err


def test_start_reports_missing_manifest(env, tmp_path: Path, capsys) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()

    assert cli.main(["start", str(empty)]) == cli.EXIT_FAILED
    assert "workon.yaml" in capsys.readouterr().err


def test_start_refuses_busy_session(env, project: Path, tmp_path: Path, capsys) -> None:
    with session_store(tmp_path, project).lock():
        code = cli.main(["start", str(project)])

    assert code == cli.EXIT_BUSY
    assert "busy" in capsys.readouterr().err


def test_record_merges_callback_into_immediate_entry(env, tmp_path: Path) -> None:
    session_file = tmp_path / "session.json"

    assert cli.main(["record", "--session-file", str(session_file), "--name", "ide", "--cmd", "code .", "--pid", "42", "--immediate"]) == 0
    assert (
        cli.main(
            [
                "record",
                "--session-file",
                str(session_file),
                "--name",
                "ide",
                "--pid",
                "42",
                "--window-id",
                "1234",
                "--class",
                "Code",
                "--instance",
                "code",
            ]
        )
        == 0
    )

    [entry] = SessionStore(session_file).read()
    assert entry.cmd == "code ."
    assert entry.window_class == "Code"
    assert entry.tracking_method == CLIENT_CALLBACK


def test_status_without_session(env, project: Path, capsys) -> None:
    assert cli.main(["status", str(project)]) == cli.EXIT_PARTIAL
    assert "No active session" in capsys.readouterr().out


def test_status_json_lists_entries(env, project: Path, tmp_path: Path, capsys) -> None:
    session_store(tmp_path, project).record(SessionEntry(name="notes", cmd="myviewer notes.md", pid=7))

    assert cli.main(["status", str(project), "--json"]) == cli.EXIT_OK
    [item] = json.loads(capsys.readouterr().out)
    assert item["name"] == "notes"
    assert item["pid"] == 7


def test_stop_without_session_is_success(env, project: Path, capsys) -> None:
    assert cli.main(["stop", str(project)]) == cli.EXIT_OK
    assert cli.main(["stop", str(project)]) == cli.EXIT_OK
    assert "No active session" in capsys.readouterr().err


def test_stop_partial_failure(env, project: Path, tmp_path: Path, capsys) -> None:
    store = session_store(tmp_path, project)
    store.record(SessionEntry(name="notes", pid=100))
    store.record(SessionEntry(name="web", pid=200))
    env.setattr(cli, "Signaller", lambda: StubSignaller({100}))
    env.setattr(cli, "_runner", lambda settings: FakeToolRunner())

    code = cli.main(["stop", str(project)])

    assert code == cli.EXIT_PARTIAL
    assert "Successfully stopped 1/2 resources" in capsys.readouterr().err
    assert not store.exists()


def test_stop_all_success(env, project: Path, tmp_path: Path, capsys) -> None:
    store = session_store(tmp_path, project)
    store.record(SessionEntry(name="notes", pid=100))
    env.setattr(cli, "Signaller", lambda: StubSignaller({100}))
    env.setattr(cli, "_runner", lambda settings: FakeToolRunner())

    assert cli.main(["stop", str(project)]) == cli.EXIT_OK
    assert "Successfully stopped 1/1 resources" in capsys.readouterr().err


def test_stop_nothing_stopped(env, project: Path, tmp_path: Path) -> None:
    session_store(tmp_path, project).record(SessionEntry(name="notes", pid=100))
    env.setattr(cli, "Signaller", lambda: StubSignaller(set()))
    env.setattr(cli, "_runner", lambda settings: FakeToolRunner())

    assert cli.main(["stop", str(project)]) == cli.EXIT_FAILED


def test_sessions_lists_session_files(env, project: Path, tmp_path: Path, capsys) -> None:
    assert cli.main(["sessions"]) == cli.EXIT_OK
    assert "No active sessions found" in capsys.readouterr().out

    session_store(tmp_path, project).record(SessionEntry(name="notes", pid=1))

    assert cli.main(["sessions"]) == cli.EXIT_OK
    assert "(1 resources)" in capsys.readouterr().out


def test_doctor_reports_missing_awesome_client(env, capsys) -> None:
    env.setattr(cli, "_runner", lambda settings: FakeToolRunner(["xdotool"]))

    assert cli.main(["doctor"]) == cli.EXIT_FAILED
    output = capsys.readouterr().out
    assert "awesome-client: missing" in output
    assert "xdotool: available" in output


def test_stop_reports_busy_while_start_holds_lock(env, project: Path, tmp_path: Path, capsys) -> None:
    store = session_store(tmp_path, project)

    with store.lock():
        code = cli.main(["stop", str(project)])

        assert store.lock_path.exists()

    assert code == cli.EXIT_BUSY
    assert "busy" in capsys.readouterr().err


def test_stop_without_session_leaves_no_files(env, project: Path, tmp_path: Path) -> None:
    store = session_store(tmp_path, project)

    assert cli.main(["stop", str(project)]) == cli.EXIT_OK
    assert list(store.path.parent.iterdir()) == []
