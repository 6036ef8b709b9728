from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from workon.manifest import Resource
from workon.session import IMMEDIATE_PID, SessionEntry, SessionStore
from workon.spawn import (
    AwesomeClientNotFoundError,
    AwesomeSpawner,
    SpawnBatch,
    SpawnError,
    SpawnOrchestrator,
)
from workon.spawn.awesome import lua_string
from workon.spawn.orchestrator import DRY_RUN, SUCCESS, TIMEOUT
from workon.tools import CommandResult, FakeToolRunner

RESOURCES = [
    Resource(name="ide", cmd="code /srv/project"),
    Resource(name="web", cmd="firefox https://example.com"),
    Resource(name="extra", cmd="xclock"),
]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.now += delay


class StubSpawner:
    """Records submissions and optionally writes session entries."""

    def __init__(self, store: SessionStore | None = None, entries: int = 0) -> None:
        self.store = store
        self.entries = entries
        self.submitted: list[SpawnBatch] = []

    def render(self, batch: SpawnBatch) -> str:
        return f"-- {len(batch)} resources"

    async def submit(self, batch: SpawnBatch) -> CommandResult:
        self.submitted.append(batch)
        for request in batch.requests()[: self.entries]:
            self.store.record(
                SessionEntry(name=request.name, cmd=request.cmd, pid=1000, tracking_method=IMMEDIATE_PID)
            )
        return CommandResult(args=("awesome-client",), returncode=0, stdout="spawned", stderr="")


def test_batch_assigns_tags_from_layout(tmp_path: Path) -> None:
    batch = SpawnBatch(tmp_path / "s.json", RESOURCES, layout=[["ide"], ["web"]])

    requests = batch.requests()

    assert [(request.name, request.tag) for request in requests] == [("ide", 1), ("web", 2), ("extra", None)]
    payload = batch.to_payload()
    assert payload["session_file"] == str(tmp_path / "s.json")
    assert payload["layout"] == [["ide"], ["web"]]
    assert payload["resources"][0] == {"name": "ide", "cmd": "code /srv/project"}


def test_batch_without_layout_has_no_tags(tmp_path: Path) -> None:
    batch = SpawnBatch(tmp_path / "s.json", RESOURCES)

    assert all(request.tag is None for request in batch.requests())
    assert "layout" not in batch.to_payload()


def test_lua_string_escapes_quotes_and_newlines() -> None:
    assert lua_string('say "hi"\\now\n') == '"say \\"hi\\"\\\\now\\n"'


def test_awesome_spawner_renders_single_program(tmp_path: Path) -> None:
    spawner = AwesomeSpawner(FakeToolRunner(), record_command=["workon-record"])
    batch = SpawnBatch(tmp_path / "s.json", RESOURCES[:2], layout=[["web"], ["ide"]])

    program = spawner.render(batch)

    assert f'{{"workon-record", "--session-file", "{tmp_path / "s.json"}"}}' in program
    assert 'spawn_resource("ide", "code /srv/project", 2)' in program
    assert 'spawn_resource("web", "firefox https://example.com", 1)' in program
    assert program.count("spawn_resource(") == 3
    assert 'return "spawned " .. spawned .. "/2"' in program


def test_awesome_spawner_submits_once(tmp_path: Path) -> None:
    runner = FakeToolRunner(
        ["awesome-client"],
        responder=lambda args: CommandResult(args=args, returncode=0, stdout='   string "spawned 3/3"\n', stderr=""),
    )
    spawner = AwesomeSpawner(runner, record_command=["record"])

    result = asyncio.run(spawner.submit(SpawnBatch(tmp_path / "s.json", RESOURCES)))

    assert result.ok
    assert len(runner.invocations) == 1
    assert runner.invocations[0][0] == "awesome-client"
    assert "spawn_resource(\"extra\", \"xclock\", nil)" in runner.invocations[0][1]


def test_awesome_spawner_reports_failures(tmp_path: Path) -> None:
    batch = SpawnBatch(tmp_path / "s.json", RESOURCES)

    with pytest.raises(AwesomeClientNotFoundError):
        asyncio.run(AwesomeSpawner(FakeToolRunner()).submit(batch))

    failing = FakeToolRunner(
        ["awesome-client"],
        responder=lambda args: CommandResult(args=args, returncode=1, stdout="", stderr="no display"),
    )
    with pytest.raises(SpawnError, match="no display"):
        asyncio.run(AwesomeSpawner(failing).submit(batch))


def test_ping_checks_connectivity() -> None:
    alive = FakeToolRunner(
        ["awesome-client"],
        responder=lambda args: CommandResult(args=args, returncode=0, stdout='string "connectivity-test"', stderr=""),
    )

    assert asyncio.run(AwesomeSpawner(alive).ping())
    assert not asyncio.run(AwesomeSpawner(FakeToolRunner()).ping())


def test_dry_run_submits_nothing(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "s.json")
    spawner = StubSpawner(store)
    orchestrator = SpawnOrchestrator(spawner, dry_run=True)

    report = asyncio.run(orchestrator.launch(store, RESOURCES, [["ide"]]))

    assert report.status == DRY_RUN
    assert report.ok
    assert spawner.submitted == []
    assert report.output == "-- 3 resources"
    assert report.batch["layout"] == [["ide"]]
    assert not store.exists()


def test_launch_succeeds_when_session_grows(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "s.json")
    clock = FakeClock()
    spawner = StubSpawner(store, entries=2)
    orchestrator = SpawnOrchestrator(spawner, timeout=5, poll_interval=0.5, clock=clock, sleep=clock.sleep)

    report = asyncio.run(orchestrator.launch(tmp_path / "s.json", RESOURCES))

    assert report.status == SUCCESS
    assert report.baseline == 0
    assert report.observed == 2
    assert report.new_entries == 2
    assert len(spawner.submitted) == 1


def test_launch_times_out_without_new_entries(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "s.json")
    store.record(SessionEntry(name="old", pid=1))
    clock = FakeClock()
    spawner = StubSpawner(store, entries=0)
    orchestrator = SpawnOrchestrator(spawner, timeout=2, poll_interval=0.5, clock=clock, sleep=clock.sleep)

    report = asyncio.run(orchestrator.launch(store, RESOURCES))

    assert report.status == TIMEOUT
    assert not report.ok
    assert report.baseline == 1
    assert report.observed == 1
    assert report.elapsed == pytest.approx(2.0)
    assert report.batch["resources"][2]["name"] == "extra"


def test_launch_requires_resources(tmp_path: Path) -> None:
    orchestrator = SpawnOrchestrator(StubSpawner())

    with pytest.raises(SpawnError, match="No resources to spawn"):
        asyncio.run(orchestrator.launch(tmp_path / "s.json", []))
