"""Tests for exploration/orchestrator.py - the scan loop and its state machine."""

import json

import pytest

from remote_explorer.exceptions import ExplorationError, ScanStateError
from remote_explorer.exploration import ExplorationOrchestrator

TEMPLATE_TARGET = "/basic/3rd_ini/common/global_env_setup.ini"


async def explore(orchestrator, name=""):
    await orchestrator.start(name=name)
    await orchestrator.wait()
    return orchestrator.session


def timeout():
    return TimeoutError("FileRead timeout after 10s")


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_profile_template_resolves_later(self, fake_bridge, make_config, profile_content):
        bridge = fake_bridge(
            {
                "/etc/profile": profile_content,
                "/etc/model.conf": "INI_3RD=common\n",
                TEMPLATE_TARGET: "echo ready\n",
            }
        )
        orchestrator = ExplorationOrchestrator(
            bridge, config=make_config(["/etc/profile", "/etc/model.conf"])
        )
        session = await explore(orchestrator)

        assert session.status == "completed"
        basic = session.variables["LINUX_BASIC_PATH"][0]
        assert (basic.value, basic.confidence) == ("/basic", "explicit")

        record = session.results[TEMPLATE_TARGET]
        assert record.status == "success"
        assert record.discovery_method == "generated"
        assert record.discovered_from == "/etc/profile"
        assert session.deferred_templates == []
        assert TEMPLATE_TARGET in bridge.requested_paths

    @pytest.mark.asyncio
    async def test_template_stays_deferred_without_variable(self, fake_bridge, make_config, profile_content):
        bridge = fake_bridge({"/etc/profile": profile_content})
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(["/etc/profile"]))
        session = await explore(orchestrator)

        assert [d.variables for d in session.deferred_templates] == [{"INI_3RD"}]
        assert orchestrator.stats.deferred_templates == 1

    @pytest.mark.asyncio
    async def test_each_path_read_once(self, fake_bridge, make_config):
        bridge = fake_bridge(
            {
                "/etc/profile": "cat /etc/app/a.conf\ncat /etc/app/a.conf\n. /etc/app/b.sh\n",
                "/etc/app/a.conf": "include /etc/app/b.sh\ncat /etc/profile\n",
                "/etc/app/b.sh": "cat /etc/app/a.conf\n",
            }
        )
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(["/etc/profile"]))
        session = await explore(orchestrator)

        assert sorted(bridge.requested_paths) == ["/etc/app/a.conf", "/etc/app/b.sh", "/etc/profile"]
        assert session.total == 3
        assert "/etc/profile" in session.results["/etc/app/a.conf"].ignored_paths
        assert session.results["/etc/profile"].extracted_paths == ["/etc/app/a.conf", "/etc/app/b.sh"]

    @pytest.mark.asyncio
    async def test_provenance_source_already_scanned(self, fake_bridge, make_config):
        bridge = fake_bridge(
            {
                "/etc/profile": ". /etc/app/one.sh\n",
                "/etc/app/one.sh": ". /etc/app/two.sh\n. /etc/profile\n",
                "/etc/app/two.sh": ". /etc/app/one.sh\n",
            }
        )
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(["/etc/profile"]))

        violations = []

        def check(record):
            for child in record.extracted_paths + record.generated_paths:
                source = orchestrator.session.results[child].discovered_from
                if source not in orchestrator.session.scanned:
                    violations.append(child)

        orchestrator.events.on_result(check)
        session = await explore(orchestrator)

        assert violations == []
        for record in session.results.values():
            seen = set()
            node = record
            while node.discovered_from is not None:
                assert node.path not in seen
                seen.add(node.path)
                node = session.results[node.discovered_from]
            assert node.path == "/etc/profile"

    @pytest.mark.asyncio
    async def test_binary_content_not_mined(self, fake_bridge, make_config):
        bridge = fake_bridge({"/etc/logo.png": "\x89PNG\r\n\x1a\n cat /etc/hidden.conf"})
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(["/etc/logo.png"]))
        session = await explore(orchestrator)

        record = session.results["/etc/logo.png"]
        assert record.is_binary
        assert record.file_type == "PNG image"
        assert session.binary == 1
        assert "/etc/hidden.conf" not in session.results

    @pytest.mark.asyncio
    async def test_result_emitted_after_record_stored(self, fake_bridge, make_config):
        bridge = fake_bridge({"/etc/profile": "export A=1\n"})
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(["/etc/profile", "/etc/gone"]))
        stored = []
        orchestrator.events.on_result(
            lambda r: stored.append(orchestrator.session.results.get(r.path) is r)
        )
        await explore(orchestrator)
        assert stored == [True, True]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_not_found_is_terminal_timeout_is_not(self, fake_bridge, make_config):
        bridge = fake_bridge({"/etc/missing.conf": None, "/etc/slow.conf": timeout()})
        config = make_config(["/etc/missing.conf", "/etc/slow.conf"], max_retries=0, error_threshold=5)
        orchestrator = ExplorationOrchestrator(bridge, config=config)
        session = await explore(orchestrator)

        assert "/etc/missing.conf" in session.scanned
        assert session.results["/etc/missing.conf"].status == "not-found"
        assert session.failed == 1

        assert "/etc/slow.conf" not in session.scanned
        assert session.retry_pending == ["/etc/slow.conf"]
        assert orchestrator.errors.consecutive_errors == 1

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, fake_bridge, make_config):
        bridge = fake_bridge({"/etc/slow.conf": timeout()})
        config = make_config(["/etc/slow.conf"], max_retries=2, error_threshold=10)
        orchestrator = ExplorationOrchestrator(bridge, config=config)
        await explore(orchestrator)
        assert bridge.requested_paths == ["/etc/slow.conf"] * 3

    @pytest.mark.asyncio
    async def test_auto_pause_at_threshold(self, fake_bridge, make_config):
        paths = ["/etc/a.conf", "/etc/b.conf", "/etc/c.conf"]
        bridge = fake_bridge({p: timeout() for p in paths})
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(paths, error_threshold=3))
        pauses = []
        orchestrator.events.on_auto_pause(pauses.append)

        session = await explore(orchestrator)

        assert orchestrator.state == "paused"
        assert session.scanned == set()
        assert len(pauses) == 1
        assert pauses[0].consecutive_count == 3
        assert session.error_info["consecutive_errors"] == 3
        assert session.error_info["error_type"] == "timeout"

    @pytest.mark.asyncio
    async def test_success_in_between_resets_counter(self, fake_bridge, make_config):
        paths = ["/etc/a.conf", "/etc/b.conf", "/etc/ok.conf", "/etc/c.conf", "/etc/d.conf"]
        files = {p: timeout() for p in paths}
        files["/etc/ok.conf"] = "fine\n"
        bridge = fake_bridge(files)
        config = make_config(paths, error_threshold=3, max_retries=0)
        orchestrator = ExplorationOrchestrator(bridge, config=config)
        session = await explore(orchestrator)

        assert session.status == "completed"
        assert orchestrator.last_auto_pause is None
        assert orchestrator.errors.consecutive_errors == 2
        assert len(session.retry_pending) == 4

    @pytest.mark.asyncio
    async def test_unexpected_failure_sets_error(self, fake_bridge, make_config, monkeypatch):
        bridge = fake_bridge({"/etc/profile": "text\n"})
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(["/etc/profile"]))

        def broken(content):
            raise RuntimeError("classifier bug")

        monkeypatch.setattr(orchestrator.classifier, "classify", broken)
        await explore(orchestrator)
        assert orchestrator.state == "error"


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestStateMachine:
    @pytest.mark.asyncio
    async def test_idle(self, fake_bridge):
        orchestrator = ExplorationOrchestrator(fake_bridge())
        assert orchestrator.state == "idle"
        assert orchestrator.stats.total == 0
        with pytest.raises(ScanStateError):
            await orchestrator.pause()
        with pytest.raises(ScanStateError):
            await orchestrator.stop()
        with pytest.raises(ScanStateError):
            orchestrator.export()

    @pytest.mark.asyncio
    async def test_start_while_running(self, fake_bridge, make_config):
        orchestrator = ExplorationOrchestrator(fake_bridge(delay=0.01), config=make_config())
        await orchestrator.start()
        with pytest.raises(ScanStateError):
            await orchestrator.start()
        await orchestrator.wait()

    @pytest.mark.asyncio
    async def test_pause_then_resume_is_new_run(self, fake_bridge, make_config):
        paths = [f"/etc/file{i}.conf" for i in range(6)]
        bridge = fake_bridge({p: "data\n" for p in paths})
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(paths, batch_size=2))

        await orchestrator.start()
        await orchestrator.pause()
        assert orchestrator.state == "paused"
        assert len(orchestrator.session.queue) == 6
        with pytest.raises(ScanStateError):
            await orchestrator.pause()

        await orchestrator.resume()
        await orchestrator.wait()
        assert orchestrator.state == "completed"
        assert orchestrator.session.run_id == 2
        assert orchestrator.session.scanned == set(paths)

    @pytest.mark.asyncio
    async def test_resume_requires_paused(self, fake_bridge, make_config):
        orchestrator = ExplorationOrchestrator(fake_bridge(), config=make_config())
        await explore(orchestrator)
        with pytest.raises(ScanStateError):
            await orchestrator.resume()

    @pytest.mark.asyncio
    async def test_stop_clears_queue(self, fake_bridge, make_config):
        paths = [f"/etc/file{i}.conf" for i in range(4)]
        orchestrator = ExplorationOrchestrator(fake_bridge(), config=make_config(paths))
        await orchestrator.start()
        await orchestrator.stop()

        assert orchestrator.state == "completed"
        assert orchestrator.session.ended_at is not None
        assert len(orchestrator.session.queue) == 0
        with pytest.raises(ScanStateError):
            await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_load_needs_store(self, fake_bridge):
        with pytest.raises(ExplorationError):
            await ExplorationOrchestrator(fake_bridge()).load("scan-1")


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    @pytest.mark.asyncio
    async def test_completion_is_saved(self, fake_bridge, make_config, store, profile_content):
        bridge = fake_bridge(
            {
                "/etc/profile": profile_content,
                "/etc/model.conf": "INI_3RD=common\n",
                TEMPLATE_TARGET: "echo ready\n",
            }
        )
        config = make_config(["/etc/profile", "/etc/model.conf"], snapshot_every=1)
        orchestrator = ExplorationOrchestrator(bridge, store, config)
        session = await explore(orchestrator, name="tv")

        data = store.load(session.id)
        assert data["session"]["status"] == "completed"
        assert data["session"]["name"] == "tv"
        assert {r["path"] for r in data["results"]} == {"/etc/profile", "/etc/model.conf", TEMPLATE_TARGET}
        assert data["metadata"]["discovery"] == {"known-list": 2, "generated": 1}

    @pytest.mark.asyncio
    async def test_auto_pause_then_resume_in_new_process(self, fake_bridge, make_config, store):
        flaky = ["/etc/x1.conf", "/etc/x2.conf", "/etc/x3.conf"]
        files = {"/etc/profile": ". /etc/app/env.sh\n", "/etc/app/env.sh": "A=1\n"}
        config = make_config(["/etc/profile"] + flaky, batch_size=4, max_retries=0, error_threshold=3)

        first = ExplorationOrchestrator(fake_bridge({**files, **{p: timeout() for p in flaky}}), store, config)
        session = await explore(first)
        assert session.status == "paused"
        assert store.load(session.id)["session"]["status"] == "paused"

        bridge = fake_bridge({**files, **{p: "ok\n" for p in flaky}})
        second = ExplorationOrchestrator(bridge, store, config)
        loaded = await second.load(session.id)
        assert loaded.status == "paused"
        assert loaded.retry_pending == flaky
        assert list(loaded.queue) == ["/etc/app/env.sh"]

        await second.resume()
        await second.wait()

        assert second.state == "completed"
        assert bridge.requested_paths[:3] == flaky
        assert second.session.results["/etc/app/env.sh"].discovered_from == "/etc/profile"

        data = store.load(session.id)
        assert [r["run_id"] for r in data["runs"]] == [1, 2]
        assert data["session"]["status"] == "completed"
        assert len(data["results"]) == 5

    @pytest.mark.asyncio
    async def test_export_json(self, fake_bridge, make_config):
        bridge = fake_bridge({"/etc/profile": ". /etc/app/env.sh\n"})
        orchestrator = ExplorationOrchestrator(bridge, config=make_config(["/etc/profile"]))
        await explore(orchestrator)

        exported = json.loads(orchestrator.export_json())
        assert exported["session"]["status"] == "completed"
        assert {r["path"] for r in exported["results"]} == {"/etc/profile", "/etc/app/env.sh"}
        assert "exported_at" in exported
