import asyncio

import pytest

from fakes import InMemoryProvider, ScriptedCommand
from workbench.config import WorkspaceConfig
from workbench.errors import (
    BootFailure,
    DeleteFailure,
    EnvironmentUnsupported,
    ProcessFailure,
    WriteFailure,
)
from workbench.runtime.bridge import RuntimeBridge


def _bridge(provider: InMemoryProvider, **overrides) -> RuntimeBridge:
    config = WorkspaceConfig(seed_files=False, **overrides)
    return RuntimeBridge(provider, config)


def test_concurrent_boot_calls_share_one_attempt() -> None:
    provider = InMemoryProvider(boot_delay=0.01)
    bridge = _bridge(provider)

    async def _run():
        return await asyncio.gather(bridge.boot(), bridge.boot(), bridge.boot())

    first, second, third = asyncio.run(_run())

    assert first is second is third
    assert provider.create_calls == 1


def test_boot_returns_existing_handle() -> None:
    provider = InMemoryProvider()
    bridge = _bridge(provider)

    async def _run():
        first = await bridge.boot()
        second = await bridge.boot()
        return first, second

    first, second = asyncio.run(_run())

    assert first is second
    assert provider.create_calls == 1


def test_failed_boot_is_retried_on_next_call() -> None:
    provider = InMemoryProvider()
    provider.fail_boots = 1
    bridge = _bridge(provider)

    async def _run():
        with pytest.raises(BootFailure) as excinfo:
            await bridge.boot()
        assert "sandbox image unavailable" in str(excinfo.value)
        assert bridge.last_error is not None
        return await bridge.boot()

    handle = asyncio.run(_run())

    assert handle.sandbox_id == "workspace-2"
    assert provider.create_calls == 2
    assert bridge.last_error is None


def test_environment_unsupported_carries_remediation() -> None:
    provider = InMemoryProvider()
    provider.environment_error = EnvironmentUnsupported("no shell", "install bash")
    bridge = _bridge(provider)

    with pytest.raises(EnvironmentUnsupported) as excinfo:
        asyncio.run(bridge.boot())

    assert isinstance(excinfo.value, BootFailure)
    assert excinfo.value.remediation == "install bash"
    assert provider.create_calls == 0


def test_boot_seeds_starter_files() -> None:
    provider = InMemoryProvider()
    bridge = RuntimeBridge(provider, WorkspaceConfig(starter_files={"/src/index.js": "x", "/README.md": "r"}))

    files = asyncio.run(bridge.read_all_files())

    assert files == {"/README.md": "r", "/src/index.js": "x"}


def test_write_creates_missing_directories() -> None:
    provider = InMemoryProvider()
    bridge = _bridge(provider)

    async def _run():
        await bridge.write_file("deep/nested/dir/file.txt", "content")
        await bridge.mkdir("/deep")
        return await bridge.read_file("/deep/nested/dir/file.txt")

    assert asyncio.run(_run()) == "content"


def test_write_fails_when_segment_is_a_file() -> None:
    provider = InMemoryProvider()
    bridge = _bridge(provider)

    async def _run():
        await bridge.write_file("/src", "file")
        await bridge.write_file("/src/index.js", "")

    with pytest.raises(WriteFailure):
        asyncio.run(_run())


def test_remove_missing_path_raises_delete_failure() -> None:
    bridge = _bridge(InMemoryProvider())

    with pytest.raises(DeleteFailure) as excinfo:
        asyncio.run(bridge.remove("/missing.txt"))

    assert "/missing.txt" in str(excinfo.value)


def test_read_all_files_skips_ignored_directories() -> None:
    provider = InMemoryProvider()
    bridge = _bridge(provider)

    async def _run():
        handle = await bridge.boot()
        provider.put_file(handle.sandbox_id, "/node_modules/left-pad/index.js", "pad")
        provider.put_file(handle.sandbox_id, "/src/app.js", "app")
        return await bridge.read_all_files()

    assert asyncio.run(_run()) == {"/src/app.js": "app"}


def test_read_all_files_skips_unreadable_files() -> None:
    provider = InMemoryProvider()
    bridge = _bridge(provider)
    provider.read_errors["/locked.txt"] = PermissionError("Permission denied")

    async def _run():
        handle = await bridge.boot()
        provider.put_file(handle.sandbox_id, "/locked.txt", "secret")
        provider.put_file(handle.sandbox_id, "/src/app.js", "app")
        return await bridge.read_all_files()

    assert asyncio.run(_run()) == {"/src/app.js": "app"}


def test_spawn_kills_previous_process_first() -> None:
    provider = InMemoryProvider()
    provider.scripts["npm run dev"] = ScriptedCommand(chunks=["starting\n"], hang=True)
    bridge = _bridge(provider)

    async def _run():
        first = await bridge.spawn("npm run dev")
        runner = asyncio.ensure_future(first.run())
        await asyncio.sleep(0.01)
        assert bridge.active_process is first
        second = await bridge.spawn("echo hi")
        first_result = await runner
        second_result = await second.run()
        return first, second, first_result, second_result

    first, second, first_result, second_result = asyncio.run(_run())

    assert provider.log == [("spawn", "npm run dev"), ("kill", "npm run dev"), ("spawn", "echo hi")]
    assert first.killed
    assert first_result.exit_code == -9
    assert first_result.output == "starting\n"
    assert second_result.output == "hi\n"


def test_spawn_failure_is_a_process_failure() -> None:
    provider = InMemoryProvider()
    provider.spawn_error = FileNotFoundError("bash")
    bridge = _bridge(provider)

    with pytest.raises(ProcessFailure):
        asyncio.run(bridge.spawn("ls"))


def test_teardown_kills_running_process_and_next_boot_is_fresh() -> None:
    provider = InMemoryProvider()
    provider.scripts["npm run dev"] = ScriptedCommand(chunks=["ready\n"], hang=True)
    bridge = _bridge(provider)

    async def _run():
        first_handle = await bridge.boot()
        command = asyncio.ensure_future(bridge.run_command("npm run dev"))
        await asyncio.sleep(0.01)
        await bridge.teardown()
        result = await command
        second_handle = await bridge.boot()
        return first_handle, second_handle, result

    first_handle, second_handle, result = asyncio.run(_run())

    assert ("kill", "npm run dev") in provider.log
    assert result.exit_code != 0
    assert second_handle is not first_handle
    assert second_handle.sandbox_id != first_handle.sandbox_id
    assert provider.create_calls == 2
    assert provider.delete_calls == 1


def test_teardown_without_handle_is_a_no_op() -> None:
    provider = InMemoryProvider()
    bridge = _bridge(provider)

    asyncio.run(bridge.teardown())

    assert provider.delete_calls == 0


def test_events_report_server_ready_and_crash() -> None:
    provider = InMemoryProvider()
    provider.scripts["npm run dev"] = ScriptedCommand(
        chunks=["  VITE ready\n", "  Local: http://localhost:5173/\n"], exit_code=1
    )
    bridge = _bridge(provider)

    async def _run():
        await bridge.run_command("npm run dev")
        return bridge.drain_events()

    events = asyncio.run(_run())

    kinds = [event.kind for event in events]
    assert kinds == ["booted", "process-started", "server-ready", "process-exited", "server-crash"]
    ready = events[2]
    assert ready.port == 5173
    assert ready.url == "https://workspace-1--5173.preview.test"


def test_event_queue_drops_oldest_when_full() -> None:
    provider = InMemoryProvider()
    bridge = _bridge(provider, event_queue_size=2)

    async def _run():
        await bridge.run_command("echo one")
        return bridge.drain_events()

    events = asyncio.run(_run())

    assert [event.kind for event in events] == ["process-started", "process-exited"]
