"""Tests for the start-the-engine orchestration."""

import asyncio
from pathlib import Path

import pytest

from context_engine.core.engine import ContextEngineOrchestrator
from context_engine.core.errors import FilesystemError, RemoteCallError, ValidationError
from context_engine.core.scaffold import (
    MESSAGE_ALREADY_COMPLETE,
    MESSAGE_SETUP_COMPLETED,
    ScaffoldStatus,
    ScaffoldSynchronizer,
    SetupResult,
)


class _StubClient:
    def __init__(self, response: str = "Context engine started", error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls = 0

    async def start_context_engine(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.response


class _CountingSynchronizer(ScaffoldSynchronizer):
    def __init__(self, result: SetupResult | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls = 0

    async def synchronize(self, project_root: str) -> SetupResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return await super().synchronize(project_root)


class TestOrchestrator:
    @pytest.mark.parametrize("project_root", [None, "", 42])
    def test_invalid_root_touches_nothing(self, project_root: object) -> None:
        client = _StubClient()
        synchronizer = _CountingSynchronizer()

        with pytest.raises(ValidationError):
            asyncio.run(ContextEngineOrchestrator(client, synchronizer).start(project_root))

        assert synchronizer.calls == 0
        assert client.calls == 0

    def test_whitespace_root_is_left_to_the_scaffold(self) -> None:
        client = _StubClient("ok")
        completed = SetupResult(
            success=True, message=MESSAGE_SETUP_COMPLETED, status=ScaffoldStatus()
        )
        synchronizer = _CountingSynchronizer(result=completed)

        text = asyncio.run(ContextEngineOrchestrator(client, synchronizer).start("   "))

        assert synchronizer.calls == 1
        assert client.calls == 1
        assert text.endswith(MESSAGE_SETUP_COMPLETED)

    def test_success_composes_both_parts(self, tmp_path: Path) -> None:
        client = _StubClient("Engine is up")

        text = asyncio.run(ContextEngineOrchestrator(client).start(str(tmp_path)))

        assert text == (
            f"Engine is up\n\n📁 Local Documentation Structure: {MESSAGE_SETUP_COMPLETED}"
        )
        assert client.calls == 1
        assert (tmp_path / ".context-engine" / "config" / "settings.json").is_file()

    def test_second_start_reports_existing_scaffold(self, tmp_path: Path) -> None:
        orchestrator = ContextEngineOrchestrator(_StubClient("ok"))
        asyncio.run(orchestrator.start(str(tmp_path)))

        text = asyncio.run(orchestrator.start(str(tmp_path)))

        assert text.endswith(MESSAGE_ALREADY_COMPLETE)

    def test_failed_scaffold_skips_remote_call(self) -> None:
        client = _StubClient()
        failed = SetupResult(
            success=False,
            message="Failed to setup documentation structure: disk full",
            status=ScaffoldStatus(),
        )

        text = asyncio.run(
            ContextEngineOrchestrator(client, _CountingSynchronizer(result=failed)).start("/project")
        )

        assert text == (
            "❌ Failed to setup local documentation structure: "
            "Failed to setup documentation structure: disk full"
        )
        assert client.calls == 0

    def test_raising_scaffold_skips_remote_call(self) -> None:
        client = _StubClient()
        synchronizer = _CountingSynchronizer(error=FilesystemError("read-only"))

        text = asyncio.run(ContextEngineOrchestrator(client, synchronizer).start("/project"))

        assert text == "❌ Failed to setup local documentation structure: read-only"
        assert client.calls == 0

    def test_remote_failure_raises_with_warning_prefix(self, tmp_path: Path) -> None:
        client = _StubClient(error=RemoteCallError("Unauthorized. Please check your API key.", 401))

        with pytest.raises(RemoteCallError) as exc_info:
            asyncio.run(ContextEngineOrchestrator(client).start(str(tmp_path)))

        assert str(exc_info.value) == (
            "⚠️ ContextEngine API call failed: Unauthorized. Please check your API key."
        )
        assert exc_info.value.status_code == 401
        assert (tmp_path / ".context-engine").is_dir()
