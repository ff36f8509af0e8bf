"""
Tests for the download pipeline: staging, the concurrency cap, failure
isolation and the streaming downloader.
"""

import asyncio
import os
import pathlib

import aiohttp
import pytest

from artifact_updater.artifact_models import ManagedArtifact, VersionState
from artifact_updater.artifact_validation import ArtifactValidator
from artifact_updater.download_pipeline import (
    STATE_FILE_NAME,
    ArtifactDownloader,
    ArtifactInstaller,
    DownloadPipeline,
    DownloadStatus,
    DownloadTask,
    InstallLedger,
)
from artifact_updater.update_check import LocalArtifactScanner
from artifact_updater.updater_exceptions import ArtifactValidationError, TransportError
from tests.test_utils import FakeGitHub, package_bytes, quiet_logger, serve

pytest_plugins = ("pytest_asyncio",)


def _artifact(artifact_id: str, **kwargs) -> ManagedArtifact:
    return ManagedArtifact(
        artifact_id=artifact_id,
        source_repo=f"owner/{artifact_id}",
        filename_template=f"{artifact_id}-{{version}}.zip",
        **kwargs,
    )


def _state(artifact_id: str, local, remote, url="https://example.invalid/asset.zip") -> VersionState:
    state = VersionState(artifact_id)
    state.set_local_version(local)
    state.set_remote_version(remote, url)
    return state


class SlowDownloader:
    """Stands in for ArtifactDownloader; counts how many fetches overlap."""

    def __init__(self, install_dir: pathlib.Path, delay: float = 0.05, failing=()):
        self.install_dir = install_dir
        self.delay = delay
        self.failing = set(failing)
        self.active = 0
        self.max_active = 0
        self.timeout_seconds = 30

    def temp_path(self, task: DownloadTask) -> pathlib.Path:
        return self.install_dir / f".{task.artifact_id}-update.tmp"

    async def fetch(self, task, on_progress=None) -> pathlib.Path:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            temp_path = self.temp_path(task)
            temp_path.write_bytes(task.version.encode("ascii"))
            if task.artifact_id in self.failing:
                raise TransportError("HTTP response code: 500", status=500)
            return temp_path
        finally:
            self.active -= 1

    def finalize(self, task, temp_path) -> pathlib.Path:
        final_path = self.install_dir / task.artifact.filename_for(task.version)
        os.replace(temp_path, final_path)
        return final_path

    def discard(self, task) -> None:
        path = self.temp_path(task)
        if path.exists():
            path.unlink()


class FakeValidator:
    """Accepts everything except files whose content is listed as bad."""

    def __init__(self, rejected_versions=()):
        self.rejected_versions = set(rejected_versions)
        self.validated = []

    def validate(self, path) -> None:
        path = pathlib.Path(path)
        self.validated.append(path.name)
        if path.read_text() in self.rejected_versions:
            raise ArtifactValidationError(path.name, "Not a recognized package (missing META-INF/mods.toml)")


class TestDownloadPipeline:
    """Tests for DownloadPipeline."""

    @pytest.fixture
    def logger(self):
        return quiet_logger()

    @pytest.fixture
    def ledger(self, tmp_path, logger):
        return InstallLedger(tmp_path / STATE_FILE_NAME, logger)

    @pytest.fixture
    def installer(self, tmp_path, logger, ledger):
        return ArtifactInstaller(LocalArtifactScanner(tmp_path, logger), ledger, logger)

    def _pipeline(self, downloader, installer, logger, validator=None, **kwargs) -> DownloadPipeline:
        return DownloadPipeline(downloader, validator or FakeValidator(), installer, logger, **kwargs)

    def test_enqueue_requires_download_url(self, tmp_path, installer, logger):
        pipeline = self._pipeline(SlowDownloader(tmp_path), installer, logger)
        assert not pipeline.enqueue(_artifact("demo"), _state("demo", "1.0.0", "1.1.0", url=None))
        assert len(pipeline) == 0

    def test_enqueue_refuses_target_below_min_version(self, tmp_path, installer, logger):
        pipeline = self._pipeline(SlowDownloader(tmp_path), installer, logger)
        artifact = _artifact("demo", min_version="2.0.0")
        assert not pipeline.enqueue(artifact, _state("demo", "1.0.0", "1.5.0"))
        assert pipeline.enqueue(artifact, _state("demo", "1.0.0", "2.0.0"))

    def test_min_version_check_fails_open(self, tmp_path, installer, logger):
        pipeline = self._pipeline(SlowDownloader(tmp_path), installer, logger)
        assert pipeline.enqueue(_artifact("demo", min_version="not-a-version"), _state("demo", None, "1.0.0"))
        assert pipeline.enqueue(_artifact("other", min_version="2.0.0"), _state("other", None, "nightly"))
        assert len(pipeline) == 2

    def test_enqueue_same_artifact_replaces_task(self, tmp_path, installer, logger):
        pipeline = self._pipeline(SlowDownloader(tmp_path), installer, logger)
        pipeline.enqueue(_artifact("demo"), _state("demo", "1.0.0", "1.1.0"))
        pipeline.enqueue(_artifact("demo"), _state("demo", "1.0.0", "1.2.0"))

        [task] = pipeline.pending()
        assert task.version == "1.2.0"
        assert task.previous_version == "1.0.0"
        assert task.status == DownloadStatus.PENDING

    def test_rejects_zero_concurrency(self, tmp_path, installer, logger):
        with pytest.raises(ValueError):
            self._pipeline(SlowDownloader(tmp_path), installer, logger, max_concurrent=0)

    @pytest.mark.asyncio
    async def test_never_exceeds_concurrency_cap(self, tmp_path, installer, logger):
        downloader = SlowDownloader(tmp_path, delay=0.05)
        pipeline = self._pipeline(downloader, installer, logger, max_concurrent=3)
        for index in range(8):
            artifact_id = f"mod{index}"
            pipeline.enqueue(_artifact(artifact_id), _state(artifact_id, None, "1.0.0"))

        results = await pipeline.run_all()

        assert downloader.max_active == 3
        assert results.success_count == 8
        assert len(pipeline) == 0

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, tmp_path, installer, logger, ledger):
        (tmp_path / "good-1.0.0.zip").write_text("1.0.0")
        (tmp_path / "invalid-1.0.0.zip").write_text("1.0.0")
        downloader = SlowDownloader(tmp_path, failing=["broken"])
        validator = FakeValidator(rejected_versions=["6.6.6"])
        pipeline = self._pipeline(downloader, installer, logger, validator=validator)

        pipeline.enqueue(_artifact("good"), _state("good", "1.0.0", "1.1.0"))
        pipeline.enqueue(_artifact("broken"), _state("broken", None, "2.0.0"))
        pipeline.enqueue(_artifact("invalid"), _state("invalid", "1.0.0", "6.6.6"))

        results = await pipeline.run_all()

        assert [r.artifact_id for r in results.successful] == ["good"]
        failures = {r.artifact_id: r.error_message for r in results.failed}
        assert failures == {
            "broken": "Download failed: HTTP response code: 500",
            "invalid": "Validation failed: Not a recognized package (missing META-INF/mods.toml)",
        }
        assert results.summary() == {"completed": 1, "failed": 2, "total": 3}

        # The old copy of the rejected artifact is untouched and nothing is left behind
        remaining = sorted(p.name for p in tmp_path.iterdir() if p.name != STATE_FILE_NAME)
        assert remaining == ["good-1.1.0.zip", "invalid-1.0.0.zip"]

        [record] = ledger.records()
        assert (record.artifact_id, record.old_version, record.new_version) == ("good", "1.0.0", "1.1.0")

    @pytest.mark.asyncio
    async def test_download_only_without_auto_install(self, tmp_path, installer, logger, ledger):
        validator = FakeValidator()
        pipeline = self._pipeline(SlowDownloader(tmp_path), installer, logger, validator=validator, auto_install=False)
        pipeline.enqueue(_artifact("demo"), _state("demo", None, "1.1.0"))

        results = await pipeline.run_all()

        assert results.success_count == 1
        assert (tmp_path / "demo-1.1.0.zip").exists()
        assert validator.validated == []
        assert ledger.records() == []
        assert not ledger.is_restart_required()

    def test_reusable_across_event_loops(self, tmp_path, installer, logger):
        pipeline = self._pipeline(SlowDownloader(tmp_path, delay=0.01), installer, logger, max_concurrent=1)
        for _ in range(2):
            for index in range(3):
                artifact_id = f"mod{index}"
                pipeline.enqueue(_artifact(artifact_id), _state(artifact_id, None, "1.0.0"))
            results = asyncio.run(pipeline.run_all())
            assert results.success_count == 3

    @pytest.mark.asyncio
    async def test_overlapping_runs_for_the_same_artifact(self, tmp_path, logger, ledger):
        install_dir = tmp_path / "mods"
        install_dir.mkdir()
        installer = ArtifactInstaller(LocalArtifactScanner(install_dir, logger), ledger, logger)
        fake = FakeGitHub(asset_delay=0.1)
        fake.add_release(
            "owner/demo", "v1.1.0", {"demo-1.1.0.zip": package_bytes(tmp_path / "build", "demo-1.1.0.zip")}
        )

        async with serve(fake) as (api_base, _), aiohttp.ClientSession() as session:
            url = f"{api_base}/assets/owner/demo/v1.1.0/demo-1.1.0.zip"
            pipeline = DownloadPipeline(
                ArtifactDownloader(session, install_dir, logger), ArtifactValidator(logger), installer, logger
            )
            pipeline.enqueue(_artifact("demo"), _state("demo", "1.0.0", "1.1.0", url=url))
            first = asyncio.ensure_future(pipeline.run_all())
            await asyncio.sleep(0.02)
            pipeline.enqueue(_artifact("demo"), _state("demo", "1.0.0", "1.1.0", url=url))
            second = asyncio.ensure_future(pipeline.run_all())
            results = await asyncio.gather(first, second)

        assert [(r.success_count, r.failed_count) for r in results] == [(1, 0), (1, 0)]
        assert fake.max_active_downloads == 1
        assert sorted(p.name for p in install_dir.iterdir()) == ["demo-1.1.0.zip"]
        assert len(ledger.records()) == 2

    @pytest.mark.asyncio
    async def test_run_with_nothing_queued(self, tmp_path, installer, logger):
        results = await self._pipeline(SlowDownloader(tmp_path), installer, logger).run_all()
        assert len(results) == 0
        assert not results.has_failures()


class TestArtifactDownloader:
    """Tests for the streaming downloader against a fake server."""

    @pytest.mark.asyncio
    async def test_streams_to_temp_file_then_finalizes(self, tmp_path):
        fake = FakeGitHub()
        body = os.urandom(300_000)
        fake.add_release("owner/demo", "v1.1.0", {"demo-1.1.0.zip": body})
        progress = []

        async with serve(fake) as (api_base, _), aiohttp.ClientSession() as session:
            downloader = ArtifactDownloader(session, tmp_path, quiet_logger(), chunk_size=64 * 1024)
            task = DownloadTask(
                _artifact("demo"), "1.1.0", f"{api_base}/assets/owner/demo/v1.1.0/demo-1.1.0.zip"
            )
            temp_path = await downloader.fetch(task, progress.append)

            assert temp_path.name == ".demo-update.tmp"
            assert not (tmp_path / "demo-1.1.0.zip").exists()

            final_path = downloader.finalize(task, temp_path)

        assert final_path.name == "demo-1.1.0.zip"
        assert final_path.read_bytes() == body
        assert not temp_path.exists()
        assert progress
        assert progress[-1].downloaded == progress[-1].total == len(body)
        assert progress[-1].percentage == 100

    @pytest.mark.asyncio
    async def test_http_error_raises_and_leaves_no_temp_file(self, tmp_path):
        fake = FakeGitHub()
        async with serve(fake) as (api_base, _), aiohttp.ClientSession() as session:
            downloader = ArtifactDownloader(session, tmp_path, quiet_logger())
            task = DownloadTask(_artifact("demo"), "1.1.0", f"{api_base}/assets/owner/demo/v1.1.0/missing.zip")
            with pytest.raises(TransportError) as excinfo:
                await downloader.fetch(task)

        assert excinfo.value.status == 404
        assert not downloader.temp_path(task).exists()

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self, tmp_path):
        fake = FakeGitHub(asset_delay=1.0)
        fake.add_release("owner/demo", "v1.1.0", {"demo-1.1.0.zip": b"x" * 2048})
        async with serve(fake) as (api_base, _), aiohttp.ClientSession() as session:
            downloader = ArtifactDownloader(session, tmp_path, quiet_logger(), timeout_seconds=0.2)
            task = DownloadTask(
                _artifact("demo"), "1.1.0", f"{api_base}/assets/owner/demo/v1.1.0/demo-1.1.0.zip"
            )
            with pytest.raises(TransportError, match="timed out"):
                await downloader.fetch(task)

    @pytest.mark.asyncio
    async def test_file_writes_run_off_the_event_loop(self, tmp_path, monkeypatch):
        fake = FakeGitHub()
        fake.add_release("owner/demo", "v1.1.0", {"demo-1.1.0.zip": os.urandom(200_000)})
        offloaded = []
        to_thread = asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(getattr(func, "__name__", repr(func)))
            return await to_thread(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

        async with serve(fake) as (api_base, _), aiohttp.ClientSession() as session:
            downloader = ArtifactDownloader(session, tmp_path, quiet_logger(), chunk_size=64 * 1024)
            task = DownloadTask(
                _artifact("demo"), "1.1.0", f"{api_base}/assets/owner/demo/v1.1.0/demo-1.1.0.zip"
            )
            temp_path = await downloader.fetch(task)

        assert temp_path.stat().st_size == 200_000
        assert {"open", "write", "close"} <= set(offloaded)
