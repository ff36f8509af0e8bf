"""
Tests for the per-artifact update decision.
"""

from artifact_updater.artifact_models import VersionState
from artifact_updater.artifact_models.version_state import is_update_available


class TestIsUpdateAvailable:
    """Tests for is_update_available."""

    def test_newer_target(self):
        assert is_update_available("2.0.0", "1.0.0")

    def test_same_or_older_target(self):
        assert not is_update_available("1.0.0", "1.0.0")
        assert not is_update_available("1.0.0", "1.0")
        assert not is_update_available("1.5.0", "2.0.0")

    def test_nothing_installed(self):
        assert is_update_available("1.0.0", None)

    def test_no_target(self):
        assert not is_update_available(None, "1.0.0")
        assert not is_update_available(None, None)

    def test_unparseable_versions_fall_back_to_string_equality(self):
        assert is_update_available("nightly-2", "nightly-1")
        assert not is_update_available("nightly", "nightly")
        assert is_update_available("1.0.0", "custom-build")


class TestVersionState:
    """Tests for VersionState."""

    def test_remote_update(self):
        state = VersionState("demo")
        state.set_local_version("1.0.0")
        state.set_remote_version("2.0.0", "https://example.invalid/demo-2.0.0.zip")

        assert state.target_version == "2.0.0"
        assert state.update_available
        assert state.download_url == "https://example.invalid/demo-2.0.0.zip"

    def test_authority_overrides_remote_even_downward(self):
        state = VersionState("demo")
        state.set_local_version("2.0.0")
        state.set_remote_version("2.1.0", "https://example.invalid/demo-2.1.0.zip")
        state.set_authority_version("1.5.0", required=False)

        assert state.target_version == "1.5.0"
        assert not state.update_available
        assert not state.required

    def test_required_authority_version(self):
        state = VersionState("demo")
        state.set_local_version("1.0.0")
        state.set_authority_version("1.5.0", required=True)

        assert state.required
        assert state.update_available
        # Asset for the mandated version is not known yet
        assert state.download_url is None

        state.add_download_url("1.5.0", "https://example.invalid/demo-1.5.0.zip")
        assert state.download_url == "https://example.invalid/demo-1.5.0.zip"

    def test_flag_follows_every_mutation(self):
        state = VersionState("demo")
        assert not state.update_available

        state.set_remote_version("1.1.0")
        assert state.update_available

        state.set_local_version("1.1.0")
        assert not state.update_available

        state.set_authority_version("1.2.0")
        assert state.update_available

        state.set_authority_version(None)
        assert state.target_version == "1.1.0"
        assert not state.update_available

    def test_clearing_authority_clears_required(self):
        state = VersionState("demo")
        state.set_authority_version("1.0.0", required=True)
        state.set_authority_version(None, required=True)
        assert not state.required
