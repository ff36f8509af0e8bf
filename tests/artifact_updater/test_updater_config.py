"""
Tests for configuration loading, validation and the artifact registry.
"""

import json
import pathlib

import pytest

from artifact_updater.artifact_config import (
    ArtifactRegistry,
    validate_artifact_payload,
    validate_config,
    validate_config_source,
)
from artifact_updater.artifact_models import ManagedArtifact, UpdateChannel
from artifact_updater.updater_config import (
    AuthorityConfigPayload,
    AuthorityVersionsPayload,
    ConfigSource,
    UpdaterConfig,
)
from tests.test_utils import quiet_logger

DEMO = {"artifactId": "demo", "sourceRepo": "owner/demo", "filenameTemplate": "demo-{version}.jar"}


class TestManagedArtifact:
    """Tests for the managed artifact model."""

    def test_accepts_snake_and_camel_case(self):
        camel = ManagedArtifact.model_validate(DEMO)
        snake = ManagedArtifact(
            artifact_id="demo", source_repo="owner/demo", filename_template="demo-{version}.jar"
        )
        assert camel == snake
        assert camel.enabled
        assert camel.update_channel == UpdateChannel.STABLE

    def test_empty_min_version_means_no_floor(self):
        assert ManagedArtifact.model_validate({**DEMO, "minVersion": ""}).min_version is None

    def test_channel_aliases(self):
        assert ManagedArtifact.model_validate({**DEMO, "updateChannel": "latest"}).update_channel == "stable"
        assert ManagedArtifact.model_validate({**DEMO, "updateChannel": "PreRelease"}).include_prerelease

    @pytest.mark.parametrize(
        "override",
        [
            {"artifactId": " "},
            {"sourceRepo": ""},
            {"filenameTemplate": "demo.jar"},
            {"filenameTemplate": "demo-{version}-{version}.jar"},
            {"updateChannel": "nightly"},
        ],
    )
    def test_rejects_invalid_fields(self, override):
        with pytest.raises(ValueError):
            ManagedArtifact.model_validate({**DEMO, **override})

    def test_is_frozen(self):
        artifact = ManagedArtifact.model_validate(DEMO)
        with pytest.raises(ValueError):
            artifact.enabled = False

    def test_wire_format(self):
        wire = ManagedArtifact.model_validate(DEMO).to_wire()
        assert wire["artifactId"] == "demo"
        assert wire["filenameTemplate"] == "demo-{version}.jar"
        assert wire["updateChannel"] == "stable"


class TestUpdaterConfig:
    """Tests for loading UpdaterConfig."""

    def test_missing_file_gives_minimal_config(self, tmp_path):
        config = UpdaterConfig.load(tmp_path / "missing.json", quiet_logger())
        assert config.managed_artifacts == []
        assert config.download_timeout_seconds == 30
        assert config.max_concurrent_downloads == 3

    def test_malformed_file_gives_minimal_config(self, tmp_path):
        path = tmp_path / "updater.json"
        path.write_text("{ this is not json")
        assert UpdaterConfig.load(path, quiet_logger()) == UpdaterConfig.minimal()

    def test_non_object_file_gives_minimal_config(self, tmp_path):
        path = tmp_path / "updater.json"
        path.write_text("[1, 2, 3]")
        assert UpdaterConfig.load(path, quiet_logger()).managed_artifacts == []

    def test_json_with_invalid_artifacts_dropped(self, tmp_path):
        path = tmp_path / "updater.json"
        path.write_text(
            json.dumps(
                {
                    "autoInstall": False,
                    "downloadTimeoutSeconds": 120,
                    "managedArtifacts": [DEMO, {"artifactId": "broken"}],
                }
            )
        )
        config = UpdaterConfig.load(path, quiet_logger())

        assert not config.auto_install
        assert config.download_timeout_seconds == 120
        assert [a.artifact_id for a in config.managed_artifacts] == ["demo"]

    def test_toml_with_updater_table(self, tmp_path):
        path = tmp_path / "updater.toml"
        path.write_text(
            "[updater]\n"
            "install_dir = \"plugins\"\n"
            "trusted_signers = [\"CN=updater\"]\n"
            "require_signature = true\n"
            "\n"
            "[[updater.managed_artifacts]]\n"
            "artifact_id = \"demo\"\n"
            "source_repo = \"owner/demo\"\n"
            "filename_template = \"demo-{version}.jar\"\n"
            "min_version = \"1.0.0\"\n"
            "\n"
            "[updater.config_source]\n"
            "repo = \"owner/config\"\n"
            "path = \"updater.json\"\n"
        )
        config = UpdaterConfig.load(path, quiet_logger())

        assert config.install_dir == pathlib.Path("plugins")
        assert config.trusted_signers == ["CN=updater"]
        assert config.require_signature
        assert config.managed_artifacts[0].min_version == "1.0.0"
        assert config.config_source.effective_branch == "main"

    def test_save_round_trips(self, tmp_path):
        config = UpdaterConfig.from_dict({"managedArtifacts": [DEMO], "verboseLogging": True}, quiet_logger())
        path = tmp_path / "saved" / "updater.json"
        config.save(path)

        loaded = UpdaterConfig.load(path, quiet_logger())
        assert loaded.verbose_logging
        assert loaded.managed_artifacts == config.managed_artifacts

    def test_apply_authority_config_replaces_artifacts_and_settings(self):
        local = UpdaterConfig(install_dir=pathlib.Path("mods"), trusted_signers=["CN=updater"])
        payload = AuthorityConfigPayload.model_validate(
            {
                "managedArtifacts": [DEMO, {"artifactId": "", "sourceRepo": "x/y"}],
                "autoDownload": False,
                "autoInstall": False,
                "checkIntervalMinutes": 15,
                "downloadTimeoutSeconds": 90,
            }
        )

        applied = local.apply_authority_config(payload, quiet_logger())

        assert [a.artifact_id for a in applied.managed_artifacts] == ["demo"]
        assert not applied.auto_download
        assert not applied.auto_install
        assert applied.check_interval_minutes == 15
        assert applied.download_timeout_seconds == 90
        assert applied.authority_provided
        assert applied.trusted_signers == ["CN=updater"]
        assert not local.authority_provided

    def test_authority_payload_from_config(self):
        config = UpdaterConfig.from_dict({"managedArtifacts": [DEMO], "autoInstall": False}, quiet_logger())
        wire = AuthorityConfigPayload.from_config(config).to_wire()
        assert wire["autoInstall"] is False
        assert wire["managedArtifacts"][0]["sourceRepo"] == "owner/demo"


class TestAuthorityVersionsPayload:
    """Tests for mandated version payloads."""

    def test_full_and_bare_entries(self):
        payload = AuthorityVersionsPayload.from_mapping(
            {"demo": {"version": "1.5.0", "required": True}, "other": "2.0.0"}
        )
        assert payload.versions["demo"].required
        assert payload.versions["other"].version == "2.0.0"
        assert not payload.versions["other"].required

    def test_wrapped_mapping(self):
        payload = AuthorityVersionsPayload.from_mapping({"versions": {"demo": "1.0.0"}})
        assert payload.to_wire() == {"versions": {"demo": {"version": "1.0.0", "required": False}}}


class TestConfigValidation:
    """Tests for validate_config and friends."""

    def test_valid_config(self):
        config = UpdaterConfig.from_dict({"managedArtifacts": [DEMO]}, quiet_logger())
        result = validate_config(config)
        assert result.is_valid()
        assert not result.has_warnings()

    def test_duplicate_ids_and_bad_repo(self):
        config = UpdaterConfig.from_dict(
            {"managedArtifacts": [DEMO, {**DEMO, "sourceRepo": "not a repo"}]}, quiet_logger()
        )
        result = validate_config(config)
        assert any("Duplicate artifact id" in error for error in result.errors)
        assert any("invalid source_repo format" in error for error in result.errors)

    def test_warnings(self):
        config = UpdaterConfig.from_dict(
            {
                "downloadTimeoutSeconds": 5,
                "periodicCheckEnabled": True,
                "checkIntervalMinutes": 1,
                "managedArtifacts": [{**DEMO, "filenameTemplate": "demo-{version}.exe", "enabled": False}],
            },
            quiet_logger(),
        )
        result = validate_config(config)
        assert result.is_valid()
        assert len(result.warnings) == 4

    def test_empty_enabled_config_warns(self):
        assert validate_config(UpdaterConfig.minimal()).has_warnings()

    def test_required_signature_without_signers(self):
        result = validate_config(UpdaterConfig(require_signature=True))
        assert not result.is_valid()

    def test_artifact_payload(self):
        assert validate_artifact_payload(DEMO).is_valid()
        assert not validate_artifact_payload({"sourceRepo": "owner/demo"}).is_valid()
        assert not validate_artifact_payload({**DEMO, "filenameTemplate": "demo.jar"}).is_valid()
        assert validate_artifact_payload({**DEMO, "updateChannel": "nightly"}).has_warnings()

    def test_config_source(self):
        assert validate_config_source(ConfigSource(repo="owner/config", path="updater.json", branch="main")).is_valid()
        assert not validate_config_source(ConfigSource(type="gitlab", repo="owner/config", path="x")).is_valid()
        assert not validate_config_source(ConfigSource(repo="owner/config")).is_valid()
        assert validate_config_source(ConfigSource(repo="owner/config", path="x")).has_warnings()
        assert not validate_config_source(None).is_valid()


class TestArtifactRegistry:
    """Tests for ArtifactRegistry."""

    @pytest.fixture
    def registry(self):
        config = UpdaterConfig.from_dict(
            {"managedArtifacts": [DEMO, {**DEMO, "artifactId": "off", "enabled": False}]}, quiet_logger()
        )
        return ArtifactRegistry(quiet_logger(), config)

    def test_loads_from_config(self, registry):
        assert len(registry) == 2
        assert registry.is_registered("demo")
        assert [a.artifact_id for a in registry.enabled_artifacts()] == ["demo"]

    def test_register_from_payload(self, registry):
        assert registry.register_from_payload(
            {"artifact_id": "extra", "source_repo": "owner/extra", "filename_template": "extra-{version}.jar"}
        )
        assert registry.get("extra").source_repo == "owner/extra"

    @pytest.mark.parametrize(
        "payload",
        [
            "extra",
            {"artifact_id": "extra"},
            {"artifact_id": "extra", "source_repo": "owner/extra", "filename_template": "extra.jar"},
            {"artifact_id": "extra", "source_repo": "owner/extra", "filename_template": "e-{version}.jar", "update_channel": "nightly"},
        ],
    )
    def test_rejects_invalid_payloads(self, registry, payload):
        assert not registry.register_from_payload(payload)
        assert not registry.is_registered("extra")

    def test_reload_and_clear(self, registry):
        registry.reload(UpdaterConfig.minimal())
        assert len(registry) == 0

        registry.register(ManagedArtifact.model_validate(DEMO))
        assert registry.all_artifacts()[0].artifact_id == "demo"

        registry.clear()
        assert registry.get("demo") is None
