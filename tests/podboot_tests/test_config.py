"""Tests for bootstrap configuration."""

from pathlib import Path

import pytest
import yaml

from podboot.config import (
    BASELINE_CUSTOM_NODES,
    Config,
    load_yaml_file,
    safe_bool,
    safe_int,
    split_urls,
)


class TestSafeParsers:
    """Tests for the tolerant value parsers."""

    @pytest.mark.parametrize("value", ["true", "YES", " 1 ", "on"])
    def test_safe_bool_true(self, value):
        assert safe_bool(value) is True

    @pytest.mark.parametrize("value", ["false", "No", "0", "off"])
    def test_safe_bool_false(self, value):
        assert safe_bool(value, default=True) is False

    def test_safe_bool_default(self):
        assert safe_bool(None) is False
        assert safe_bool("maybe", default=True) is True

    def test_safe_int(self):
        assert safe_int("4") == 4
        assert safe_int("four", default=1) == 1
        assert safe_int(None, default=2) == 2

    def test_split_urls(self):
        value = "https://a/x.git, https://b/y\nhttps://c/z"
        assert split_urls(value) == ["https://a/x.git", "https://b/y", "https://c/z"]

    def test_split_urls_empty(self):
        assert split_urls("") == []
        assert split_urls(None) == []


class TestLoadYamlFile:
    """Tests for the YAML overlay loader."""

    def test_missing_file(self, tmp_path):
        assert load_yaml_file(tmp_path / "absent.yaml") == {}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="expected a mapping"):
            load_yaml_file(path)

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("custom_nodes: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)


class TestConfigDefaults:
    """Tests for defaults and derived paths."""

    def test_paths(self, config):
        data_dir = config.workspace_dir / "runpod-slim"
        assert config.data_dir == data_dir
        assert config.comfyui_dir == data_dir / "ComfyUI"
        assert config.venv_dir == data_dir / "ComfyUI" / ".venv"
        assert config.custom_nodes_dir == data_dir / "ComfyUI" / "custom_nodes"
        assert config.args_file == data_dir / "comfyui_args.txt"
        assert config.comfyui_log == data_dir / "comfyui.log"
        assert config.filebrowser_db == data_dir / "filebrowser.db"

    def test_manager_is_first_baseline_node(self, config):
        assert config.custom_nodes[0] == "https://github.com/ltdrdata/ComfyUI-Manager.git"
        assert config.custom_nodes == list(BASELINE_CUSTOM_NODES)

    def test_defaults_from_environment(self, isolated_env):
        isolated_env.setenv("WORKSPACE_DIR", "/data")
        isolated_env.setenv("PUBLIC_KEY", "ssh-ed25519 AAAA me")
        isolated_env.setenv("JUPYTER_PASSWORD", "pw")
        isolated_env.setenv("EXTRA_CUSTOM_NODES", "https://x/one.git,https://x/two")
        isolated_env.setenv("PODBOOT_QUIET", "1")

        config = Config()

        assert config.workspace_dir == Path("/data")
        assert config.public_key == "ssh-ed25519 AAAA me"
        assert config.jupyter_password == "pw"
        assert config.extra_custom_nodes == ["https://x/one.git", "https://x/two"]
        assert config.quiet is True

    def test_empty_public_key_is_none(self, isolated_env):
        isolated_env.setenv("PUBLIC_KEY", "")
        assert Config().public_key is None

    def test_all_custom_nodes_deduplicated(self, config):
        config.extra_custom_nodes = [
            "https://github.com/kijai/ComfyUI-KJNodes",
            "https://x/new.git",
        ]

        nodes = config.all_custom_nodes

        assert nodes == [*BASELINE_CUSTOM_NODES, "https://x/new.git"]


class TestOverlay:
    """Tests for the YAML overlay."""

    def test_apply_overlay(self, config):
        config.apply_overlay(
            {
                "custom_nodes": ["https://x/extra.git"],
                "force_pins": ["numpy==2.0.0"],
                "extra_pins": [],
                "venv_python": "python3.11",
                "plugin_workers": 3,
                "app_port": 3000,
                "host_key_types": ["ed25519"],
            }
        )

        assert config.extra_custom_nodes == ["https://x/extra.git"]
        assert config.force_pins == ["numpy==2.0.0"]
        assert config.extra_pins == []
        assert config.venv_python == "python3.11"
        assert config.plugin_workers == 3
        assert config.app_port == 3000
        assert config.host_key_types == ("ed25519",)

    def test_plugin_workers_at_least_one(self, config):
        config.apply_overlay({"plugin_workers": 0})
        assert config.plugin_workers == 1

    def test_empty_overlay_changes_nothing(self, config):
        before = (list(config.force_pins), config.venv_python, config.app_port)
        config.apply_overlay({})
        assert (list(config.force_pins), config.venv_python, config.app_port) == before

    def test_load_reads_overlay(self, isolated_env, tmp_path):
        overlay = tmp_path / "podboot.yaml"
        overlay.write_text("custom_nodes:\n  - https://x/from-yaml.git\napp_port: 9000\n")
        isolated_env.setenv("PODBOOT_CONFIG", str(overlay))
        isolated_env.setenv("WORKSPACE_DIR", str(tmp_path))

        config = Config.load()

        assert "https://x/from-yaml.git" in config.all_custom_nodes
        assert config.app_port == 9000

    def test_overlay_defaults_to_volume(self, isolated_env, tmp_path):
        isolated_env.setenv("WORKSPACE_DIR", str(tmp_path))
        data_dir = tmp_path / "runpod-slim"
        data_dir.mkdir()
        (data_dir / "podboot.yaml").write_text("plugin_workers: 2\n")

        assert Config.load().plugin_workers == 2
