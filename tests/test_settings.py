"""
ProvisionSettings resolution tests.
"""

from pathlib import Path

import pytest

from xiaozhi_setup.settings import ProvisionSettings, load_settings_file


class TestDefaults:
    def test_default_values(self, tmp_path):
        settings = ProvisionSettings.from_sources(env={"DOCKER_SUDO": "0"}, cwd=tmp_path)

        assert settings.base_dir == Path("/main/xiaozhi-server")
        assert settings.data_dir == Path("/main/xiaozhi-server/data")
        assert settings.model_path == Path("/main/xiaozhi-server/models/SenseVoiceSmall/model.pt")
        assert settings.config_file == Path("/main/xiaozhi-server/data/.config.yaml")
        assert settings.image_name == "xiaozhi-esp32-server:server-base"
        assert settings.dockerfile == "./Dockerfile-server-base.jetson"
        assert settings.compose_file == tmp_path / "main/xiaozhi-server/docker-compose_arm.yml"
        assert settings.builder_name == "jetsonbuilder"
        assert settings.pip_index_url == ""
        assert settings.pip_trusted_host == "mirrors.aliyun.com"
        assert settings.no_cache is False
        assert settings.use_sudo is False
        assert settings.build_context == tmp_path


class TestEnvironment:
    def test_environment_overrides_defaults(self, tmp_path):
        env = {
            "BASE_DIR": "/srv/xz",
            "IMAGE_NAME": "xz:test",
            "DOCKERFILE_BASE": "Dockerfile.alt",
            "COMPOSE_FILE": "/srv/compose.yml",
            "PIP_INDEX_URL": "https://mirror.example/simple/",
            "PIP_TRUSTED_HOST": "mirror.example",
            "BUILDER_NAME": "b1",
            "DOCKER_SUDO": "0",
        }
        settings = ProvisionSettings.from_sources(env=env, cwd=tmp_path)

        assert settings.model_dir == Path("/srv/xz/models/SenseVoiceSmall")
        assert settings.image_name == "xz:test"
        assert settings.dockerfile == "Dockerfile.alt"
        assert settings.compose_file == Path("/srv/compose.yml")
        assert settings.pip_index_url == "https://mirror.example/simple/"
        assert settings.pip_trusted_host == "mirror.example"
        assert settings.builder_name == "b1"

    @pytest.mark.parametrize("raw,expected", [("1", True), ("0", False), ("true", False), ("", False)])
    def test_no_cache_only_accepts_one(self, tmp_path, raw, expected):
        settings = ProvisionSettings.from_sources(env={"NO_CACHE": raw, "DOCKER_SUDO": "0"}, cwd=tmp_path)

        assert settings.no_cache is expected

    def test_empty_values_fall_back_to_defaults(self, tmp_path):
        settings = ProvisionSettings.from_sources(env={"IMAGE_NAME": "", "DOCKER_SUDO": "0"}, cwd=tmp_path)

        assert settings.image_name == "xiaozhi-esp32-server:server-base"

    def test_docker_sudo_flag(self, tmp_path):
        settings = ProvisionSettings.from_sources(env={"DOCKER_SUDO": "yes"}, cwd=tmp_path)

        assert settings.use_sudo is True


class TestPrecedence:
    def test_overrides_beat_environment(self, tmp_path):
        settings = ProvisionSettings.from_sources(
            env={"IMAGE_NAME": "from-env", "DOCKER_SUDO": "0"},
            cwd=tmp_path,
            overrides={"image_name": "from-cli", "builder_name": None},
        )

        assert settings.image_name == "from-cli"
        assert settings.builder_name == "jetsonbuilder"

    def test_environment_beats_settings_file(self, tmp_path):
        settings_file = tmp_path / "setup.toml"
        settings_file.write_text(
            'image_name = "from-file"\nbuilder_name = "file-builder"\nno_cache = true\n',
            encoding="utf-8",
        )

        settings = ProvisionSettings.from_sources(
            env={"IMAGE_NAME": "from-env", "DOCKER_SUDO": "0"},
            cwd=tmp_path,
            settings_file=settings_file,
        )

        assert settings.image_name == "from-env"
        assert settings.builder_name == "file-builder"
        assert settings.no_cache is True

    def test_derived_paths_follow_final_base_dir(self, tmp_path):
        settings = ProvisionSettings.from_sources(
            env={"BASE_DIR": "/from/env", "DOCKER_SUDO": "0"},
            cwd=tmp_path,
            overrides={"base_dir": tmp_path / "cli"},
        )

        assert settings.config_file == tmp_path / "cli" / "data" / ".config.yaml"


class TestSettingsFile:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings_file(tmp_path / "nope.toml")

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "setup.toml"
        path.write_text('imagename = "typo"\n', encoding="utf-8")

        with pytest.raises(ValueError, match="imagename"):
            load_settings_file(path)

    def test_syntax_error(self, tmp_path):
        path = tmp_path / "setup.toml"
        path.write_text("image_name = \n", encoding="utf-8")

        with pytest.raises(ValueError, match="TOML syntax error"):
            load_settings_file(path)

    def test_bool_type_checked(self, tmp_path):
        path = tmp_path / "setup.toml"
        path.write_text('no_cache = "1"\n', encoding="utf-8")

        with pytest.raises(ValueError, match="no_cache"):
            load_settings_file(path)


def test_to_dict_includes_derived_paths(settings):
    data = settings.to_dict()

    assert data["model_path"].endswith("models/SenseVoiceSmall/model.pt")
    assert data["config_file"].endswith("data/.config.yaml")
    assert isinstance(data["base_dir"], str)


class TestSettingsFileTypes:
    @pytest.mark.parametrize("line,key", [
        ("base_dir = 5\n", "base_dir"),
        ("image_name = 1\n", "image_name"),
        ("compose_file = [\"a\"]\n", "compose_file"),
        ("builder_name = true\n", "builder_name"),
    ])
    def test_non_string_values_rejected(self, tmp_path, line, key):
        path = tmp_path / "setup.toml"
        path.write_text(line, encoding="utf-8")

        with pytest.raises(ValueError, match=f"'{key}'.*must be a string"):
            load_settings_file(path)

    def test_string_values_accepted(self, tmp_path):
        path = tmp_path / "setup.toml"
        path.write_text('base_dir = "/srv/xz"\nimage_name = "xz:1"\n', encoding="utf-8")

        assert load_settings_file(path) == {"base_dir": "/srv/xz", "image_name": "xz:1"}
