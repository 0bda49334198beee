"""配置测试

测试配置类默认值、环境变量覆盖和 YAML 加载
"""

import pytest
from pydantic import ValidationError

from ysort.config import (
    AppSettings,
    ConfigLoader,
    DatabaseSettings,
    LoggingSettings,
    SortableSettings,
    load_yaml_config,
)


class TestSortableSettings:
    """排序配置测试"""

    def test_defaults(self):
        settings = SortableSettings()
        assert settings.ordered_update_dialects == ["mysql", "mariadb"]
        assert settings.bulk_update_max_nesting_level == 2
        assert settings.close_gap_on_delete is True
        assert settings.log_moves is True

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("YSORT_SORTABLE_CLOSE_GAP_ON_DELETE", "false")
        monkeypatch.setenv("YSORT_SORTABLE_ORDERED_UPDATE_DIALECTS", '["mysql"]')
        monkeypatch.setenv("YSORT_SORTABLE_BULK_UPDATE_MAX_NESTING_LEVEL", "3")

        settings = SortableSettings()
        assert settings.close_gap_on_delete is False
        assert settings.ordered_update_dialects == ["mysql"]
        assert settings.bulk_update_max_nesting_level == 3

    def test_nesting_level_must_be_positive(self):
        with pytest.raises(ValidationError):
            SortableSettings(bulk_update_max_nesting_level=0)


class TestOtherSettings:
    """数据库与日志配置测试"""

    def test_database_defaults(self):
        settings = DatabaseSettings()
        assert settings.url == ""
        assert settings.pool_size == 5
        assert settings.pool_pre_ping is True

    def test_database_env(self, monkeypatch):
        monkeypatch.setenv("YSORT_DB_URL", "sqlite:///:memory:")
        assert DatabaseSettings().url == "sqlite:///:memory:"

    def test_logging_defaults(self):
        settings = LoggingSettings()
        assert settings.level == "INFO"
        assert settings.file_path == ""
        assert settings.enable_console is True

    def test_app_settings_nesting(self):
        settings = AppSettings()
        assert isinstance(settings.database, DatabaseSettings)
        assert isinstance(settings.logging, LoggingSettings)
        assert isinstance(settings.sortable, SortableSettings)


class TestConfigLoader:
    """ConfigLoader 测试"""

    def test_load_yaml(self, sample_yaml_config):
        config = ConfigLoader.load(sample_yaml_config, use_cache=False)
        assert config["database"]["url"] == "sqlite:///test.db"
        assert config["sortable"]["ordered_update_dialects"] == ["mysql"]

    def test_cache(self, sample_yaml_config):
        ConfigLoader.clear_cache()
        first = ConfigLoader.load(sample_yaml_config)
        second = ConfigLoader.load(sample_yaml_config)

        assert first is second
        assert ConfigLoader.is_cached(sample_yaml_config)

        ConfigLoader.clear_cache()
        assert not ConfigLoader.is_cached(sample_yaml_config)

    def test_reload_picks_up_changes(self, temp_file):
        path = temp_file("reload.yaml", "sortable:\n  log_moves: true\n")
        assert ConfigLoader.load(path)["sortable"]["log_moves"] is True

        with open(path, "w", encoding="utf-8") as f:
            f.write("sortable:\n  log_moves: false\n")

        assert ConfigLoader.load(path)["sortable"]["log_moves"] is True
        assert ConfigLoader.reload(path)["sortable"]["log_moves"] is False

    def test_empty_file(self, temp_file):
        path = temp_file("empty.yaml", "")
        assert ConfigLoader.load(path, use_cache=False) == {}

    def test_relative_path_with_base_dir(self, temp_dir, sample_yaml_config):
        config = ConfigLoader.load("config/settings.yaml", base_dir=temp_dir, use_cache=False)
        assert config["logging"]["level"] == "DEBUG"

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load("missing.yaml", base_dir=temp_dir)


class TestLoadYamlConfig:
    """load_yaml_config 测试"""

    def test_build_app_settings(self, sample_yaml_config):
        settings = load_yaml_config(sample_yaml_config, AppSettings)

        assert settings.database.url == "sqlite:///test.db"
        assert settings.logging.level == "DEBUG"
        assert settings.sortable.ordered_update_dialects == ["mysql"]
        assert settings.sortable.bulk_update_max_nesting_level == 3
        assert settings.sortable.close_gap_on_delete is False

    def test_overrides_do_not_touch_cache(self, sample_yaml_config):
        ConfigLoader.clear_cache()
        settings = load_yaml_config(
            sample_yaml_config, AppSettings, sortable={"close_gap_on_delete": True}
        )
        assert settings.sortable.close_gap_on_delete is True
        # 覆盖整个子配置，未给出的字段取默认值
        assert settings.sortable.ordered_update_dialects == ["mysql", "mariadb"]

        cached = ConfigLoader.load(sample_yaml_config)
        assert cached["sortable"]["close_gap_on_delete"] is False

    def test_section_into_sub_settings(self, sample_yaml_config):
        config = ConfigLoader.load(sample_yaml_config, use_cache=False)
        settings = SortableSettings(**config["sortable"])
        assert settings.bulk_update_max_nesting_level == 3

    def test_section_argument(self, sample_yaml_config):
        settings = load_yaml_config(
            sample_yaml_config, SortableSettings, section="sortable", log_moves=False
        )
        assert settings.ordered_update_dialects == ["mysql"]
        assert settings.log_moves is False

    def test_missing_section_uses_defaults(self, sample_yaml_config):
        settings = load_yaml_config(sample_yaml_config, SortableSettings, section="absent")
        assert settings.close_gap_on_delete is True
