"""
Tests for stock_config: YAML loading, validation and the DATABASE_URL override.
"""

import pytest
import yaml

from stock_config import DATABASE_URL_ENV, DEFAULT_CONFIG_PATH, get_active_config
from stock_config.loader import parse_config
from stock_config.schema import StockLedgerConfig
from stock_kernel.domain.values import OutOfStockPolicy
from stock_kernel.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _no_env_url(monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


@pytest.fixture
def write_config(tmp_path):
    def _write(data) -> str:
        path = tmp_path / "stock.yaml"
        path.write_text(yaml.safe_dump(data))
        return str(path)

    return _write


class TestDefaultConfig:
    def test_shipped_file_loads(self):
        config = get_active_config()
        assert config.database.url.startswith("postgresql://")
        assert config.aggregation.enabled is True
        assert config.stock_policy.out_of_stock_policy == OutOfStockPolicy.AT_OR_BELOW_ZERO
        assert config.logging.level == "INFO"

    def test_shipped_file_path(self):
        assert DEFAULT_CONFIG_PATH.name == "default.yaml"
        assert DEFAULT_CONFIG_PATH.exists()

    def test_empty_document_gives_defaults(self):
        assert parse_config({}) == StockLedgerConfig()


class TestLoading:
    def test_values_parsed(self, write_config):
        path = write_config({
            "database": {"url": "sqlite:///stock.db", "echo": True},
            "aggregation": {"enabled": False, "lookback_days": 3},
            "stock_policy": {"out_of_stock_policy": "below_zero"},
            "scheduler": {"interval_seconds": 30},
            "logging": {"level": "debug"},
        })
        config = get_active_config(path)
        assert config.database.url == "sqlite:///stock.db"
        assert config.database.echo is True
        assert config.aggregation.enabled is False
        assert config.aggregation.lookback_days == 3
        assert config.stock_policy.out_of_stock_policy == OutOfStockPolicy.BELOW_ZERO
        assert config.scheduler.interval_seconds == 30
        assert config.logging.level == "DEBUG"

    def test_env_overrides_database_url(self, write_config, monkeypatch):
        path = write_config({"database": {"url": "sqlite:///file.db"}})
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///from-env.db")
        assert get_active_config(path).database.url == "sqlite:///from-env.db"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path)

    def test_load_is_logged(self, write_config, captured_logs):
        get_active_config(write_config({}))
        (record,) = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert record["database_url_from_env"] is False


class TestValidation:
    @pytest.mark.parametrize(
        "data, key",
        [
            ({"reporting": {}}, "reporting"),
            ({"database": {"host": "x"}}, "database.host"),
            ({"database": {"url": ""}}, "database.url"),
            ({"database": {"pool_size": 0}}, "database.pool_size"),
            ({"aggregation": {"enabled": "yes"}}, "aggregation.enabled"),
            ({"aggregation": {"lookback_days": True}}, "aggregation.lookback_days"),
            ({"stock_policy": {"out_of_stock_policy": "never"}}, "stock_policy.out_of_stock_policy"),
            ({"scheduler": {"interval_seconds": "60"}}, "scheduler.interval_seconds"),
            ({"logging": {"level": "chatty"}}, "logging.level"),
            ({"logging": ["INFO"]}, "logging"),
        ],
    )
    def test_rejected(self, data, key):
        with pytest.raises(ConfigurationError) as exc:
            parse_config(data)
        assert exc.value.key == key
        assert exc.value.code == "CONFIGURATION_ERROR"
