"""
Unit tests for configuration and the command line.
"""

import pytest

from todoserver.__main__ import build_configs, build_parser, main
from todoserver import create_app
from todoserver.config import SUPPORTED_DIALECTS, DatabaseConfig, ServerConfig
from todoserver.db.statements import schema_for, statements_for


class TestServerConfig:

    def test_defaults(self):
        config = ServerConfig()
        config.validate()

        assert config.port == 8080
        assert config.cors_origin == "*"
        assert config.max_connections is None

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("HTTP_PORT", "9000")
        monkeypatch.setenv("HTTP_MAX_CONNECTIONS", "4")
        monkeypatch.setenv("CORS_ORIGIN", "http://localhost:5173")
        monkeypatch.setenv("HTTP_IDLE_TIMEOUT", "2.5")

        config = ServerConfig.from_env()

        assert config.port == 9000
        assert config.max_connections == 4
        assert config.cors_origin == "http://localhost:5173"
        assert config.idle_timeout == 2.5

    def test_empty_max_connections_is_unbounded(self, monkeypatch):
        monkeypatch.setenv("HTTP_MAX_CONNECTIONS", "")
        assert ServerConfig.from_env().max_connections is None

    def test_port_zero_is_allowed(self):
        ServerConfig(port=0).validate()

    @pytest.mark.parametrize("kwargs", [
        {"port": 70000},
        {"idle_timeout": 0},
        {"max_connections": 0},
        {"cors_origin": ""},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            ServerConfig(**kwargs).validate()


class TestDatabaseConfig:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("DB_PORT", "3307")
        monkeypatch.setenv("DB_PASSWORD", "s3cret")

        config = DatabaseConfig.from_env()

        assert config.host == "db.internal"
        assert config.port == 3307
        assert config.password == "s3cret"
        assert config.driver == "mysql+pymysql"
        assert config.is_sqlite is False

    def test_repr_hides_password(self):
        assert "s3cret" not in repr(DatabaseConfig(password="s3cret"))

    def test_sqlite_driver(self):
        assert DatabaseConfig(driver="sqlite").is_sqlite
        assert DatabaseConfig(driver="sqlite+pysqlite").is_sqlite

    @pytest.mark.parametrize("kwargs", [
        {"port": 0},
        {"host": ""},
        {"name": ""},
        {"driver": "postgresql"},
        {"driver": "postgresql+psycopg2"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            DatabaseConfig(**kwargs).validate()

    @pytest.mark.parametrize("driver", ["mysql+pymysql", "mariadb+pymysql", "sqlite", "sqlite+pysqlite"])
    def test_supported_drivers(self, driver):
        DatabaseConfig(driver=driver).validate()

    def test_every_supported_dialect_has_statements(self):
        for dialect in SUPPORTED_DIALECTS:
            assert statements_for(dialect)
            assert schema_for(dialect)


class TestCommandLine:

    def test_flags_override_env(self, monkeypatch):
        monkeypatch.setenv("HTTP_PORT", "9000")
        monkeypatch.setenv("DB_HOST", "from-env")

        args = build_parser().parse_args(["--db-host", "from-flag", "--cors-origin", "https://x.example"])
        config, db_config = build_configs(args)

        assert config.port == 9000
        assert config.cors_origin == "https://x.example"
        assert db_config.host == "from-flag"

    def test_bad_config_exits_2(self, capsys):
        assert main(["--port", "70000"]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_unsupported_driver_exits_2(self, capsys):
        assert main(["--db-driver", "postgresql"]) == 2
        assert "Unsupported database driver" in capsys.readouterr().err


def test_create_app_uses_environment(monkeypatch):
    monkeypatch.setenv("CORS_ORIGIN", "https://todo.example")
    monkeypatch.setenv("DB_NAME", "todo_test")

    app = create_app()

    assert app.api.cors_origin == "https://todo.example"
    assert app.db.config.name == "todo_test"
    assert app.db.is_connected is False
    assert "GET     /api/todos" in app.router.describe()
