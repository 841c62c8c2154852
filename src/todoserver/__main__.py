"""
=============================================================================
TODOSERVER CLI ENTRY POINT
=============================================================================

    python -m todoserver                              # everything from env
    python -m todoserver --port 9000 --db-host db     # override a few
    python -m todoserver --create-schema              # create the table first
    python -m todoserver --db-driver sqlite --db-name ./todos.db --create-schema

Command-line flags win over environment variables, which win over the
dataclass defaults (see config.py).

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ServerConfig, DatabaseConfig, LOG_LEVELS, LOG_FORMATS
from .middleware import LoggingMiddleware
from .server import TodoServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todoserver",
        description="Todo list HTTP service backed by MySQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m todoserver                          # defaults / environment
  python -m todoserver --port 9000              # custom port
  python -m todoserver --cors-origin http://localhost:5173
  python -m todoserver --create-schema          # CREATE TABLE IF NOT EXISTS
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Bind address (env HTTP_HOST, default 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Listen port (env HTTP_PORT, default 8080)")
    parser.add_argument("--cors-origin", help="Access-Control-Allow-Origin (env CORS_ORIGIN, default *)")
    parser.add_argument(
        "--max-connections",
        type=int,
        help="Refuse connections beyond this many with 503 (default: unbounded)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # DATABASE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--db-host", help="Database host (env DB_HOST)")
    parser.add_argument("--db-port", type=int, help="Database port (env DB_PORT)")
    parser.add_argument("--db-name", help="Database name, or file path for SQLite (env DB_NAME)")
    parser.add_argument("--db-user", help="Database user (env DB_USER)")
    parser.add_argument("--db-password", help="Database password (env DB_PASSWORD)")
    parser.add_argument("--db-driver", help="SQLAlchemy driver (env DB_DRIVER, default mysql+pymysql)")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create the todos table at startup if it does not exist",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--log-level", "-l", choices=LOG_LEVELS, help="Logging level")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Access log format")
    parser.add_argument("--version", "-v", action="version", version=f"todoserver {__version__}")

    return parser


def _override(config, **values) -> None:
    for name, value in values.items():
        if value is not None:
            setattr(config, name, value)


def build_configs(args: argparse.Namespace):
    """Environment first, then whatever flags were given."""
    config = ServerConfig.from_env()
    _override(
        config,
        host=args.host,
        port=args.port,
        cors_origin=args.cors_origin,
        max_connections=args.max_connections,
        log_level=args.log_level,
        log_format=args.log_format,
    )

    db_config = DatabaseConfig.from_env()
    _override(
        db_config,
        host=args.db_host,
        port=args.db_port,
        name=args.db_name,
        user=args.db_user,
        password=args.db_password,
        driver=args.db_driver,
    )
    return config, db_config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config, db_config = build_configs(args)
        server = TodoServer(config, db_config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    server.use(LoggingMiddleware(log_format=config.log_format))

    try:
        server.run(create_schema=args.create_schema)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
