#!/usr/bin/env python3
"""Create the orders and order_executions tables in the configured PostgreSQL database.

Uses the same connection settings and DDL as PostgreSQLOrderStore. Run from project root.

Usage:
  python scripts/init_db.py [--config PATH]
  --config   Config file (default: SWAP_ENGINE_CONFIG, then config/config.yaml, then the example)
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))
os.chdir(_PROJECT_ROOT)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create swap engine tables in PostgreSQL.")
    parser.add_argument("--config", default=None, help="Config path")
    args = parser.parse_args()
    config_path = args.config
    if config_path and not os.path.isabs(config_path):
        config_path = str(_PROJECT_ROOT / config_path)

    try:
        import psycopg2
        from swap_engine.config.settings import get_store_config, read_config
        from swap_engine.store.postgres_store import _ensure_tables, _get_conn_params
    except ImportError as e:
        print(f"Missing dependency: {e}", file=sys.stderr)
        print("  Install with: pip install -e .", file=sys.stderr)
        return 1

    config, resolved = read_config(config_path)
    params = _get_conn_params(get_store_config(config))
    params.setdefault("connect_timeout", 10)

    try:
        conn = psycopg2.connect(**params)
    except psycopg2.Error as e:
        print(f"PostgreSQL connect failed: {e}", file=sys.stderr)
        return 1

    try:
        _ensure_tables(conn)
        print(f"Created/verified tables orders, order_executions (config {resolved})")
        return 0
    except psycopg2.Error as e:
        print(f"Schema creation failed: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
