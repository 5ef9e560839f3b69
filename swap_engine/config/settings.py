"""Unified config: queue, venues, routing, orders, store, server.

Defaults: loaded from config/config.yaml.example (single source of truth, no code-level defaults).
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Lazy-loaded example config (single source of truth for defaults)
_EXAMPLE_CONFIG: Optional[Dict[str, Any]] = None


def _load_example_config() -> Dict[str, Any]:
    """Load config.yaml.example as defaults. No code-level defaults."""
    global _EXAMPLE_CONFIG
    if _EXAMPLE_CONFIG is None:
        path = _PROJECT_ROOT / "config" / "config.yaml.example"
        with open(path, encoding="utf-8") as f:
            _EXAMPLE_CONFIG = yaml.safe_load(f) or {}
    return _EXAMPLE_CONFIG


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into base. Override values take precedence."""
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _merged_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Merge config with example so missing keys come from config file."""
    return _deep_merge(_load_example_config(), cfg)


def read_config(config_path: Optional[str] = None) -> tuple[dict, str]:
    """Load YAML config. Resolution: argument, SWAP_ENGINE_CONFIG, config/config.yaml, then the example.
    Returns (config, resolved_path)."""
    config_path = config_path or os.environ.get("SWAP_ENGINE_CONFIG") or str(_PROJECT_ROOT / "config" / "config.yaml")
    if not Path(config_path).exists():
        config_path = str(_PROJECT_ROOT / "config" / "config.yaml.example")
    config_path = str(Path(config_path).resolve())
    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    return config, config_path


def get_queue_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return flat job queue config: name, concurrency, attempts, backoff_type, backoff_delay_sec."""
    merged = _merged_config(config or {})
    q = merged.get("queue") or {}
    backoff = q.get("backoff") or {}
    return {
        "name": q.get("name"),
        "concurrency": int(q.get("concurrency")),
        "attempts": int(q.get("attempts")),
        "backoff_type": backoff.get("type"),
        "backoff_delay_sec": float(backoff.get("delay_sec")),
    }


def get_venue_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    """Return per-venue config keyed by venue id, disabled venues omitted."""
    merged = _merged_config(config or {})
    out: Dict[str, Dict[str, Any]] = {}
    for name, cfg in (merged.get("venues") or {}).items():
        cfg = cfg or {}
        if not cfg.get("enabled", True):
            continue
        latency = cfg.get("swap_latency_sec")
        if isinstance(latency, (int, float)):
            latency = [float(latency), float(latency)]
        out[str(name).lower()] = {
            "quote_latency_sec": float(cfg.get("quote_latency_sec", 0.0)),
            "swap_latency_sec": tuple(float(x) for x in (latency or [0.0, 0.0])),
            "failure_rate": float(cfg.get("failure_rate", 0.0)),
        }
    return out


def get_routing_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return routing config: venue_preference (tie-break order)."""
    merged = _merged_config(config or {})
    routing = merged.get("routing") or {}
    preference: List[str] = [str(v).lower() for v in (routing.get("venue_preference") or []) if v]
    return {"venue_preference": preference}


def get_order_defaults(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    merged = _merged_config(config or {})
    orders = merged.get("orders") or {}
    return {"default_slippage": float(orders.get("default_slippage"))}


def get_store_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return store config: backend (memory|postgres) and postgres section."""
    merged = _merged_config(config or {})
    store = merged.get("store") or {}
    backend = str(store.get("backend") or "memory").strip().lower()
    if os.environ.get("DATABASE_URL") and not (config or {}).get("store", {}).get("backend"):
        backend = "postgres"
    return {"backend": backend, "postgres": dict(store.get("postgres") or {})}


def get_server_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    merged = _merged_config(config or {})
    server = merged.get("server") or {}
    port = os.environ.get("PORT") or server.get("port")
    return {"host": server.get("host"), "port": int(port)}
