from swap_engine.server.app import create_app, run_server, serve_engine

__all__ = ["create_app", "run_server", "serve_engine"]
