"""Local launcher for the Lagam production hub API."""

from __future__ import annotations

import os
import socket
import time

from dotenv import load_dotenv
from werkzeug.serving import make_server

from lagamhub import create_app


def _find_free_port(host: str = "127.0.0.1") -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def _port_from_env(host: str) -> int:
    value = os.environ.get("PORT")
    if not value:
        return _find_free_port(host)
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"PORT must be an integer, got {value!r}") from exc


def run_server() -> None:
    load_dotenv()

    app = create_app()
    host = os.environ.get("HOST", "127.0.0.1")
    port = _port_from_env(host)

    server = make_server(host, port, app)
    app.logger.info("Serving on http://%s:%s", host, port)
    started = time.monotonic()
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
        app.logger.info("Server stopped after %.0f seconds", time.monotonic() - started)


if __name__ == "__main__":
    run_server()
