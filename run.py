import argparse
import logging
import socket

import uvicorn

from mikromanager.main import configure_logging
from mikromanager.settings import settings


log = logging.getLogger("mikromanager.run")

MAX_PORT_ATTEMPTS = 50


def port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except OSError:
            return False
    return True


def find_available_port(host: str, start_port: int, attempts: int = MAX_PORT_ATTEMPTS) -> int:
    """First free port at or after start_port."""
    for port in range(start_port, start_port + attempts):
        if port_is_free(host, port):
            return port
    raise RuntimeError(f"no free port in {start_port}-{start_port + attempts - 1}")


def main():
    parser = argparse.ArgumentParser(description="Run the MikroTik Manager API server")
    parser.add_argument("--host", default=settings.host, help="Interface to bind (default: %(default)s)")
    parser.add_argument("--port", type=int, default=settings.port, help="Preferred port (default: %(default)s)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args()

    configure_logging(settings)
    port = find_available_port(args.host, args.port)
    if port != args.port:
        log.warning("Port %s is busy, using port %s instead", args.port, port)
    log.info("MikroTik Manager API Server running on port %s", port)
    log.info("Server available at: http://localhost:%s", port)

    uvicorn.run("mikromanager.main:app", host=args.host, port=port, reload=args.reload)


if __name__ == "__main__":
    main()
