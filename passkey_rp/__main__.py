"""Command-line entry point to serve the passkey RP handler."""

from __future__ import annotations

import argparse

from .app import create_app
from .config import ServiceSettings


def parse_args(settings: ServiceSettings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Passkey RP request handler")
    parser.add_argument("--host", default=settings.host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on")
    return parser.parse_args()


def main() -> None:
    settings = ServiceSettings()
    args = parse_args(settings)
    app = create_app(settings)
    try:
        app.run(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
