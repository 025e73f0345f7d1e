import argparse
import asyncio
import logging
import sys

import uvicorn
from websockets.asyncio.server import serve

from ..core.config import load_settings
from ..core.errors import ValidationFailure
from .api import create_app
from .document_store import DocumentStore
from .realtime import RealtimeHub


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler("petsim-server.log", mode="a"),
        ],
        force=True,  # Force reconfiguration if logging was already configured
    )


async def run_server(settings):
    """Run the HTTP API and the realtime hub on one event loop."""
    store = DocumentStore(settings.data_dir)
    hub = RealtimeHub(settings.clan_chat_scope)
    app = create_app(store, hub, settings)

    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    server = uvicorn.Server(config)

    async with serve(hub.handler, settings.host, settings.ws_port):
        logging.info(f"Realtime hub listening on ws://{settings.host}:{settings.ws_port}")
        logging.info(f"HTTP API listening on http://{settings.host}:{settings.port}/api")
        await server.serve()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Pet Simulator game server")
    parser.add_argument("--config", help="Path to a settings.toml file")
    args = parser.parse_args(argv)

    setup_logging()
    logging.info("=== Pet Simulator Server Starting ===")

    try:
        settings = load_settings(args.config)
    except ValidationFailure as e:
        logging.error(f"Invalid configuration: {e}")
        return 1

    logging.info(f"Data directory: {settings.data_dir}, clan chat scope: {settings.clan_chat_scope}")
    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logging.info("Server stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
