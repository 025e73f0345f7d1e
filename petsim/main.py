import argparse
import logging
import platform
import queue
import sys

from .core.config import load_settings
from .core.data_paths import ensure_user_data_directory, get_user_data_directory
from .core.errors import ValidationFailure
from .core.game_session import GameSession


def setup_logging():
    # Clear any existing logging configuration and set up fresh
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler("petsim.log", mode="w"),
        ],
        force=True,  # Force reconfiguration if logging was already configured
    )


def log_system_environment():
    logging.info("=== Pet Simulator Starting ===")
    logging.info(f"Python version: {sys.version}")
    logging.info(f"Operating System: {platform.system()} {platform.release()}")
    logging.info(f"User data directory: {get_user_data_directory()}")


# Presentation events that are too frequent to log at INFO
QUIET_EVENTS = {"stats", "breakable_spawned", "breakable_expired", "pet_working", "pet_idle"}


def drain_events(data_queue, timeout: float = 1.0):
    """Stand-in for a UI: log every presentation event the session publishes."""
    try:
        message = data_queue.get(timeout=timeout)
    except queue.Empty:
        return

    msg_type = message.get("type")
    data = message.get("data")
    if msg_type in QUIET_EVENTS:
        logging.debug(f"[{msg_type}] {data}")
    elif msg_type == "notification":
        logging.info(f"[notification] {data.get('message')}")
    elif msg_type == "game_state":
        logging.info(f"[game_state] money={data.get('money')} pets={len(data.get('pets') or [])}")
    else:
        logging.info(f"[{msg_type}] {data}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Pet Simulator headless client")
    parser.add_argument("--name", help="Display name for this player")
    parser.add_argument("--config", help="Path to a settings.toml file")
    args = parser.parse_args(argv)

    setup_logging()
    log_system_environment()

    if not ensure_user_data_directory():
        logging.error("Cannot continue without a writable user data directory")
        return 1

    try:
        settings = load_settings(args.config)
    except ValidationFailure as e:
        logging.error(f"Invalid configuration: {e}")
        return 1

    session = GameSession(settings)
    try:
        session.start(args.name)
        while True:
            drain_events(session.data_queue)
    except KeyboardInterrupt:
        logging.info("Shutting down...")
    finally:
        session.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
