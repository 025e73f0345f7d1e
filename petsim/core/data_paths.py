"""
Data path utilities for Pet Simulator.

Resolves the user-writable directory that holds the local fallback save,
player_data.json and the optional settings.toml.
"""

import os
import sys
import logging
from pathlib import Path

APP_NAME = "PetSimulator"


def get_user_data_directory():
    """
    Get the directory for user-writable data files like player_data.json.

    PETSIM_HOME wins when set. Otherwise the OS-appropriate user data
    directory for the application is used.

    Returns:
        str: Path to user data directory (writable)
    """
    override = os.getenv("PETSIM_HOME")
    if override:
        return os.path.normpath(override)

    if sys.platform == "win32":
        # Windows: %APPDATA%/PetSimulator/
        base_dir = os.getenv("APPDATA") or os.path.expanduser("~")
    elif sys.platform == "darwin":
        # macOS: ~/Library/Application Support/PetSimulator/
        base_dir = os.path.expanduser("~/Library/Application Support")
    else:
        # Linux: ~/.local/share/PetSimulator/
        base_dir = os.getenv("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")

    return os.path.join(base_dir, APP_NAME)


def get_user_data_path(filename):
    """
    Get the full path to a user data file.

    Args:
        filename: Name of the user data file (e.g., "player_data.json")

    Returns:
        str: Full path to the user data file
    """
    return os.path.join(get_user_data_directory(), filename)


def ensure_user_data_directory():
    """
    Ensure the user data directory exists and is writable.

    Returns:
        bool: True if directory is accessible, False otherwise
    """
    try:
        user_dir = get_user_data_directory()
        Path(user_dir).mkdir(parents=True, exist_ok=True)

        # Test write access
        test_file = os.path.join(user_dir, ".write_test")
        with open(test_file, "w") as f:
            f.write("test")
        os.remove(test_file)

        logging.info(f"User data directory ready: {user_dir}")
        return True

    except OSError as e:
        logging.error(f"Cannot access user data directory: {e}")
        return False
