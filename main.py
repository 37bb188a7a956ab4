import argparse
import logging
import sys
import config
from core.database import init_db
from handlers.dispatcher import channels
from services.auth_service import ensure_default_admin
from services.file_manager import load_or_setup_paths

"""
Entry point for the FitDesk backend.
Run this file to prepare the data folder and database.
"""

logger = logging.getLogger("fitdesk")


def setup_logging(level: int = logging.INFO) -> None:
    handlers = [logging.StreamHandler(sys.stderr)]
    if config.LOG_FILE:
        handlers.append(logging.FileHandler(config.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def start(data_dir=None, verbose: bool = False) -> None:
    """Resolves the data folder, applies migrations and makes sure an admin exists."""
    load_or_setup_paths(data_dir)
    setup_logging(logging.DEBUG if verbose else logging.INFO)

    applied = init_db()
    logger.info("Database ready at %s (%d migration(s) applied)", config.DB_FILE, applied)

    ensure_default_admin()

    logger.info("%d channels registered", len(channels()))
    for name in channels():
        logger.debug("  %s", name)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=f"{config.APP_NAME} gym management backend")
    parser.add_argument("--data-dir", help="Folder holding the database and logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every registered channel")
    options = parser.parse_args()

    start(options.data_dir, options.verbose)
    print(f"{config.APP_NAME} is ready. Data folder: {config.BASE_FOLDER}")
