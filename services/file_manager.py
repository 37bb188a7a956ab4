import logging
import os
from pathlib import Path
from typing import Optional, Union
import config

logger = logging.getLogger(__name__)


def ensure_folder(p: Path) -> None:
    """Creates the folder if it does not exist."""
    p.mkdir(parents=True, exist_ok=True)


def init_paths(base_path: Union[str, Path]) -> None:
    """
    Initialize all global paths based on the selected base path.
    Sets up the data folder, the database file and the log file.
    """
    base_path = Path(base_path)
    ensure_folder(base_path)

    config.BASE_FOLDER = base_path
    config.DB_FILE = base_path / "fitdesk.db"
    config.LOG_FILE = base_path / "fitdesk.log"


def _stored_path() -> Optional[Path]:
    if not config.CONFIG_FILE.exists():
        return None
    try:
        content = config.CONFIG_FILE.read_text().strip()
    except OSError:
        logger.warning("Could not read %s, ignoring it", config.CONFIG_FILE)
        return None
    return Path(content) if content else None


def load_or_setup_paths(base_path: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolves the data folder and initializes the global paths.

    Lookup order: the explicit argument, the FITDESK_DATA_DIR environment
    variable, the path saved in the config dotfile, then ~/Documents/FitDesk.
    The chosen folder is saved back to the dotfile for next time.

    Returns:
        Path: The data folder in use.
    """
    if base_path:
        data_path = Path(base_path)
    elif os.environ.get(config.DATA_DIR_ENV):
        data_path = Path(os.environ[config.DATA_DIR_ENV])
    else:
        data_path = _stored_path() or Path.home() / "Documents" / config.APP_NAME

    init_paths(data_path)

    try:
        config.CONFIG_FILE.write_text(str(data_path))
    except OSError as e:
        # Not fatal, the lookup simply runs again on the next start
        logger.warning("Failed to save configuration to %s: %s", config.CONFIG_FILE, e)

    logger.info("Data folder: %s", data_path)
    return data_path
