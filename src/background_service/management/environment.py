"""Environment variable management utilities."""

import logging
from pathlib import Path

from dotenv import load_dotenv


def load_dotenv_if_available(env_file: str | Path = ".env") -> tuple[bool, Path | None]:
    """Load a .env file from the current directory if it exists.

    Existing environment variables take precedence (override=False), so values
    set by the platform launcher are never replaced.

    Returns:
        Tuple of (success: bool, env_file_path: Path | None)
    """
    logger = logging.getLogger("env")

    env_path = Path(env_file)
    if not env_path.exists():
        logger.debug(f"No {env_path} file found")
        return False, None

    load_dotenv(env_path, override=False)
    return True, env_path.absolute()
