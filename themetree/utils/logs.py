import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "[%(asctime)s][%(name)s][%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: Union[int, str]) -> int:
    """Accept a logging constant or its name ("debug", "WARNING", ...)."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logger(
    logger: Optional[logging.Logger] = None,
    file_path: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """
    Attach console (stderr) output and, with `file_path`, a file handler to
    the themetree logger.

    Calling it again only re-levels the handlers already attached; the same
    file is never opened twice. Parent directories of `file_path` are created.
    """
    if logger is None:
        logger = logging.getLogger("themetree")
    level = resolve_level(level)

    logger.setLevel(level)
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    for handler in logger.handlers:
        handler.setLevel(level)

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        logger.addHandler(console)

    if file_path is not None:
        target = Path(file_path).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        already_open = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve() == target
            for h in logger.handlers
        )
        if not already_open:
            file_handler = logging.FileHandler(target, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
