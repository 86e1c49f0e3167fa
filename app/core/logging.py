"""Logging setup."""
import logging
import logging.config
from pathlib import Path

import yaml

from app.core.config import settings


def configure_logging(config_path: str | None = None) -> None:
    """Apply the YAML dictConfig when the file exists, otherwise fall back to basicConfig."""
    path = Path(config_path or settings.log_config)
    if path.exists():
        with path.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
