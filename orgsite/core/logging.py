"""Process-wide logging setup shared by the API and the CLI jobs."""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from orgsite.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def configure_logging(settings: "Settings") -> None:
    """Configure the root logger once; later calls only adjust the level."""
    level = getattr(logging, settings.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger().setLevel(level)
    # SQL echo is controlled by DEBUG, not by the app log level.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )
