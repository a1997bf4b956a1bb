"""
Application setup and initialization.

Early initialization that must run before the FastAPI application is
created: environment loading, Sentry, logging and settings validation.
"""
import os

from dotenv import load_dotenv

from rcm.utils.logger import configure_logging, get_logger


def setup_application() -> None:
    """
    Initialize application environment and configuration.

    Order:
    1. Load `.env` (everything else reads the environment)
    2. Initialize Sentry (so later failures are captured)
    3. Configure logging
    4. Validate settings (refuses production with development secrets)

    Raises:
        ValueError: If settings validation fails
    """
    load_dotenv()

    # Settings modules read the environment at import time, so import after load_dotenv
    from rcm.config.sentry import init_sentry
    from rcm.config.settings import reload_settings, validate_settings

    init_sentry()

    settings = reload_settings()
    configure_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        log_dir=os.getenv("LOG_DIR", "logs"),
    )

    logger = get_logger(__name__)
    try:
        validate_settings()
        logger.info("Settings validated successfully")
    except ValueError as e:
        logger.critical("Settings validation failed - application cannot start", error=str(e))
        raise
