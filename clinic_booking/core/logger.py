import sys
from loguru import logger
import logging

class InterceptHandler(logging.Handler):
    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

def setup_logging(level: str = "INFO", error_log: str = "logs/errors.log"):
    logging.getLogger().handlers = [InterceptHandler()]

    logger.remove() # Remove default handler

    # Services bind clinic_id / viewer_id; everything else logs "-"
    logger.configure(extra={"clinic_id": "-", "viewer_id": "-"})

    # Console
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <magenta>{extra[clinic_id]}:{extra[viewer_id]}</magenta> - <level>{message}</level>"
    )

    # Errors only, rotated
    logger.add(
        error_log,
        level="ERROR",
        rotation="10 MB",
        retention="1 month",
        compression="zip",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {extra[clinic_id]}:{extra[viewer_id]} - {message}"
    )

    # Route stdlib logging (uvicorn, httpx, realtime websocket) through loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0)

    # Silence noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("realtime").setLevel(logging.WARNING)

# Export singleton logger
__all__ = ["logger", "setup_logging"]
