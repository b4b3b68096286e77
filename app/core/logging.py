# app/core/logging.py
import logging
import os
import sys
from typing import Any, Optional

from loguru import logger

from app.core.config import settings


class InterceptHandler(logging.Handler):
    """
    Redirige los logs de logging estándar a loguru.
    """
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        # sube en la pila hasta salir de logging/__init__.py
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(
            depth=depth,
            exception=record.exc_info,
        ).log(level, record.getMessage())


def setup_logging(
    *,
    json_logs: Optional[bool] = None,
    log_file: Optional[bool] = None,
) -> None:
    """
    Config global:
    - Intercepta logging estándar (uvicorn, sqlalchemy, fastapi, etc.)
    - Consola: todos los niveles
    - Ficheros (si LOG_TO_FILE):
        - app_YYYY-MM-DD.log   → INFO y WARNING
        - error_YYYY-MM-DD.log → ERROR y superiores
    """
    if json_logs is None:
        json_logs = settings.LOG_JSON
    if log_file is None:
        log_file = settings.LOG_TO_FILE

    logging.root.handlers = []
    logging.root.setLevel(logging.INFO)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "sqlalchemy"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False

    logger.remove()

    # Los campos bind (booking_reference, vehicle_id...) van en {extra}
    if json_logs:
        fmt = (
            '{{"time":"{time}","level":"{level}","message":{message!r},'
            '"name":"{name}","function":"{function}","line":{line},"extra":"{extra}"}}'
        )
    else:
        fmt = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level> | {extra}"
        )

    logger.add(
        sys.stdout,
        format=fmt,
        level="INFO",
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        os.makedirs(settings.LOG_DIR, exist_ok=True)

        app_log_path = os.path.join(settings.LOG_DIR, "app_{time:YYYY-MM-DD}.log")
        error_log_path = os.path.join(settings.LOG_DIR, "error_{time:YYYY-MM-DD}.log")

        # INFO / WARNING → app_YYYY-MM-DD.log
        logger.add(
            app_log_path,
            format=fmt,
            level="INFO",
            filter=lambda record: record["level"].no < 40,  # < ERROR (40)
            rotation="00:00",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

        # Solo errores y críticos → error_YYYY-MM-DD.log
        logger.add(
            error_log_path,
            format=fmt,
            level="ERROR",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            enqueue=True,
        )


def get_logger(**binds: Any):
    """
    Helper para obtener un logger con contexto extra.
    Ej: logger = get_logger(module="booking_service")
    """
    return logger.bind(**binds)
