'''
Module de configuration pour le logger centralisé du service.

Loguru avec une sortie console (couleurs) et, si LOG_TO_FILE est actif,
un fichier rotatif par famille de niveaux. Chaque ligne porte le nom du service.
'''

import os
import sys
from loguru import logger

from app.config import settings

LOG_FORMAT_CONSOLE = (
    "<white>{time:YYYY-MM-DD HH:mm:ss.SSS}</white> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[service]}</cyan> | "
    "<light-black>{name}:{line}</light-black> - "
    "<level>{message}</level>"
)
LOG_FORMAT_FILE = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} {level: <8} {extra[service]} {name}:{function}:{line} {message}"

# (fichier, niveau minimal, niveaux acceptés ; None = tout ce qui passe le minimum)
FILE_SINKS = (
    ("debug.log", "DEBUG", {"DEBUG"}),
    ("info.log", "INFO", {"INFO", "SUCCESS", "WARNING"}),
    ("error.log", "ERROR", None),
)


def _only(levels):
    if levels is None:
        return None
    return lambda record: record["level"].name in levels


def configure_logging(level: str = settings.LOG_LEVEL,
                      log_dir: str = settings.LOG_DIR,
                      to_file: bool = settings.LOG_TO_FILE) -> None:
    """(Re)installe les handlers ; appelé à l'import, rappelable par les tests."""
    logger.remove()
    logger.configure(extra={"service": settings.SERVICE_NAME})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT_CONSOLE, colorize=True, backtrace=True, diagnose=False)

    if not to_file:
        return
    os.makedirs(log_dir, exist_ok=True)
    for filename, min_level, levels in FILE_SINKS:
        logger.add(
            os.path.join(log_dir, filename),
            level=min_level,
            format=LOG_FORMAT_FILE,
            filter=_only(levels),
            rotation=settings.LOG_ROTATION,
            retention=settings.LOG_RETENTION,
            compression="zip",
            encoding="utf-8",
            # trace complète seulement pour les erreurs
            backtrace=levels is None,
            diagnose=False,
        )


configure_logging()

# from app.logger import logger
# logger.info("Field {field_id} indexed", field_id=field_id)
