from datetime import datetime

from loguru import logger

from tradeclient.config import settings
from tradeclient.domain.interfaces import DebugLogPort


DEBUG_CHANNEL = "debug"


def _is_debug_line(record) -> bool:
    return record["extra"].get("channel") == DEBUG_CHANNEL


def setup_logging(level: str | None = None, debug_log_path: str | None = None):
    level = level or settings.LOG_LEVEL
    logger.remove()
    logger.add(
        settings.RUNTIME_LOG_PATH,
        rotation="10 MB",
        retention="10 days",
        enqueue=True,
        backtrace=True,
        diagnose=False,
        level=level,
        filter=lambda r: not _is_debug_line(r),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {message}",
    )
    # osobny plik "debug": tylko dopisywanie linii, błędy zapisu łapie loguru (catch=True)
    logger.add(
        debug_log_path or settings.DEBUG_LOG_PATH,
        level="DEBUG",
        filter=_is_debug_line,
        catch=True,
        format="{message}",
    )
    logger.add(lambda msg: print(msg, end=""), level=level, filter=lambda r: not _is_debug_line(r))
    return logger


class DebugLog(DebugLogPort):
    """Linia po linii do pliku debug: `[HH:MM:SS] wiadomość`."""

    def __init__(self) -> None:
        self._log = logger.bind(channel=DEBUG_CHANNEL)

    def write(self, message: str) -> None:
        try:
            self._log.debug(f"[{datetime.now():%H:%M:%S}] {message}")
        except Exception:
            # logowanie nigdy nie może przerwać operacji handlowej
            pass
