"""Настройка логирования провайдера групп.

Файлы логов хранятся в директории из LDAP_GROUPS_LOG_DIR (по умолчанию
`data/logs` относительно CWD), ротация через TimedRotatingFileHandler.

- Ротация: ежедневно (midnight).
- Хранение: retention_days (по умолчанию 30).
- Уровень: level (по умолчанию INFO).
"""
from __future__ import annotations

import glob
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

from .env_settings import get_env

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_FILE = "ldap_groups.log"

# Отслеживаем установленные handlers, чтобы при реконфигурации удалять старые.
_file_handler: logging.Handler | None = None
_console_handler: logging.Handler | None = None


def _ensure_log_dir(log_dir: str) -> str:
    os.makedirs(log_dir, exist_ok=True)
    return log_dir


def setup_logging(
    level: str | None = None,
    retention_days: int | None = None,
    log_dir: str | None = None,
) -> None:
    """Настраивает корневой логгер.

    Параметры, не переданные явно, берутся из окружения (EnvSettings).
    """
    global _file_handler, _console_handler

    env = get_env()
    level_str = (level or env.log_level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    log_level = getattr(logging, level_str, logging.INFO)

    retention_days = max(1, min(365, int(retention_days or env.log_retention_days or 30)))
    log_dir = _ensure_log_dir(os.path.abspath(log_dir or env.log_dir))

    root = logging.getLogger()

    # Удаляем предыдущие наши handlers (при реконфигурации)
    if _file_handler and _file_handler in root.handlers:
        root.removeHandler(_file_handler)
        _file_handler.close()
    if _console_handler and _console_handler in root.handlers:
        root.removeHandler(_console_handler)

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    fh = TimedRotatingFileHandler(
        os.path.join(log_dir, _LOG_FILE),
        when="midnight",
        interval=1,
        backupCount=retention_days,
        encoding="utf-8",
        utc=True,
    )
    fh.suffix = "%Y-%m-%d"
    fh.setLevel(log_level)
    fh.setFormatter(formatter)
    _file_handler = fh

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    _console_handler = ch

    root.setLevel(log_level)
    root.addHandler(fh)
    root.addHandler(ch)

    _cleanup_old_logs(log_dir, retention_days)

    # ldap3 пишет протокольные подробности на DEBUG
    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("ldap_groups").info(
        "Логирование настроено: уровень=%s, хранение=%d дней, каталог=%s",
        level_str, retention_days, log_dir,
    )


def _cleanup_old_logs(log_dir: str, retention_days: int) -> None:
    """Удаляет ротированные файлы логов старше retention_days."""
    cutoff = time.time() - (retention_days * 86400)
    for f in glob.glob(os.path.join(log_dir, _LOG_FILE + ".*")):
        try:
            if os.path.getmtime(f) < cutoff:
                os.remove(f)
        except OSError:
            pass
