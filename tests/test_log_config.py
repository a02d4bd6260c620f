import logging
import os
import time

from ldap_groups import log_config


def _our_handlers():
    return [h for h in (log_config._file_handler, log_config._console_handler) if h is not None]


def test_setup_logging_writes_to_log_dir(tmp_path):
    try:
        log_config.setup_logging(level="debug", retention_days=7, log_dir=str(tmp_path))
        logging.getLogger("ldap_groups.test").info("hello")
        for h in _our_handlers():
            h.flush()

        content = (tmp_path / "ldap_groups.log").read_text(encoding="utf-8")
        assert "hello" in content
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("ldap3").level == logging.WARNING
        assert log_config._file_handler.backupCount == 7
    finally:
        root = logging.getLogger()
        for h in _our_handlers():
            root.removeHandler(h)
            h.close()


def test_reconfiguration_replaces_handlers(tmp_path):
    try:
        log_config.setup_logging(level="INFO", log_dir=str(tmp_path))
        first = log_config._file_handler
        log_config.setup_logging(level="WARNING", log_dir=str(tmp_path))
        root = logging.getLogger()
        assert first not in root.handlers
        assert log_config._file_handler in root.handlers
    finally:
        root = logging.getLogger()
        for h in _our_handlers():
            root.removeHandler(h)
            h.close()


def test_old_rotated_files_are_removed(tmp_path):
    old = tmp_path / "ldap_groups.log.2000-01-01"
    fresh = tmp_path / "ldap_groups.log.2099-01-01"
    old.write_text("x")
    fresh.write_text("y")
    stale = time.time() - 40 * 86400
    os.utime(old, (stale, stale))

    log_config._cleanup_old_logs(str(tmp_path), 30)

    assert not old.exists()
    assert fresh.exists()
