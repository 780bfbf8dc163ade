"""
Тесты для модуля логирования.
Проверяют корректность работы централизованной системы логирования.
"""
import logging
import logging.handlers
import os
import shutil
import tempfile
import unittest

import httpx

from mymemories.config import Config
from mymemories.exceptions import AuthenticationFailure, ConfigurationError, RecordIOError
from mymemories.logger import (
    ERROR_LOGGER,
    LoggerManager,
    classify_error,
    format_error_entry,
    get_logger,
    log_error_with_context,
    log_function_call,
    set_log_level,
    setup_logging,
)


class TestLoggerManager(unittest.TestCase):
    """Тесты для класса LoggerManager."""

    def setUp(self):
        """Подготовка тестового окружения."""
        self.temp_dir = tempfile.mkdtemp()
        self.log_file = os.path.join(self.temp_dir, "logs", "test.log")
        self.test_config = Config(log_level="DEBUG", log_file=self.log_file)

        root = logging.getLogger()
        self._saved_handlers = list(root.handlers)
        self._saved_level = root.level

    def tearDown(self):
        """Очистка тестового окружения."""
        root = logging.getLogger()
        for handler in root.handlers:
            if handler not in self._saved_handlers:
                handler.close()
        root.handlers[:] = self._saved_handlers
        root.setLevel(self._saved_level)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_singleton_pattern(self):
        """Тест паттерна Singleton."""
        self.assertIs(LoggerManager(), LoggerManager())

    def test_setup_logging(self):
        """Тест настройки логирования."""
        setup_logging(self.test_config)

        root_logger = logging.getLogger()
        self.assertEqual(root_logger.level, logging.DEBUG)
        self.assertEqual(len(root_logger.handlers), 2)

        rotating = [h for h in root_logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        self.assertEqual(len(rotating), 1)
        self.assertEqual(rotating[0].maxBytes, 10 * 1024 * 1024)
        self.assertEqual(rotating[0].backupCount, 5)
        self.assertTrue(os.path.exists(os.path.dirname(self.log_file)))

    def test_setup_without_log_file(self):
        """Тест настройки только с выводом в консоль."""
        setup_logging(Config(log_level="WARNING", log_file=None))

        root_logger = logging.getLogger()
        self.assertEqual(root_logger.level, logging.WARNING)
        self.assertEqual(len(root_logger.handlers), 1)

    def test_http_client_logs_quieted(self):
        """Запросы проверки ссылок не засоряют лог."""
        setup_logging(Config(log_level="DEBUG", log_file=None))

        self.assertEqual(logging.getLogger("httpx").level, logging.WARNING)

    def test_get_logger(self):
        """Тест получения логгера."""
        logger = get_logger("mymemories.test")

        self.assertEqual(logger.name, "mymemories.test")
        self.assertIs(logger, get_logger("mymemories.test"))

    def test_set_log_level(self):
        """Тест изменения уровня логирования."""
        setup_logging(Config(log_level="INFO", log_file=None))

        set_log_level("ERROR")

        self.assertEqual(logging.getLogger().level, logging.ERROR)

    def test_messages_written_to_file(self):
        """Тест записи сообщений в файл лога."""
        setup_logging(self.test_config)

        get_logger("mymemories.test").info("Категория сохранена: Работа")
        for handler in logging.getLogger().handlers:
            handler.flush()

        with open(self.log_file, encoding="utf-8") as f:
            content = f.read()
        self.assertIn("mymemories.test - INFO - Категория сохранена: Работа", content)


class TestLogHelpers(unittest.TestCase):
    """Тесты вспомогательных функций логирования."""

    def test_error_entry_goes_to_error_log(self):
        with self.assertLogs(ERROR_LOGGER, level="ERROR") as captured:
            log_error_with_context(ValueError("bad value"), {"operation": "save", "category": "Work"})

        self.assertEqual(len(captured.records), 1)
        self.assertEqual(
            captured.records[0].getMessage(),
            "[schema] save: ValueError: bad value | category=Work",
        )

    def test_entry_carries_error_kind_and_details(self):
        error = RecordIOError("Запись занята", details={"file_path": "Work.json"})

        entry = format_error_entry(error, {"operation": "commit", "category": "Work"})

        self.assertEqual(
            entry,
            "[io] commit: RecordIOError: Запись занята | file_path=Work.json, category=Work",
        )

    def test_password_values_are_masked(self):
        entry = format_error_entry(
            AuthenticationFailure("Неверный пароль"), {"operation": "load_all", "password": "hunter2"}
        )

        self.assertNotIn("hunter2", entry)
        self.assertIn("password=***", entry)
        self.assertTrue(entry.startswith("[crypto] load_all: AuthenticationFailure"))

    def test_entry_without_context(self):
        self.assertEqual(format_error_entry(RuntimeError("boom"), {}), "[unexpected] -: RuntimeError: boom")

    def test_classification(self):
        request = httpx.Request("HEAD", "https://example.com")
        self.assertEqual(classify_error(httpx.ConnectError("refused", request=request)), "network")
        self.assertEqual(classify_error(FileNotFoundError("missing")), "io")
        self.assertEqual(classify_error(KeyError("name")), "schema")
        self.assertEqual(classify_error(ConfigurationError("bad")), "configuration")

    def test_function_call_format(self):
        with self.assertLogs("mymemories.logger", level="DEBUG") as captured:
            log_function_call("CategoryStore.save", ("Work",), {"encrypted": True})

        self.assertIn("CategoryStore.save(Work, encrypted=True)", captured.output[0])


if __name__ == '__main__':
    unittest.main()
