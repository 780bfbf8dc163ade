"""
Модуль logger.py
Логирование приложения и журнал ошибок.

Модули получают логгер через get_logger(__name__); setup_logging направляет
записи в консоль и в файл с ротацией. Ошибки, перехваченные на границе
компонента, записываются через log_error_with_context в логгер
mymemories.errors одной строкой:

    [<классификация>] <операция>: <класс исключения>: <сообщение> | ключ=значение, ...
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from .exceptions import ErrorKind, MyMemoriesError

if TYPE_CHECKING:
    from .config import Config

ERROR_LOGGER = "mymemories.errors"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5
UNEXPECTED_KIND = "unexpected"

# httpx пишет каждый запрос проверки ссылок на уровне INFO
_NOISY_LOGGERS = ("httpx", "httpcore")
_SECRET_KEYS = ("password", "secret", "key")


class LoggerManager:
    """
    Менеджер логирования приложения (Singleton).

    Настраивает корневой логгер: консоль и, если задан LOG_FILE, файл с
    ротацией (10 МБ, 5 резервных копий).
    """

    _instance: Optional['LoggerManager'] = None
    _root_logger: Optional[logging.Logger] = None

    def __new__(cls) -> 'LoggerManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def setup_logging(self, config: 'Config') -> None:
        """
        Настраивает логирование на основе конфигурации.

        Аргументы:
            config: Объект конфигурации приложения
        """
        root = logging.getLogger()
        root.setLevel(_level(config.log_level))
        root.handlers.clear()

        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

        if config.log_file:
            log_path = Path(config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_path,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        self._root_logger = root
        logger = get_logger(__name__)
        logger.info(f"Логирование настроено с уровнем: {config.log_level}")
        logger.debug(f"Файл лога: {config.log_file}")

    def set_level(self, level: str) -> None:
        if self._root_logger is not None:
            self._root_logger.setLevel(_level(level))
            get_logger(__name__).info(f"Уровень логирования изменен на: {level}")


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Получает логгер для указанного модуля.

    Пример:
        >>> logger = get_logger(__name__)
        >>> logger.info("Категория сохранена")
    """
    return logging.getLogger(name)


def setup_logging(config: 'Config') -> None:
    """Настраивает логирование; вызывается один раз при запуске."""
    LoggerManager().setup_logging(config)


def set_log_level(level: str) -> None:
    """
    Изменяет уровень логирования для всего приложения.

    Аргументы:
        level: DEBUG, INFO, WARNING, ERROR или CRITICAL
    """
    LoggerManager().set_level(level)


def log_function_call(func_name: str, args: tuple = (), kwargs: Optional[dict] = None) -> None:
    """
    Логирует вызов операции с аргументами (только в режиме DEBUG).

    Пароли в аргументы не передаются никогда.
    """
    logger = get_logger(__name__)

    if logger.isEnabledFor(logging.DEBUG):
        parts = [str(arg) for arg in args]
        parts.extend(f"{k}={v}" for k, v in (kwargs or {}).items())
        logger.debug(f"Вызов функции: {func_name}({', '.join(parts)})")


def log_performance(func_name: str, duration: float, details: str = "") -> None:
    details_str = f" ({details})" if details else ""
    get_logger(__name__).info(f"Производительность: {func_name} выполнена за {duration:.2f}с{details_str}")


def classify_error(error: BaseException) -> str:
    """
    Определяет классификацию ошибки для журнала.

    Ошибки приложения несут свою классификацию; для остальных она
    выводится из типа исключения.

    Возвращает:
        str: Значение ErrorKind или "unexpected"
    """
    if isinstance(error, MyMemoriesError):
        return error.kind.value
    if isinstance(error, httpx.HTTPError):
        return ErrorKind.NETWORK.value
    if isinstance(error, OSError):
        return ErrorKind.IO.value
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return ErrorKind.SCHEMA.value
    return UNEXPECTED_KIND


def format_error_entry(error: BaseException, context: Dict[str, Any]) -> str:
    """
    Формирует строку журнала ошибок.

    Ключ "operation" выносится в заголовок записи, подробности ошибки
    приложения дополняют контекст. Значения ключей, похожих на пароль,
    не выводятся.

    Аргументы:
        error: Исключение
        context: Контекст (операция, путь к файлу, категория, URL)

    Возвращает:
        str: Запись журнала ошибок
    """
    fields: Dict[str, Any] = {}
    if isinstance(error, MyMemoriesError):
        fields.update(error.details)
    fields.update(context)
    operation = fields.pop("operation", "-")

    entry = f"[{classify_error(error)}] {operation}: {type(error).__name__}: {error}"
    if fields:
        shown = (
            f"{k}=***" if any(marker in k.lower() for marker in _SECRET_KEYS) else f"{k}={v}"
            for k, v in fields.items()
        )
        entry += " | " + ", ".join(shown)
    return entry


def log_error_with_context(error: BaseException, context: Dict[str, Any]) -> None:
    """
    Записывает ошибку в журнал ошибок.

    Пример:
        >>> log_error_with_context(e, {"operation": "load_all", "file_path": "Work.json"})
    """
    get_logger(ERROR_LOGGER).error(format_error_entry(error, context))
