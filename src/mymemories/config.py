"""
Модуль config.py
Управляет конфигурацией приложения через .env-файл.
Обеспечивает валидацию и доступ к параметрам конфигурации.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .crypto import MAX_MEMORY_COST, MAX_PARALLELISM, MAX_TIME_COST
from .exceptions import ConfigurationError
from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class Config:
    """
    Класс конфигурации приложения.
    Все поля загружаются из .env-файла.
    """

    # Хранилище категорий
    data_dir: str = "./data"

    # Проверка доступности ссылок
    check_timeout: float = 10.0
    check_max_concurrent: int = 8
    check_user_agent: str = DEFAULT_USER_AGENT

    # Сводка по веб-странице
    summary_timeout: float = 30.0
    summary_max_size_mb: int = 5

    # Параметры Argon2id для вывода ключей
    kdf_time_cost: int = 3
    kdf_memory_cost: int = 65536
    kdf_parallelism: int = 4

    # Настройки логирования
    log_level: str = "INFO"
    log_file: Optional[str] = "./mymemories.log"


class ConfigManager:
    """
    Менеджер конфигурации приложения.
    Загружает параметры из .env-файла и предоставляет валидацию.
    """

    VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

    def __init__(self, env_path: Optional[str] = None):
        """
        Инициализация менеджера конфигурации.

        Аргументы:
            env_path: Путь к .env-файлу (по умолчанию .env в текущем каталоге)

        Raises:
            ConfigurationError: Если параметры не проходят валидацию
        """
        logger.debug(f"Инициализация ConfigManager с env_path: {env_path}")

        load_dotenv(env_path or ".env", override=True)
        self.config = self._load_config()
        self._validate_config()

        logger.info("ConfigManager успешно инициализирован")
        logger.debug(
            f"Загружена конфигурация: data_dir={self.config.data_dir}, "
            f"log_level={self.config.log_level}"
        )

    def _load_config(self) -> Config:
        """
        Загружает конфигурацию из переменных окружения.

        Возвращает:
            Config: Объект с загруженной конфигурацией

        Raises:
            ConfigurationError: Если числовой параметр не удалось разобрать
        """
        logger.debug("Загрузка конфигурации из переменных окружения")

        try:
            config = Config(
                data_dir=os.getenv("DATA_DIR", "./data"),
                check_timeout=float(os.getenv("CHECK_TIMEOUT", "10")),
                check_max_concurrent=int(os.getenv("CHECK_MAX_CONCURRENT", "8")),
                check_user_agent=os.getenv("CHECK_USER_AGENT", DEFAULT_USER_AGENT),
                summary_timeout=float(os.getenv("SUMMARY_TIMEOUT", "30")),
                summary_max_size_mb=int(os.getenv("SUMMARY_MAX_SIZE_MB", "5")),
                kdf_time_cost=int(os.getenv("KDF_TIME_COST", "3")),
                kdf_memory_cost=int(os.getenv("KDF_MEMORY_COST", "65536")),
                kdf_parallelism=int(os.getenv("KDF_PARALLELISM", "4")),
                log_level=os.getenv("LOG_LEVEL", "INFO"),
                log_file=os.getenv("LOG_FILE", "./mymemories.log") or None,
            )

            logger.debug("Конфигурация успешно загружена из переменных окружения")
            return config

        except ValueError as e:
            logger.error(f"Ошибка при загрузке конфигурации: {e}")
            raise ConfigurationError(f"Некорректное значение параметра: {e}") from e

    def _validate_config(self) -> None:
        """
        Валидирует параметры конфигурации.
        Собирает все ошибки и выбрасывает одно исключение.

        Raises:
            ConfigurationError: Если параметры некорректны
        """
        logger.debug("Валидация конфигурации")

        validation_errors = []
        cfg = self.config

        if not cfg.data_dir:
            validation_errors.append("DATA_DIR не может быть пустым")

        if cfg.check_timeout <= 0:
            validation_errors.append(
                f"CHECK_TIMEOUT должен быть положительным числом: {cfg.check_timeout}"
            )

        if cfg.check_max_concurrent <= 0:
            validation_errors.append(
                f"CHECK_MAX_CONCURRENT должен быть положительным числом: {cfg.check_max_concurrent}"
            )

        if cfg.summary_timeout <= 0:
            validation_errors.append(
                f"SUMMARY_TIMEOUT должен быть положительным числом: {cfg.summary_timeout}"
            )

        if cfg.summary_max_size_mb <= 0:
            validation_errors.append(
                f"SUMMARY_MAX_SIZE_MB должен быть положительным числом: {cfg.summary_max_size_mb}"
            )

        # Ограничения argon2: time_cost >= 1, memory_cost >= 8 * parallelism;
        # записи с параметрами выше лимитов не расшифровываются
        if not 1 <= cfg.kdf_time_cost <= MAX_TIME_COST:
            validation_errors.append(
                f"KDF_TIME_COST должен быть в диапазоне 1..{MAX_TIME_COST}: {cfg.kdf_time_cost}"
            )

        if not 1 <= cfg.kdf_parallelism <= MAX_PARALLELISM:
            validation_errors.append(
                f"KDF_PARALLELISM должен быть в диапазоне 1..{MAX_PARALLELISM}: {cfg.kdf_parallelism}"
            )

        if cfg.kdf_memory_cost < 8 * max(cfg.kdf_parallelism, 1):
            validation_errors.append(
                f"KDF_MEMORY_COST должен быть не меньше 8 * KDF_PARALLELISM: {cfg.kdf_memory_cost}"
            )
        elif cfg.kdf_memory_cost > MAX_MEMORY_COST:
            validation_errors.append(
                f"KDF_MEMORY_COST не должен превышать {MAX_MEMORY_COST}: {cfg.kdf_memory_cost}"
            )

        if cfg.log_level.upper() not in self.VALID_LOG_LEVELS:
            validation_errors.append(f"Неизвестный LOG_LEVEL: {cfg.log_level}")

        for error_msg in validation_errors:
            logger.error(error_msg)

        if validation_errors:
            logger.error(
                f"Валидация конфигурации не пройдена: {len(validation_errors)} ошибок"
            )
            raise ConfigurationError(
                f"Ошибки валидации конфигурации: {'; '.join(validation_errors)}",
                details={"errors": validation_errors},
            )

        logger.info("Валидация конфигурации успешно пройдена")

    def get(self) -> Config:
        """
        Возвращает объект конфигурации.

        Возвращает:
            Config: Объект с конфигурацией
        """
        return self.config
