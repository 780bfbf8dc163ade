"""
Модуль utils.py
Содержит вспомогательные утилиты для различных операций проекта.
Обеспечивает переиспользуемые функции для работы с путями, текстом, датами и валидацией.
"""

import hashlib
import logging
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
from urllib.parse import unquote, urlparse

# Настройка логера для модуля
logger = logging.getLogger(__name__)

# Символы, экранируемые в именах файлов записей: недопустимые на
# распространенных файловых системах, управляющие и служебные для кодирования
_ESCAPED_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*%~.\x00-\x1f\x7f]')

# Запас под суффикс ".enc.json" и временные файлы атомарной записи
_MAX_FILENAME_BYTES = 200


class PathUtils:
    """Утилиты для работы с путями файловой системы."""

    @staticmethod
    def ensure_dir(path: Union[str, Path]) -> Path:
        """
        Гарантирует существование директории.

        Аргументы:
            path: Путь к директории

        Возвращает:
            Path: Объект Path созданной директории
        """
        path_obj = Path(path)
        path_obj.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Директория создана или уже существует: {path_obj}")
        return path_obj

    @staticmethod
    def encode_filename(name: str) -> str:
        """
        Кодирует имя категории в имя файла записи.

        Кодирование взаимно однозначно: недопустимые в именах файлов символы,
        а также "%", "~" и "." заменяются на %XX, поэтому разные имена не
        попадают в один файл и не совпадают с суффиксом ".enc". Слишком
        длинные имена укорачиваются с добавлением хэша исходного имени.

        Аргументы:
            name: Имя категории

        Возвращает:
            str: Имя файла без суффикса

        Raises:
            ValueError: Пустое имя
        """
        if not name:
            raise ValueError("Имя категории не может быть пустым")

        encoded = _ESCAPED_FILENAME_CHARS.sub(lambda m: f"%{ord(m.group()):02X}", name)
        # Пробел в конце имени теряется на части файловых систем
        if encoded.endswith(" "):
            encoded = encoded[:-1] + "%20"

        raw = encoded.encode("utf-8")
        if len(raw) > _MAX_FILENAME_BYTES:
            digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:16]
            prefix = raw[:_MAX_FILENAME_BYTES - len(digest) - 1].decode("utf-8", errors="ignore")
            encoded = f"{prefix}~{digest}"

        return encoded

    @staticmethod
    def decode_filename(encoded: str) -> str:
        """Восстанавливает имя категории из имени файла (для укороченных имен - приблизительно)."""
        return unquote(encoded)

    @staticmethod
    def atomic_write_text(path: Union[str, Path], content: str) -> None:
        """
        Атомарно записывает текст в файл.

        Данные пишутся во временный файл в той же директории, сбрасываются на
        диск и затем переименовываются поверх целевого файла.

        Аргументы:
            path: Целевой файл
            content: Содержимое в UTF-8

        Raises:
            OSError: При ошибке файловой системы (временный файл удаляется)
        """
        target = Path(path)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Файл атомарно записан: {target}")


class TextUtils:
    """Утилиты для обработки текста и строк."""

    @staticmethod
    def clean_text(text: Optional[str]) -> str:
        """
        Очищает текст от лишних пробелов и символов.

        Аргументы:
            text: Исходный текст (может быть None)

        Возвращает:
            str: Очищенный текст
        """
        if not text:
            return ""

        return re.sub(r"\s+", " ", text).strip()

    @staticmethod
    def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
        """
        Обрезает текст до указанной длины.

        Аргументы:
            text: Исходный текст
            max_length: Максимальная длина
            suffix: Суффикс для обозначения обрезки

        Возвращает:
            str: Обрезанный текст
        """
        if len(text) <= max_length:
            return text

        return text[: max_length - len(suffix)] + suffix


class DateUtils:
    """Утилиты для работы с датами и временем."""

    # Разница между 1601 и 1970 годами в микросекундах
    CHROME_EPOCH_OFFSET = 11644473600000000

    @staticmethod
    def chrome_timestamp_to_datetime(chrome_timestamp: Union[str, int, None]) -> Optional[datetime]:
        """
        Преобразует временную метку Chrome в datetime.

        Аргументы:
            chrome_timestamp: Временная метка Chrome (микросекунды с 1601 года)

        Возвращает:
            datetime: Объект datetime или None при ошибке
        """
        if chrome_timestamp in (None, "", "0", 0):
            return None
        try:
            chrome_ts = int(chrome_timestamp)
            unix_timestamp = (chrome_ts - DateUtils.CHROME_EPOCH_OFFSET) / 1000000.0
            return datetime.fromtimestamp(unix_timestamp)
        except (ValueError, OSError, OverflowError) as e:
            logger.error(f"Ошибка преобразования временной метки Chrome: {e}")
            return None

    @staticmethod
    def to_iso(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @staticmethod
    def from_iso(value: Optional[str]) -> Optional[datetime]:
        """
        Разбирает дату в ISO формате.

        Аргументы:
            value: Строка даты или None

        Возвращает:
            datetime: Дата или None, если значение пустое или некорректное
        """
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except (TypeError, ValueError):
            logger.warning(f"Некорректная дата в записи: {value!r}")
            return None

    @staticmethod
    def format_duration(seconds: float) -> str:
        if seconds < 60:
            return f"{seconds:.1f} сек"
        elif seconds < 3600:
            return f"{seconds / 60:.1f} мин"
        return f"{seconds / 3600:.1f} час"


class ValidationUtils:
    """Утилиты для валидации данных."""

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Проверяет, что строка является http/https URL с хостом.

        Аргументы:
            url: URL для проверки

        Возвращает:
            bool: True если URL корректный, иначе False
        """
        try:
            result = urlparse(url)
            return all([result.scheme in ["http", "https"], result.netloc])
        except (TypeError, ValueError):
            return False
