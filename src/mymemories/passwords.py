"""
Модуль passwords.py
Кэш паролей в памяти на время сеанса.

Хранит общий пароль и пароли отдельных категорий (по полному пути "A.B.C").
Пароли никогда не сохраняются на диск и не попадают в логи.
"""
import threading
from typing import Dict, Optional

from .logger import get_logger
from .models import PasswordProtection

logger = get_logger(__name__)


class PasswordCache:
    """
    Потокобезопасный кэш паролей.

    Создается явно и передается в хранилище категорий.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._global: Optional[str] = None
        self._categories: Dict[str, str] = {}

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"PasswordCache(global_set={self._global is not None}, "
                f"categories={len(self._categories)})"
            )

    def set_global(self, password: str) -> None:
        """
        Запоминает общий пароль.

        Аргументы:
            password: Непустой пароль

        Raises:
            ValueError: Если пароль пустой
        """
        if not password:
            raise ValueError("Пароль не может быть пустым")
        with self._lock:
            self._global = password
        logger.debug("Общий пароль сохранен в кэше")

    def set_category(self, category_path: str, password: str) -> None:
        """
        Запоминает пароль категории.

        Аргументы:
            category_path: Полный путь категории ("A.B.C")
            password: Непустой пароль

        Raises:
            ValueError: Если путь или пароль пустые
        """
        if not category_path:
            raise ValueError("Путь категории не может быть пустым")
        if not password:
            raise ValueError("Пароль не может быть пустым")
        with self._lock:
            self._categories[category_path] = password
        logger.debug(f"Пароль категории сохранен в кэше: {category_path}")

    def get_global(self) -> Optional[str]:
        with self._lock:
            return self._global

    def get_category(self, category_path: str) -> Optional[str]:
        with self._lock:
            return self._categories.get(category_path)

    def resolve(self, category_path: str, protection: PasswordProtection) -> Optional[str]:
        """
        Выбирает пароль для категории по режиму защиты.

        Общий пароль берется из общего слота независимо от пути. Собственный
        пароль ищется только по точному пути, без наследования от родителей.

        Аргументы:
            category_path: Полный путь категории
            protection: Режим защиты

        Возвращает:
            Optional[str]: Пароль или None, если он неизвестен
        """
        if protection == PasswordProtection.GLOBAL_PASSWORD:
            return self.get_global()
        if protection == PasswordProtection.OWN_PASSWORD:
            return self.get_category(category_path)
        return None

    def clear(self) -> None:
        with self._lock:
            count = len(self._categories) + (1 if self._global is not None else 0)
            self._global = None
            self._categories.clear()
        logger.info(f"Кэш паролей очищен ({count} записей)")

    def __len__(self) -> int:
        with self._lock:
            return len(self._categories) + (1 if self._global is not None else 0)

    def __contains__(self, category_path: object) -> bool:
        with self._lock:
            return category_path in self._categories
