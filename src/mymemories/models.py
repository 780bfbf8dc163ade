"""
Модуль models.py
Содержит модели данных каталога: категории, ссылки, перечисления защиты и
статуса URL, а также чистые функции описания статусов для отображения.
Используется dataclass для удобного представления структур.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set
from urllib.parse import urlparse


class PasswordProtection(Enum):
    """Режим защиты категории паролем. Значения совпадают с форматом записи."""

    NONE = "None"
    GLOBAL_PASSWORD = "GlobalPassword"
    OWN_PASSWORD = "OwnPassword"


class UrlStatus(Enum):
    """Результат последней проверки доступности ссылки."""

    UNKNOWN = "Unknown"
    ACCESSIBLE = "Accessible"
    ERROR = "Error"
    NOT_FOUND = "NotFound"


class Severity(Enum):
    NEUTRAL = "neutral"
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class StatusDescriptor:
    """
    Описание статуса для интерфейса без привязки к конкретному виджету.

    Атрибуты:
        label: Короткая подпись
        severity: Уровень важности (определяет цвет/иконку во внешнем UI)
    """
    label: str
    severity: Severity


@dataclass
class LinkItem:
    """
    Класс для представления одной ссылки каталога.

    Атрибуты:
        title: Заголовок ссылки
        target: URL или путь к файлу/папке
        description: Описание
        tags: Множество идентификаторов тегов
        url_status: Статус последней проверки (только для веб-ссылок)
        url_status_message: Подробности последней проверки
        url_last_checked: Время последней проверки
        archived_date: Дата перемещения в архив
        original_category_path: Путь категории, из которой ссылка была архивирована
    """
    title: str
    target: str
    description: str = ""
    created_date: datetime = field(default_factory=datetime.now)
    modified_date: datetime = field(default_factory=datetime.now)
    file_size_bytes: Optional[int] = None
    is_directory: bool = False
    tags: Set[str] = field(default_factory=set)
    url_status: UrlStatus = UrlStatus.UNKNOWN
    url_status_message: str = ""
    url_last_checked: Optional[datetime] = None
    archived_date: Optional[datetime] = None
    original_category_path: Optional[str] = None

    @property
    def is_web_url(self) -> bool:
        """True, если цель ссылки является http/https URL с хостом."""
        if self.is_directory:
            return False
        try:
            parsed = urlparse(self.target)
        except ValueError:
            return False
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    @property
    def show_url_status(self) -> bool:
        return self.is_web_url and self.url_status != UrlStatus.UNKNOWN

    def reset_url_status(self) -> None:
        self.url_status = UrlStatus.UNKNOWN
        self.url_status_message = ""
        self.url_last_checked = None


@dataclass
class CategoryItem:
    """
    Класс для представления категории.
    Поддерживает вложенную структуру категорий.

    Атрибуты:
        name: Название категории (уникально среди соседних)
        description: Описание
        icon: Иконка (эмодзи)
        children: Вложенные категории в порядке хранения
        links: Ссылки категории в порядке хранения
        password_protection: Режим защиты
        own_password_hash: Argon2-хэш собственного пароля подкатегории
        is_archive_node: Синтетический узел архива (не сохраняется)
        is_locked: Заглушка зашифрованной категории без пароля (не сохраняется)
    """
    name: str
    description: str = ""
    icon: str = "📁"
    children: List['CategoryItem'] = field(default_factory=list)
    links: List[LinkItem] = field(default_factory=list)
    password_protection: PasswordProtection = PasswordProtection.NONE
    own_password_hash: Optional[str] = None
    created_date: datetime = field(default_factory=datetime.now)
    modified_date: datetime = field(default_factory=datetime.now)
    tags: Set[str] = field(default_factory=set)
    archived_date: Optional[datetime] = None
    original_parent_path: Optional[str] = None
    is_archive_node: bool = False
    is_locked: bool = False

    @classmethod
    def locked_placeholder(
        cls, name: str, protection: PasswordProtection = PasswordProtection.GLOBAL_PASSWORD
    ) -> 'CategoryItem':
        """
        Создает заглушку для зашифрованной категории, пароль к которой неизвестен.

        Аргументы:
            name: Имя категории
            protection: Режим защиты из заголовка записи

        Возвращает:
            CategoryItem: Видимая, но не раскрываемая категория
        """
        return cls(name=name, icon="🔒", password_protection=protection, is_locked=True)

    @property
    def is_protected(self) -> bool:
        return self.password_protection != PasswordProtection.NONE


@dataclass
class CategoryStatistics:
    """
    Статистика категории с учетом всех вложенных категорий.

    Атрибуты:
        link_count: Общее количество ссылок
        subcategory_count: Общее количество вложенных категорий
        web_link_count: Количество веб-ссылок
    """
    link_count: int = 0
    subcategory_count: int = 0
    web_link_count: int = 0

    @classmethod
    def of(cls, category: CategoryItem) -> 'CategoryStatistics':
        stats = cls(link_count=len(category.links),
                    web_link_count=sum(1 for link in category.links if link.is_web_url))
        for child in category.children:
            child_stats = cls.of(child)
            stats.subcategory_count += 1 + child_stats.subcategory_count
            stats.link_count += child_stats.link_count
            stats.web_link_count += child_stats.web_link_count
        return stats


_URL_STATUS_DESCRIPTORS = {
    UrlStatus.UNKNOWN: StatusDescriptor("Не проверено", Severity.NEUTRAL),
    UrlStatus.ACCESSIBLE: StatusDescriptor("Доступен", Severity.OK),
    UrlStatus.ERROR: StatusDescriptor("Ошибка", Severity.WARNING),
    UrlStatus.NOT_FOUND: StatusDescriptor("Не найден", Severity.CRITICAL),
}

_PROTECTION_DESCRIPTORS = {
    PasswordProtection.NONE: StatusDescriptor("Без пароля", Severity.NEUTRAL),
    PasswordProtection.GLOBAL_PASSWORD: StatusDescriptor("Общий пароль", Severity.WARNING),
    PasswordProtection.OWN_PASSWORD: StatusDescriptor("Собственный пароль", Severity.WARNING),
}


def describe_url_status(status: UrlStatus) -> StatusDescriptor:
    """
    Возвращает описание статуса URL для отображения.

    Аргументы:
        status: Статус ссылки

    Возвращает:
        StatusDescriptor: Подпись и уровень важности
    """
    return _URL_STATUS_DESCRIPTORS[status]


def describe_protection(protection: PasswordProtection, is_locked: bool = False) -> StatusDescriptor:
    """
    Возвращает описание режима защиты категории.

    Аргументы:
        protection: Режим защиты
        is_locked: Категория не расшифрована

    Возвращает:
        StatusDescriptor: Подпись и уровень важности
    """
    if is_locked:
        return StatusDescriptor("Заблокировано", Severity.CRITICAL)
    return _PROTECTION_DESCRIPTORS[protection]
