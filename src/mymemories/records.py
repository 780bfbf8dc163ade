"""
Модуль records.py
Преобразование категорий и ссылок в JSON-документы записей и обратно.

Формат записи использует имена полей в camelCase. Неизвестные поля
игнорируются, отсутствующие необязательные поля получают значения по
умолчанию. Статус проверки URL и состояние блокировки не сохраняются.
"""
from typing import Any, Dict, List, Type, TypeVar

from .exceptions import RecordSchemaError
from .logger import get_logger
from .models import CategoryItem, LinkItem, PasswordProtection, UrlStatus
from .utils import DateUtils

logger = get_logger(__name__)

E = TypeVar("E", PasswordProtection, UrlStatus)


def parse_enum(enum_cls: Type[E], value: Any, default: E) -> E:
    """
    Разбирает значение перечисления по строковому имени или порядковому номеру.

    Raises:
        RecordSchemaError: Если значение не соответствует ни одному элементу
    """
    if value is None:
        return default
    if isinstance(value, int) and not isinstance(value, bool):
        members = list(enum_cls)
        if 0 <= value < len(members):
            return members[value]
    elif isinstance(value, str):
        for member in enum_cls:
            if value == member.value or value.upper() == member.name:
                return member
    raise RecordSchemaError(f"Недопустимое значение {enum_cls.__name__}: {value!r}")


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RecordSchemaError(f"Поле '{key}' обязательно и должно быть непустой строкой")
    return value


def _optional_str(data: Dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise RecordSchemaError(f"Поле '{key}' должно быть строкой")
    return value


def _tags(data: Dict[str, Any]) -> set:
    value = data.get("tagIds") or []
    if not isinstance(value, list):
        raise RecordSchemaError("Поле 'tagIds' должно быть списком")
    return {str(tag) for tag in value}


def _list_field(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise RecordSchemaError(f"Поле '{key}' должно быть списком")
    return value


def link_to_dict(link: LinkItem) -> Dict[str, Any]:
    """Сериализует ссылку в словарь записи."""
    data: Dict[str, Any] = {
        "title": link.title,
        "url": link.target,
        "description": link.description,
        "tagIds": sorted(link.tags),
        "isDirectory": link.is_directory,
        "createdDate": DateUtils.to_iso(link.created_date),
        "modifiedDate": DateUtils.to_iso(link.modified_date),
    }
    if link.file_size_bytes is not None:
        data["fileSize"] = link.file_size_bytes
    if link.archived_date is not None:
        data["archivedDate"] = DateUtils.to_iso(link.archived_date)
        data["originalCategoryPath"] = link.original_category_path
    return data


def link_from_dict(data: Any) -> LinkItem:
    """
    Восстанавливает ссылку из словаря записи.

    Raises:
        RecordSchemaError: Если документ не соответствует формату ссылки
    """
    if not isinstance(data, dict):
        raise RecordSchemaError("Ссылка должна быть JSON-объектом")

    file_size = data.get("fileSize")
    if file_size is not None and (not isinstance(file_size, int) or isinstance(file_size, bool)):
        raise RecordSchemaError("Поле 'fileSize' должно быть целым числом")

    link = LinkItem(
        title=_optional_str(data, "title"),
        target=_optional_str(data, "url"),
        description=_optional_str(data, "description"),
        file_size_bytes=file_size,
        is_directory=bool(data.get("isDirectory") or False),
        tags=_tags(data),
        archived_date=DateUtils.from_iso(data.get("archivedDate")),
        original_category_path=data.get("originalCategoryPath"),
    )
    created = DateUtils.from_iso(data.get("createdDate"))
    modified = DateUtils.from_iso(data.get("modifiedDate"))
    if created:
        link.created_date = created
    if modified:
        link.modified_date = modified
    return link


def category_to_dict(category: CategoryItem) -> Dict[str, Any]:
    """
    Сериализует категорию вместе со всеми вложенными категориями и ссылками.

    Аргументы:
        category: Категория

    Возвращает:
        Dict[str, Any]: Документ записи
    """
    data: Dict[str, Any] = {
        "name": category.name,
        "description": category.description,
        "icon": category.icon,
        "tagIds": sorted(category.tags),
        "createdDate": DateUtils.to_iso(category.created_date),
        "modifiedDate": DateUtils.to_iso(category.modified_date),
        "passwordProtection": category.password_protection.value,
    }
    if category.own_password_hash:
        data["ownPasswordHash"] = category.own_password_hash
    if category.archived_date is not None:
        data["archivedDate"] = DateUtils.to_iso(category.archived_date)
        data["originalParentPath"] = category.original_parent_path
    data["links"] = [link_to_dict(link) for link in category.links]
    data["subCategories"] = [category_to_dict(child) for child in category.children]
    return data


def category_from_dict(data: Any) -> CategoryItem:
    """
    Восстанавливает категорию из документа записи.

    Аргументы:
        data: Разобранный JSON

    Возвращает:
        CategoryItem: Категория с вложенными элементами

    Raises:
        RecordSchemaError: Если документ не соответствует формату категории
    """
    if not isinstance(data, dict):
        raise RecordSchemaError("Категория должна быть JSON-объектом")

    category = CategoryItem(
        name=_require_str(data, "name"),
        description=_optional_str(data, "description"),
        icon=_optional_str(data, "icon", "📁") or "📁",
        password_protection=parse_enum(
            PasswordProtection, data.get("passwordProtection"), PasswordProtection.NONE
        ),
        own_password_hash=data.get("ownPasswordHash") or None,
        tags=_tags(data),
        archived_date=DateUtils.from_iso(data.get("archivedDate")),
        original_parent_path=data.get("originalParentPath"),
    )
    created = DateUtils.from_iso(data.get("createdDate"))
    modified = DateUtils.from_iso(data.get("modifiedDate"))
    if created:
        category.created_date = created
    if modified:
        category.modified_date = modified

    category.links = [link_from_dict(item) for item in _list_field(data, "links")]
    category.children = [category_from_dict(item) for item in _list_field(data, "subCategories")]

    names = [child.name for child in category.children]
    if len(names) != len(set(names)):
        raise RecordSchemaError(f"Повторяющиеся имена подкатегорий в '{category.name}'")

    logger.debug(
        f"Категория разобрана: {category.name} "
        f"(ссылок: {len(category.links)}, подкатегорий: {len(category.children)})"
    )
    return category
