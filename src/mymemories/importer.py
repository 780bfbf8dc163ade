"""
Модуль importer.py
Импорт закладок браузера Chrome в каталог.
Папки закладок становятся подкатегориями, закладки - ссылками.
"""
import json
from typing import Any, Dict, Union

from .logger import get_logger, log_error_with_context, log_function_call
from .models import CategoryItem, CategoryStatistics, LinkItem
from .utils import DateUtils

logger = get_logger(__name__)

# Корневые разделы файла закладок и их постоянные названия в каталоге
ROOT_SECTIONS = (
    ("bookmark_bar", "Bookmarks Bar"),
    ("other", "Other Bookmarks"),
    ("synced", "Mobile Bookmarks"),
)


class BookmarkImporter:
    """
    Класс для импорта JSON-файла закладок Chrome.
    Строит дерево категорий и ссылок.
    """

    def load_json(self, file_path: str) -> dict:
        """
        Загружает и валидирует JSON-файл закладок.

        Аргументы:
            file_path: Путь к JSON-файлу закладок

        Возвращает:
            dict: Словарь с данными закладок

        Raises:
            FileNotFoundError: Если файл не найден
            json.JSONDecodeError: Если файл содержит некорректный JSON
            ValueError: Если структура JSON некорректна
        """
        log_function_call("BookmarkImporter.load_json", (file_path,))
        logger.info(f"Загрузка JSON-файла закладок: {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as file:
                data = json.load(file)
        except FileNotFoundError as e:
            log_error_with_context(e, {"file_path": file_path, "operation": "load_json"})
            raise
        except json.JSONDecodeError as e:
            log_error_with_context(
                e, {"file_path": file_path, "operation": "json_parse", "error_line": e.lineno}
            )
            raise

        if not isinstance(data, dict):
            error_msg = "JSON должен быть словарем"
        elif not isinstance(data.get('roots'), dict):
            error_msg = "Отсутствует или некорректно поле 'roots'"
        else:
            error_msg = ""

        if error_msg:
            error = ValueError(f"Некорректная структура JSON в файле {file_path}: {error_msg}")
            log_error_with_context(error, {"file_path": file_path, "operation": "validate"})
            raise error

        logger.info(f"Файл JSON успешно загружен: {file_path}")
        return data

    def import_category(self, data: dict, name: str) -> CategoryItem:
        """
        Преобразует данные закладок в корневую категорию.

        Аргументы:
            data: Словарь с данными закладок (результат load_json)
            name: Имя создаваемой корневой категории

        Возвращает:
            CategoryItem: Категория с подкатегориями для непустых корневых разделов
        """
        log_function_call("BookmarkImporter.import_category", (name,))

        root = CategoryItem(name=name, icon="🔖", description="Импорт закладок Chrome")
        roots = data.get("roots", {})

        for key, section_name in ROOT_SECTIONS:
            section = roots.get(key)
            if not section:
                continue
            item = self._traverse_node(section, section_name)
            if isinstance(item, CategoryItem) and (item.children or item.links):
                item.name = section_name
                self._append_unique(root, item)

        stats = CategoryStatistics.of(root)
        logger.info(
            f"Импорт завершен: {name} (подкатегорий: {stats.subcategory_count}, ссылок: {stats.link_count})"
        )
        return root

    @staticmethod
    def _append_unique(parent: CategoryItem, child: CategoryItem) -> None:
        """Добавляет подкатегорию, делая имя уникальным среди соседних."""
        existing = {c.name for c in parent.children}
        base, suffix = child.name, 2
        while child.name in existing:
            child.name = f"{base} ({suffix})"
            suffix += 1
        parent.children.append(child)

    def _traverse_node(
        self, node: Dict[str, Any], default_name: str = "Untitled"
    ) -> Union[CategoryItem, LinkItem, None]:
        """
        Рекурсивно обходит узел закладок.

        Аргументы:
            node: Узел из JSON-файла закладок
            default_name: Имя по умолчанию для узла

        Возвращает:
            CategoryItem или LinkItem: Категория для папки, ссылка для закладки
        """
        node_type = str(node.get("type", "")).lower()
        title = node.get("name") or default_name
        date_added = DateUtils.chrome_timestamp_to_datetime(node.get("date_added"))

        if node_type == "folder":
            folder = CategoryItem(name=title)
            if date_added:
                folder.created_date = date_added
            for child in node.get("children", []):
                parsed = self._traverse_node(child)
                if isinstance(parsed, CategoryItem):
                    self._append_unique(folder, parsed)
                elif isinstance(parsed, LinkItem):
                    folder.links.append(parsed)
            logger.debug(
                f"Создана категория '{title}': {len(folder.children)} подкатегорий, {len(folder.links)} ссылок"
            )
            return folder

        if node_type == "url":
            url = node.get("url", "")
            if not url:
                logger.warning(f"Найдена закладка без URL: {title}")
                return None
            link = LinkItem(title=title, target=url)
            if date_added:
                link.created_date = date_added
                link.modified_date = date_added
            return link

        logger.warning(f"Неизвестный тип узла закладки: {node_type}, заголовок: {title}")
        return None
