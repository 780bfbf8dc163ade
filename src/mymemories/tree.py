"""
Модуль tree.py
Проекция категорий в дерево узлов для отображения.

Узлы хранятся в массиве слотов и адресуются идентификатором NodeId
(индекс слота + поколение). Обновление узла сохраняет слот, но увеличивает
поколение, поэтому старые идентификаторы становятся недействительными.
Структурные изменения дерева синхронно применяются к вложенным спискам
CategoryItem, чтобы корневую категорию можно было сразу сохранить.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .exceptions import StaleNodeError
from .logger import get_logger
from .models import CategoryItem, CategoryStatistics, LinkItem

logger = get_logger(__name__)

Payload = Union[CategoryItem, LinkItem]

PATH_SEPARATOR = "."


@dataclass(frozen=True)
class NodeId:
    """Идентификатор узла: индекс слота и поколение."""

    index: int
    generation: int


class NodeKind(Enum):
    CATEGORY = "category"
    LINK = "link"


@dataclass
class TreeNode:
    """
    Узел дерева.

    Атрибуты:
        kind: Тип узла
        payload: Категория или ссылка
        parent: Индекс слота родителя (None для корня)
        children: Индексы слотов дочерних узлов: сначала подкатегории, затем ссылки
        generation: Текущее поколение слота
    """
    kind: NodeKind
    payload: Payload
    parent: Optional[int]
    generation: int
    children: List[int] = field(default_factory=list)

    @property
    def is_expandable(self) -> bool:
        """Заблокированные категории видны, но не раскрываются."""
        return self.kind == NodeKind.CATEGORY and not self.payload.is_locked


class CategoryTree:
    """
    Лес категорий и ссылок с синтетическим узлом архива в конце корневого уровня.
    """

    def __init__(self) -> None:
        self._slots: List[Optional[TreeNode]] = []
        self._generations: List[int] = []
        self._free: List[int] = []
        self._roots: List[int] = []
        self._archive: Optional[int] = None

    # ------------------------------------------------------------------
    # Построение

    @classmethod
    def build(
        cls, categories: Sequence[CategoryItem], archive_node: Optional[CategoryItem] = None
    ) -> 'CategoryTree':
        """
        Строит дерево из корневых категорий.

        Аргументы:
            categories: Корневые категории в порядке отображения
            archive_node: Узел архива (добавляется последним)

        Возвращает:
            CategoryTree: Построенное дерево
        """
        tree = cls()
        for category in categories:
            tree._roots.append(tree._attach_category(category, None))
        if archive_node is not None:
            tree.ensure_archive_node(archive_node)
        logger.debug(f"Дерево построено: корней {len(tree._roots)}, узлов {len(tree)}")
        return tree

    def ensure_archive_node(self, archive_node: CategoryItem) -> NodeId:
        """
        Добавляет или заменяет узел архива; он всегда последний среди корней.

        Аргументы:
            archive_node: Категория архива (is_archive_node=True)

        Возвращает:
            NodeId: Идентификатор узла архива
        """
        archive_node.is_archive_node = True
        if self._archive is not None:
            self._roots.remove(self._archive)
            self._release(self._archive)
        self._archive = self._attach_category(archive_node, None)
        self._roots.append(self._archive)
        return self._id(self._archive)

    @property
    def archive_id(self) -> Optional[NodeId]:
        return self._id(self._archive) if self._archive is not None else None

    def _allocate(self, node: TreeNode) -> int:
        if self._free:
            index = self._free.pop()
            node.generation = self._generations[index]
            self._slots[index] = node
        else:
            index = len(self._slots)
            self._slots.append(node)
            self._generations.append(node.generation)
        return index

    def _attach_category(self, category: CategoryItem, parent: Optional[int]) -> int:
        index = self._allocate(TreeNode(NodeKind.CATEGORY, category, parent, 0))
        node = self._slots[index]
        for child in category.children:
            node.children.append(self._attach_category(child, index))
        for link in category.links:
            node.children.append(self._allocate(TreeNode(NodeKind.LINK, link, index, 0)))
        return index

    def _release(self, index: int) -> None:
        """Освобождает слот и все дочерние слоты; их идентификаторы устаревают."""
        node = self._slots[index]
        for child in node.children:
            self._release(child)
        self._slots[index] = None
        self._generations[index] += 1
        self._free.append(index)

    # ------------------------------------------------------------------
    # Доступ

    def _id(self, index: int) -> NodeId:
        return NodeId(index, self._generations[index])

    def _node(self, node_id: NodeId) -> TreeNode:
        if not 0 <= node_id.index < len(self._slots):
            raise StaleNodeError(f"Узел не существует: {node_id}")
        node = self._slots[node_id.index]
        if node is None or self._generations[node_id.index] != node_id.generation:
            raise StaleNodeError(
                f"Идентификатор узла устарел: {node_id}",
                details={"index": node_id.index, "generation": node_id.generation},
            )
        return node

    def _category_node(self, node_id: NodeId) -> TreeNode:
        node = self._node(node_id)
        if node.kind != NodeKind.CATEGORY:
            raise ValueError(f"Узел {node_id} не является категорией")
        return node

    def get(self, node_id: NodeId) -> TreeNode:
        """
        Возвращает узел по идентификатору.

        Raises:
            StaleNodeError: Идентификатор устарел или узел удален
        """
        return self._node(node_id)

    def payload(self, node_id: NodeId) -> Payload:
        return self._node(node_id).payload

    def parent(self, node_id: NodeId) -> Optional[NodeId]:
        node = self._node(node_id)
        return self._id(node.parent) if node.parent is not None else None

    def children(self, node_id: NodeId) -> List[NodeId]:
        return [self._id(child) for child in self._node(node_id).children]

    def roots(self) -> List[NodeId]:
        return [self._id(index) for index in self._roots]

    def root_categories(self) -> List[CategoryItem]:
        """Корневые категории без узла архива."""
        return [self._slots[i].payload for i in self._roots if i != self._archive]

    def sibling_index(self, node_id: NodeId) -> int:
        """Позиция узла среди соседей того же типа (для корневых - среди корней)."""
        node = self._node(node_id)
        if node.parent is None:
            return self._roots.index(node_id.index)
        parent_payload = self._slots[node.parent].payload
        items = parent_payload.children if node.kind == NodeKind.CATEGORY else parent_payload.links
        return next(i for i, item in enumerate(items) if item is node.payload)

    def __len__(self) -> int:
        return sum(1 for node in self._slots if node is not None)

    def display_name(self, node_id: NodeId) -> str:
        """Подпись узла; для архива включает количество элементов."""
        node = self._node(node_id)
        if node.kind == NodeKind.LINK:
            return node.payload.title or node.payload.target
        if node.payload.is_archive_node:
            return f"Archived ({len(node.children)})"
        return node.payload.name

    # ------------------------------------------------------------------
    # Пути и обход

    def get_category_path(self, node_id: NodeId) -> str:
        """
        Возвращает полный путь категории вида "A.B.C".

        Для ссылки возвращается путь категории, в которой она находится.

        Аргументы:
            node_id: Идентификатор узла

        Возвращает:
            str: Имена категорий от корня, разделенные точкой
        """
        node = self._node(node_id)
        index: Optional[int] = node_id.index if node.kind == NodeKind.CATEGORY else node.parent
        names: List[str] = []
        while index is not None:
            current = self._slots[index]
            names.append(current.payload.name)
            index = current.parent
        return PATH_SEPARATOR.join(reversed(names))

    def _walk(self, index: int) -> Iterator[int]:
        yield index
        for child in self._slots[index].children:
            yield from self._walk(child)

    def get_subtree(self, category_id: NodeId) -> List[Tuple[NodeId, Payload]]:
        """
        Возвращает категорию и все вложенные узлы в прямом порядке обхода.

        Сначала сама категория, затем дочерние узлы в порядке хранения
        (подкатегории со своими поддеревьями, затем ссылки).

        Аргументы:
            category_id: Идентификатор категории

        Возвращает:
            List[Tuple[NodeId, Payload]]: Пары (идентификатор, данные)
        """
        self._category_node(category_id)
        return [(self._id(i), self._slots[i].payload) for i in self._walk(category_id.index)]

    def get_category_with_subcategories(self, category_id: NodeId) -> List[Tuple[str, NodeId]]:
        """
        Возвращает пути и идентификаторы категории и всех вложенных категорий.

        Аргументы:
            category_id: Идентификатор категории

        Возвращает:
            List[Tuple[str, NodeId]]: Сначала сама категория, затем вложенные
        """
        result = []
        for node_id, payload in self.get_subtree(category_id):
            if isinstance(payload, CategoryItem):
                result.append((self.get_category_path(node_id), node_id))
        return result

    def find_by_path(self, path: str) -> Optional[NodeId]:
        """Находит категорию по полному пути "A.B.C"."""
        for root in self._roots:
            for index in self._walk(root):
                node_id = self._id(index)
                if self._slots[index].kind == NodeKind.CATEGORY and self.get_category_path(node_id) == path:
                    return node_id
        return None

    def root_of(self, node_id: NodeId) -> NodeId:
        index = node_id.index
        node = self._node(node_id)
        while node.parent is not None:
            index = node.parent
            node = self._slots[index]
        return self._id(index)

    def statistics(self, category_id: NodeId) -> CategoryStatistics:
        return CategoryStatistics.of(self._category_node(category_id).payload)

    def reset_url_status(self, category_id: NodeId) -> int:
        """
        Сбрасывает статус проверки всех веб-ссылок в поддереве.

        Возвращает:
            int: Количество сброшенных ссылок
        """
        count = 0
        for _, payload in self.get_subtree(category_id):
            if isinstance(payload, LinkItem) and payload.is_web_url:
                payload.reset_url_status()
                count += 1
        logger.info(f"Статус URL сброшен для {count} ссылок: {self.get_category_path(category_id)}")
        return count

    # ------------------------------------------------------------------
    # Изменения

    def refresh_node(self, old_id: NodeId, new_data: Payload) -> NodeId:
        """
        Заменяет данные узла, сохраняя его положение.

        Узел остается в том же слоте у того же родителя и на той же позиции.
        Поколение слота увеличивается, поэтому old_id становится устаревшим.
        При обновлении категории сохраняется существующее поддерево.

        Аргументы:
            old_id: Текущий идентификатор узла
            new_data: Новые данные того же типа

        Возвращает:
            NodeId: Новый идентификатор узла

        Raises:
            StaleNodeError: old_id устарел
            TypeError: Тип данных не соответствует типу узла
            ValueError: Новое имя уже занято среди соседних категорий
        """
        node = self._node(old_id)
        old_payload = node.payload

        if node.kind == NodeKind.CATEGORY:
            if not isinstance(new_data, CategoryItem):
                raise TypeError("Узел категории можно обновить только категорией")
            if node.parent is None:
                siblings = self.root_categories()
            elif self._slots[node.parent].payload.is_archive_node:
                siblings = []
            else:
                siblings = self._slots[node.parent].payload.children
            self._check_unique_name([s for s in siblings if s is not old_payload], new_data.name)
            new_data.children = old_payload.children
            new_data.links = old_payload.links
            new_data.is_archive_node = old_payload.is_archive_node
        elif not isinstance(new_data, LinkItem):
            raise TypeError("Узел ссылки можно обновить только ссылкой")

        if node.parent is not None:
            parent_payload = self._slots[node.parent].payload
            items = parent_payload.children if node.kind == NodeKind.CATEGORY else parent_payload.links
            position = next(i for i, item in enumerate(items) if item is old_payload)
            items[position] = new_data

        node.payload = new_data
        self._generations[old_id.index] += 1
        node.generation = self._generations[old_id.index]
        return self._id(old_id.index)

    def _check_unique_name(self, siblings: Sequence[CategoryItem], name: str) -> None:
        if any(sibling.name == name for sibling in siblings):
            raise ValueError(f"Категория с именем '{name}' уже существует")

    def add_category(
        self, parent_id: Optional[NodeId], category: CategoryItem, position: Optional[int] = None
    ) -> NodeId:
        """
        Добавляет категорию вместе с ее поддеревом.

        Аргументы:
            parent_id: Родительская категория или None для корневого уровня
            category: Новая категория
            position: Позиция среди соседних категорий (по умолчанию в конец)

        Возвращает:
            NodeId: Идентификатор новой категории

        Raises:
            ValueError: Имя уже занято среди соседних категорий
        """
        if category.is_archive_node:
            raise ValueError("Узел архива не создается пользователем")

        if parent_id is None:
            self._check_unique_name(self.root_categories(), category.name)
            index = self._attach_category(category, None)
            last = len(self._roots) - 1 if self._archive is not None else len(self._roots)
            self._roots.insert(last if position is None else min(position, last), index)
            return self._id(index)

        parent = self._category_node(parent_id)
        # В архиве могут лежать категории с одинаковыми именами
        if not parent.payload.is_archive_node:
            self._check_unique_name(parent.payload.children, category.name)
        last = len(parent.payload.children)
        position = last if position is None else min(position, last)
        index = self._attach_category(category, parent_id.index)
        parent.children.insert(position, index)
        parent.payload.children.insert(position, category)
        return self._id(index)

    def add_link(self, parent_id: NodeId, link: LinkItem, position: Optional[int] = None) -> NodeId:
        parent = self._category_node(parent_id)
        last = len(parent.payload.links)
        position = last if position is None else min(position, last)
        index = self._allocate(TreeNode(NodeKind.LINK, link, parent_id.index, 0))
        # Ссылки идут в дочерних узлах после подкатегорий
        parent.children.insert(len(parent.payload.children) + position, index)
        parent.payload.links.insert(position, link)
        return self._id(index)

    def remove(self, node_id: NodeId) -> Payload:
        """
        Удаляет узел вместе с поддеревом.

        Аргументы:
            node_id: Идентификатор узла

        Возвращает:
            Payload: Данные удаленного узла
        """
        node = self._node(node_id)
        payload = node.payload

        if node.parent is None:
            self._roots.remove(node_id.index)
            if node_id.index == self._archive:
                self._archive = None
        else:
            parent = self._slots[node.parent]
            parent.children.remove(node_id.index)
            items = parent.payload.children if node.kind == NodeKind.CATEGORY else parent.payload.links
            position = next(i for i, item in enumerate(items) if item is payload)
            del items[position]

        self._release(node_id.index)
        return payload
