"""
Модуль archive.py
Архив: мягкое удаление категорий и ссылок с возможностью восстановления.

Архивированные элементы хранятся в archive/Archive.json и отображаются в
синтетическом узле архива, который всегда последний среди корней дерева.

Перемещение затрагивает два документа: архив и запись корневой категории.
Оба документа формируются до записи на диск; если это не удалось, дерево
возвращается в исходное состояние. Первым пишется документ, куда элемент
перемещается, поэтому сбой второй записи не приводит к потере элемента.
"""
from datetime import datetime
from functools import partial
from typing import Callable, List, Optional

from .exceptions import MyMemoriesError, OperationResult
from .logger import get_logger, log_error_with_context, log_function_call
from .models import CategoryItem, LinkItem
from .store import ARCHIVE_NODE_NAME, ROOT_PARENT, CategoryStore
from .tree import CategoryTree, NodeId, NodeKind

logger = get_logger(__name__)

Step = Callable[[], OperationResult]


class ArchiveManager:
    """
    Перемещает элементы между деревом категорий и архивом и сохраняет
    затронутые записи.

    Аргументы:
        store: Хранилище категорий
        tree: Дерево категорий
    """

    def __init__(self, store: CategoryStore, tree: CategoryTree):
        self.store = store
        self.tree = tree

    def _archive_id(self) -> NodeId:
        archive_id = self.tree.archive_id
        if archive_id is None:
            archive_id = self.tree.ensure_archive_node(
                CategoryItem(name=ARCHIVE_NODE_NAME, icon="🗄", is_archive_node=True)
            )
        return archive_id

    def _is_archived(self, node_id: NodeId) -> bool:
        archive_id = self.tree.archive_id
        return archive_id is not None and self.tree.root_of(node_id) == archive_id

    def _archive_step(self) -> Step:
        return partial(self.store.commit, self.store.prepare_archive(self.tree.payload(self._archive_id())))

    def _record_step(self, root_id: NodeId) -> Step:
        return partial(self.store.commit, self.store.prepare(self.tree.payload(root_id)))

    def _persist(
        self,
        operation: str,
        prepare: Callable[[], List[Step]],
        rollback: Callable[[], None],
    ) -> OperationResult:
        """
        Формирует документы и записывает их по порядку.

        Аргументы:
            operation: Имя операции для журнала ошибок
            prepare: Формирует шаги записи; выбрасывает MyMemoriesError
            rollback: Возвращает дерево в исходное состояние

        Возвращает:
            OperationResult: Результат первой неуспешной записи или успех
        """
        try:
            steps = prepare()
        except MyMemoriesError as e:
            rollback()
            log_error_with_context(e, {"operation": operation})
            return OperationResult.failed(e)

        first, *rest = steps
        result = first()
        if not result:
            rollback()
            return result
        for step in rest:
            result = step()
            if not result:
                # Элемент уже записан в новое место и остается в старом
                logger.warning(f"{operation}: элемент сохранен в обоих местах: {result.message}")
                return result
        return OperationResult.ok()

    def archive_category(self, node_id: NodeId) -> OperationResult:
        """
        Перемещает категорию в архив.

        Корневая категория теряет свою запись, для вложенной пересохраняется
        корневая категория.

        Аргументы:
            node_id: Идентификатор категории

        Возвращает:
            OperationResult: Результат сохранения
        """
        log_function_call("ArchiveManager.archive_category", (node_id,))

        node = self.tree.get(node_id)
        category = node.payload
        if node.kind != NodeKind.CATEGORY or category.is_archive_node:
            return OperationResult(False, message="Архивировать можно только категорию")
        if category.is_locked:
            return OperationResult(False, message=f"Категория '{category.name}' заблокирована")
        if self._is_archived(node_id):
            return OperationResult(False, message=f"Категория '{category.name}' уже в архиве")

        parent_id = self.tree.parent(node_id)
        root_id: Optional[NodeId] = None
        if parent_id is None:
            original_parent = ROOT_PARENT
        else:
            original_parent = self.tree.get_category_path(parent_id)
            root_id = self.tree.root_of(parent_id)

        position = self.tree.sibling_index(node_id)
        previous = (category.archived_date, category.original_parent_path)
        archive_id = self._archive_id()
        self.tree.remove(node_id)
        category.archived_date = datetime.now()
        category.original_parent_path = original_parent
        archived_id = self.tree.add_category(archive_id, category)

        def prepare() -> List[Step]:
            archive_step = self._archive_step()
            if root_id is None:
                return [archive_step, partial(self.store.delete, category.name)]
            return [archive_step, self._record_step(root_id)]

        def rollback() -> None:
            self.tree.remove(archived_id)
            category.archived_date, category.original_parent_path = previous
            self.tree.add_category(parent_id, category, position)

        result = self._persist("archive_category", prepare, rollback)
        if result:
            logger.info(f"Категория '{category.name}' перемещена в архив (из {original_parent})")
        return result

    def archive_link(self, node_id: NodeId) -> OperationResult:
        """
        Перемещает ссылку в архив и пересохраняет ее корневую категорию.

        Аргументы:
            node_id: Идентификатор ссылки

        Возвращает:
            OperationResult: Результат сохранения
        """
        log_function_call("ArchiveManager.archive_link", (node_id,))

        node = self.tree.get(node_id)
        if node.kind != NodeKind.LINK:
            return OperationResult(False, message="Узел не является ссылкой")
        if self._is_archived(node_id):
            return OperationResult(False, message="Ссылка уже в архиве")

        link: LinkItem = node.payload
        parent_id = self.tree.parent(node_id)
        category_path = self.tree.get_category_path(node_id)
        root_id = self.tree.root_of(node_id)
        position = self.tree.sibling_index(node_id)
        previous = (link.archived_date, link.original_category_path)

        archive_id = self._archive_id()
        self.tree.remove(node_id)
        link.archived_date = datetime.now()
        link.original_category_path = category_path
        archived_id = self.tree.add_link(archive_id, link)

        def rollback() -> None:
            self.tree.remove(archived_id)
            link.archived_date, link.original_category_path = previous
            self.tree.add_link(parent_id, link, position)

        result = self._persist(
            "archive_link", lambda: [self._archive_step(), self._record_step(root_id)], rollback
        )
        if result:
            logger.info(f"Ссылка '{link.title}' перемещена в архив (из {category_path})")
        return result

    def restore_category(self, node_id: NodeId) -> OperationResult:
        """
        Восстанавливает категорию из архива на исходное место.

        Если исходная родительская категория не найдена, категория
        восстанавливается на корневой уровень.

        Аргументы:
            node_id: Идентификатор архивированной категории

        Возвращает:
            OperationResult: Результат сохранения
        """
        log_function_call("ArchiveManager.restore_category", (node_id,))

        node = self.tree.get(node_id)
        category = node.payload
        if node.kind != NodeKind.CATEGORY or not self._is_archived(node_id) or category.is_archive_node:
            return OperationResult(False, message="Узел не является архивированной категорией")
        if category.is_locked:
            return OperationResult(False, message=f"Категория '{category.name}' заблокирована")

        original_path = category.original_parent_path or ROOT_PARENT
        parent_id = None if original_path == ROOT_PARENT else self.tree.find_by_path(original_path)
        if parent_id is not None and self._is_archived(parent_id):
            parent_id = None
        if parent_id is None and original_path != ROOT_PARENT:
            logger.warning(
                f"Родительская категория '{original_path}' не найдена, "
                f"'{category.name}' восстанавливается в корень"
            )

        siblings = (
            self.tree.root_categories()
            if parent_id is None
            else self.tree.payload(parent_id).children
        )
        if any(sibling.name == category.name for sibling in siblings):
            return OperationResult(False, message=f"Категория с именем '{category.name}' уже существует")

        archive_id = self.tree.parent(node_id)
        position = self.tree.sibling_index(node_id)
        previous = (category.archived_date, category.original_parent_path)
        self.tree.remove(node_id)
        category.archived_date = None
        category.original_parent_path = None
        new_id = self.tree.add_category(parent_id, category)

        def rollback() -> None:
            self.tree.remove(new_id)
            category.archived_date, category.original_parent_path = previous
            self.tree.add_category(archive_id, category, position)

        result = self._persist(
            "restore_category",
            lambda: [self._record_step(self.tree.root_of(new_id)), self._archive_step()],
            rollback,
        )
        if result:
            logger.info(f"Категория '{category.name}' восстановлена: {self.tree.get_category_path(new_id)}")
        return result

    def restore_link(self, node_id: NodeId) -> OperationResult:
        """
        Восстанавливает ссылку из архива в исходную категорию.

        Аргументы:
            node_id: Идентификатор архивированной ссылки

        Возвращает:
            OperationResult: Результат; неуспешный, если исходная категория не найдена
        """
        log_function_call("ArchiveManager.restore_link", (node_id,))

        node = self.tree.get(node_id)
        if node.kind != NodeKind.LINK or not self._is_archived(node_id):
            return OperationResult(False, message="Узел не является архивированной ссылкой")

        link: LinkItem = node.payload
        if not link.original_category_path:
            return OperationResult(False, message="Исходная категория ссылки неизвестна")

        parent_id = self.tree.find_by_path(link.original_category_path)
        if parent_id is None or self._is_archived(parent_id):
            return OperationResult(
                False, message=f"Исходная категория '{link.original_category_path}' не найдена"
            )

        archive_id = self.tree.parent(node_id)
        position = self.tree.sibling_index(node_id)
        previous = (link.archived_date, link.original_category_path)
        self.tree.remove(node_id)
        link.archived_date = None
        link.original_category_path = None
        new_id = self.tree.add_link(parent_id, link)

        def rollback() -> None:
            self.tree.remove(new_id)
            link.archived_date, link.original_category_path = previous
            self.tree.add_link(archive_id, link, position)

        result = self._persist(
            "restore_link",
            lambda: [self._record_step(self.tree.root_of(parent_id)), self._archive_step()],
            rollback,
        )
        if result:
            logger.info(f"Ссылка '{link.title}' восстановлена: {self.tree.get_category_path(parent_id)}")
        return result

    def delete_permanently(self, node_id: NodeId) -> OperationResult:
        """
        Окончательно удаляет элемент из архива.

        Аргументы:
            node_id: Идентификатор архивированной категории или ссылки

        Возвращает:
            OperationResult: Результат сохранения архива
        """
        log_function_call("ArchiveManager.delete_permanently", (node_id,))

        if not self._is_archived(node_id) or node_id == self.tree.archive_id:
            return OperationResult(False, message="Удалить окончательно можно только элемент архива")
        archive_id = self.tree.parent(node_id)
        if archive_id != self.tree.archive_id:
            return OperationResult(False, message="Удалить можно только элемент верхнего уровня архива")

        position = self.tree.sibling_index(node_id)
        payload = self.tree.remove(node_id)

        def rollback() -> None:
            if isinstance(payload, CategoryItem):
                self.tree.add_category(archive_id, payload, position)
            else:
                self.tree.add_link(archive_id, payload, position)

        result = self._persist("delete_permanently", lambda: [self._archive_step()], rollback)
        if result:
            name = payload.name if isinstance(payload, CategoryItem) else payload.title
            logger.info(f"Элемент архива удален окончательно: {name}")
        return result
