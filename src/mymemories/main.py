"""
Модуль main.py
Точка входа командной строки: просмотр каталога, проверка ссылок,
импорт закладок, удаление и архивирование категорий, сводка по странице.
"""

import argparse
import asyncio
import getpass
import signal
import sys
import threading
import time
from typing import List, Optional

from .archive import ArchiveManager
from .checker import CheckOutcome, UrlHealthChecker
from .config import Config, ConfigManager
from .crypto import hash_password
from .exceptions import MyMemoriesError, RecordFailure
from .importer import BookmarkImporter
from .logger import (
    get_logger,
    log_error_with_context,
    log_function_call,
    log_performance,
    set_log_level,
    setup_logging,
)
from .models import CategoryItem, LinkItem, PasswordProtection, describe_protection, describe_url_status
from .passwords import PasswordCache
from .store import ARCHIVE_FILE, CategoryStore
from .summary import PageSummarizer
from .tree import CategoryTree, NodeId, NodeKind
from .utils import DateUtils

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Парсит аргументы командной строки.

    Аргументы:
        argv: Аргументы (по умолчанию sys.argv[1:])

    Возвращает:
        argparse.Namespace: Объект с аргументами командной строки
    """
    parser = argparse.ArgumentParser(
        prog="mymemories",
        description="Личный каталог категорий и ссылок",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Примеры использования:
  mymemories list
  mymemories --global-password check Work.Docs
  mymemories import Bookmarks --name Chrome --protect global --global-password
  mymemories archive Work.Old
  mymemories summarize https://example.com
        """,
    )

    parser.add_argument(
        "--config", dest="config_path", help="Путь к .env файлу (по умолчанию: .env)"
    )
    parser.add_argument(
        "--data-dir", dest="data_dir", help="Каталог данных (переопределяет DATA_DIR из .env)"
    )
    parser.add_argument(
        "--global-password",
        action="store_true",
        help="Запросить общий пароль для защищенных категорий",
    )
    parser.add_argument(
        "--password",
        dest="password_for",
        action="append",
        default=[],
        metavar="NAME",
        help="Запросить собственный пароль категории (можно указать несколько раз)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Подробное логирование (DEBUG уровень)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="Показать дерево категорий")

    check = subparsers.add_parser("check", help="Проверить доступность ссылок категории")
    check.add_argument("category", help="Путь категории вида A.B.C")
    check.add_argument("--max-concurrent", type=int, help="Переопределяет CHECK_MAX_CONCURRENT")

    import_cmd = subparsers.add_parser("import", help="Импортировать закладки Chrome")
    import_cmd.add_argument("bookmarks_file", help="Путь к JSON-файлу закладок Chrome")
    import_cmd.add_argument("--name", required=True, help="Имя новой корневой категории")
    import_cmd.add_argument(
        "--protect",
        choices=["none", "global", "own"],
        default="none",
        help="Защита новой категории паролем",
    )

    delete = subparsers.add_parser("delete", help="Удалить корневую категорию")
    delete.add_argument("name", help="Имя корневой категории")

    archive = subparsers.add_parser("archive", help="Переместить категорию в архив")
    archive.add_argument("category", help="Путь категории вида A.B.C")

    restore = subparsers.add_parser("restore", help="Восстановить категорию из архива")
    restore.add_argument("name", help="Имя архивированной категории")

    summarize = subparsers.add_parser("summarize", help="Сводка по веб-странице")
    summarize.add_argument("url", help="Адрес страницы")

    args = parser.parse_args(argv)
    logger.debug(f"Аргументы командной строки разобраны: command={args.command}")
    return args


def collect_passwords(args: argparse.Namespace, cache: PasswordCache) -> None:
    """
    Запрашивает пароли через getpass и помещает их в кэш.

    Аргументы:
        args: Аргументы командной строки
        cache: Кэш паролей
    """
    if args.global_password:
        password = getpass.getpass("Общий пароль: ")
        if password:
            cache.set_global(password)
    for name in args.password_for:
        password = getpass.getpass(f"Пароль категории '{name}': ")
        if password:
            cache.set_category(name, password)


def load_tree(store: CategoryStore) -> CategoryTree:
    result = store.load_all()
    try:
        archive = store.load_archive(result.failures)
    except MyMemoriesError as e:
        log_error_with_context(e, {"operation": "load_archive"})
        result.failures.append(RecordFailure(ARCHIVE_FILE, e.kind, e.message))
        archive = None
    for failure in result.failures:
        print(f"! {failure.record}: {failure.message} ({failure.kind.value})")
    return CategoryTree.build(result.categories, archive)


def print_tree(tree: CategoryTree) -> None:
    def walk(node_id: NodeId, depth: int) -> None:
        node = tree.get(node_id)
        indent = "  " * depth
        if node.kind == NodeKind.LINK:
            link: LinkItem = node.payload
            status = f" [{describe_url_status(link.url_status).label}]" if link.show_url_status else ""
            print(f"{indent}- {tree.display_name(node_id)} <{link.target}>{status}")
            return
        category: CategoryItem = node.payload
        marker = ""
        if category.is_protected or category.is_locked:
            marker = f" ({describe_protection(category.password_protection, category.is_locked).label})"
        print(f"{indent}{category.icon} {tree.display_name(node_id)}{marker}")
        if node.is_expandable:
            for child in tree.children(node_id):
                walk(child, depth + 1)

    for root in tree.roots():
        walk(root, 0)


def run_check(args: argparse.Namespace, config: Config, tree: CategoryTree) -> int:
    """
    Проверяет ссылки категории. Ctrl+C отменяет проверку.

    Возвращает:
        int: Код завершения
    """
    category_id = tree.find_by_path(args.category)
    if category_id is None:
        print(f"Категория не найдена: {args.category}")
        return 1

    if args.max_concurrent:
        config.check_max_concurrent = args.max_concurrent
    categories = tree.get_category_with_subcategories(category_id)
    print(f"Категории: {', '.join(path for path, _ in categories)}")

    checker = UrlHealthChecker.from_config(config)
    cancel_event = threading.Event()

    def on_progress(current: int, total: int) -> None:
        print(f"\rПроверено {current}/{total}", end="", flush=True)

    start_time = time.time()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel_event.set())
    try:
        result = checker.check_category(tree, category_id, on_progress, cancel_event)
    finally:
        signal.signal(signal.SIGINT, previous)
    print()

    for _, payload in tree.get_subtree(category_id):
        if isinstance(payload, LinkItem) and payload.show_url_status:
            label = describe_url_status(payload.url_status).label
            print(f"{label:>12}  {payload.target}  {payload.url_status_message}")

    stats = result.statistics
    if result.outcome == CheckOutcome.CANCELLED:
        print("Проверка отменена")
    print(
        f"Всего: {stats.total_urls}, проверено: {stats.checked_count}, "
        f"доступно: {stats.accessible_count}, ошибок: {stats.error_count}, "
        f"не найдено: {stats.not_found_count}"
    )
    print(f"Время проверки: {DateUtils.format_duration(time.time() - start_time)}")
    return 0 if result.outcome == CheckOutcome.COMPLETED else 1


def run_import(args: argparse.Namespace, store: CategoryStore) -> int:
    importer = BookmarkImporter()
    data = importer.load_json(args.bookmarks_file)
    category = importer.import_category(data, args.name)

    if store.record_path(category.name) is not None:
        print(f"Категория уже существует: {category.name}")
        return 1

    category.password_protection = {
        "none": PasswordProtection.NONE,
        "global": PasswordProtection.GLOBAL_PASSWORD,
        "own": PasswordProtection.OWN_PASSWORD,
    }[args.protect]
    if category.password_protection == PasswordProtection.OWN_PASSWORD:
        password = store.password_cache.get_category(category.name)
        if not password:
            print(f"Для собственного пароля укажите --password {category.name}")
            return 1
        category.own_password_hash = hash_password(password)

    result = store.save(category)
    print(f"Импорт {'выполнен' if result else 'не выполнен'}: {result.message}")
    return 0 if result else 1


def run_archive(args: argparse.Namespace, store: CategoryStore) -> int:
    """
    Перемещает категорию в архив или восстанавливает ее.

    Возвращает:
        int: Код завершения
    """
    tree = load_tree(store)
    manager = ArchiveManager(store, tree)

    if args.command == "archive":
        node_id = tree.find_by_path(args.category)
        if node_id is None:
            print(f"Категория не найдена: {args.category}")
            return 1
        result = manager.archive_category(node_id)
        target = args.category
    else:
        archive_id = tree.archive_id
        candidates = [] if archive_id is None else [
            child for child in tree.children(archive_id)
            if tree.get(child).kind == NodeKind.CATEGORY and tree.payload(child).name == args.name
        ]
        if not candidates:
            print(f"Категория не найдена в архиве: {args.name}")
            return 1
        result = manager.restore_category(candidates[0])
        target = args.name

    print(f"{target}: {'выполнено' if result else result.message}")
    return 0 if result else 1


def run_summarize(args: argparse.Namespace, config: Config) -> int:
    summary = asyncio.run(PageSummarizer(config).summarize(args.url))
    if not summary.success:
        print(f"Не удалось получить сводку: {summary.error_message}")
        return 1
    print(f"Заголовок: {summary.title}")
    print(f"Описание: {summary.description}")
    if summary.keywords:
        print(f"Ключевые слова: {', '.join(summary.keywords)}")
    print(summary.content_summary)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """
    Главная функция приложения.
    """
    start_time = time.time()

    try:
        args = parse_arguments(argv)

        config = ConfigManager(args.config_path).get()
        if args.data_dir:
            config.data_dir = args.data_dir
        setup_logging(config)
        if args.verbose:
            set_log_level("DEBUG")

        log_function_call("main", (), {"command": args.command})

        cache = PasswordCache()
        collect_passwords(args, cache)
        store = CategoryStore.from_config(config, cache)

        if args.command == "list":
            print_tree(load_tree(store))
            code = 0
        elif args.command == "check":
            code = run_check(args, config, load_tree(store))
        elif args.command == "import":
            code = run_import(args, store)
        elif args.command == "delete":
            result = store.delete(args.name)
            print(f"Удаление {'выполнено' if result else 'не выполнено'}: {args.name}")
            code = 0 if result else 1
        elif args.command in ("archive", "restore"):
            code = run_archive(args, store)
        else:
            code = run_summarize(args, config)

        cache.clear()
        log_performance("main", time.time() - start_time, f"command={args.command}")

    except KeyboardInterrupt:
        logger.info("Программа прервана пользователем")
        sys.exit(1)
    except (MyMemoriesError, OSError, ValueError) as e:
        log_error_with_context(e, {"operation": "main"})
        print(f"Ошибка: {e}")
        sys.exit(1)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
