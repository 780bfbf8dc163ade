"""
Модуль store.py
Хранилище категорий: загрузка и сохранение корневых категорий в отдельные
файлы записей, шифрование защищенных категорий паролем.

Формат имен файлов в каталоге данных:
    <код имени>.json          - открытая запись
    <код имени>.enc.json      - зашифрованный конверт
    archive/Archive.json      - архив удаленных категорий и ссылок

Код имени получается через PathUtils.encode_filename и однозначно
соответствует имени категории.
"""
import json
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .config import Config
from .crypto import EncryptedPayload, KdfParams, KeyDeriver, RecordCipher, verify_password
from .exceptions import (
    AuthenticationFailure,
    LoadResult,
    MyMemoriesError,
    OperationResult,
    PasswordUnavailableError,
    RecordFailure,
    RecordIOError,
    RecordSchemaError,
)
from .logger import get_logger, log_error_with_context, log_function_call, log_performance
from .models import CategoryItem, CategoryStatistics, PasswordProtection
from .passwords import PasswordCache
from .records import parse_enum, category_from_dict, category_to_dict, link_from_dict, link_to_dict
from .utils import PathUtils

logger = get_logger(__name__)

PLAIN_SUFFIX = ".json"
ENCRYPTED_SUFFIX = ".enc.json"
ARCHIVE_DIR = "archive"
ARCHIVE_FILE = "Archive.json"
ENVELOPE_FORMAT = "mymemories-encrypted"
ENVELOPE_VERSION = 1
ARCHIVE_NODE_NAME = "Archived"
# Исходный родитель категории, архивированной с корневого уровня
ROOT_PARENT = "Root"


def is_envelope(document: Any) -> bool:
    """True, если JSON-документ является зашифрованным конвертом."""
    return isinstance(document, dict) and document.get("format") == ENVELOPE_FORMAT


def archived_category_path(category: CategoryItem) -> str:
    """Полный путь, который категория имела до архивирования."""
    parent = category.original_parent_path
    if not parent or parent == ROOT_PARENT:
        return category.name
    return f"{parent}.{category.name}"


@dataclass
class PreparedWrite:
    """
    Сформированный документ, готовый к записи на диск.

    Подготовка выполняет сериализацию и шифрование, запись (commit) только
    пишет файл. Это позволяет проверить все затронутые документы до того,
    как изменится хотя бы один файл.

    Атрибуты:
        name: Имя категории или ARCHIVE_FILE
        target: Файл назначения
        content: Текст документа
        alternate: Файл другой формы, удаляемый после записи
        encrypted: Документ является конвертом
        is_archive: Документ архива
    """
    name: str
    target: Path
    content: str
    alternate: Optional[Path] = None
    encrypted: bool = False
    is_archive: bool = False


class CategoryStore:
    """
    Хранилище корневых категорий в каталоге данных.

    Публичные операции не выбрасывают исключения для ожидаемых сбоев:
    загрузка возвращает LoadResult, сохранение и удаление - OperationResult.
    Каждый сбой записывается в журнал ошибок один раз. Исключение составляют
    prepare/prepare_archive, которые выбрасывают типизированные ошибки.
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        password_cache: PasswordCache,
        cipher: Optional[RecordCipher] = None,
    ):
        """
        Инициализация хранилища.

        Аргументы:
            data_dir: Каталог с файлами записей (создается при необходимости)
            password_cache: Кэш паролей сеанса
            cipher: Шифратор записей (по умолчанию с параметрами KDF по умолчанию)
        """
        self.data_dir = PathUtils.ensure_dir(data_dir)
        self.password_cache = password_cache
        self.cipher = cipher or RecordCipher()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._archive_lock = threading.Lock()
        # Архив можно перезаписать, только если он загружен без потерь
        self._archive_intact = False

        logger.info(f"CategoryStore инициализирован: {self.data_dir}")

    @classmethod
    def from_config(cls, config: Config, password_cache: PasswordCache) -> 'CategoryStore':
        params = KdfParams(
            time_cost=config.kdf_time_cost,
            memory_cost=config.kdf_memory_cost,
            parallelism=config.kdf_parallelism,
        )
        return cls(config.data_dir, password_cache, RecordCipher(KeyDeriver(params)))

    # ------------------------------------------------------------------
    # Пароли

    def cache_global_password(self, password: str) -> None:
        self.password_cache.set_global(password)

    def cache_category_password(self, category_path: str, password: str) -> None:
        self.password_cache.set_category(category_path, password)

    def clear_password_cache(self) -> None:
        self.password_cache.clear()

    # ------------------------------------------------------------------
    # Пути и блокировки

    def _plain_path(self, name: str) -> Path:
        return self.data_dir / f"{PathUtils.encode_filename(name)}{PLAIN_SUFFIX}"

    def _encrypted_path(self, name: str) -> Path:
        return self.data_dir / f"{PathUtils.encode_filename(name)}{ENCRYPTED_SUFFIX}"

    def record_path(self, name: str) -> Optional[Path]:
        """
        Возвращает путь к существующей записи категории.

        Если существуют обе формы, предпочитается зашифрованная.

        Аргументы:
            name: Имя корневой категории

        Возвращает:
            Optional[Path]: Путь к записи или None
        """
        for path in (self._encrypted_path(name), self._plain_path(name)):
            if path.exists():
                return path
        return None

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    def _discover_records(self) -> List[Path]:
        """Находит файлы записей; при наличии обеих форм берется зашифрованная."""
        records: Dict[str, Path] = {}
        for path in sorted(self.data_dir.glob(f"*{PLAIN_SUFFIX}")):
            if path.name.startswith(".") or not path.is_file():
                continue
            stem = self._record_stem(path)

            existing = records.get(stem)
            if existing is not None:
                logger.warning(f"Найдены обе формы записи '{stem}', используется зашифрованная")
                if existing.name.endswith(ENCRYPTED_SUFFIX):
                    continue
            records[stem] = path
        return [records[stem] for stem in sorted(records)]

    def _record_owner(self, path: Path) -> Optional[str]:
        """Имя категории, записанное в существующем файле, или None."""
        if not path.exists():
            return None
        try:
            document = self._read_document(path)
        except (RecordIOError, RecordSchemaError):
            return None
        name = document.get("name") if isinstance(document, dict) else None
        return name if isinstance(name, str) else None

    def _check_owner(self, prepared: PreparedWrite) -> None:
        """
        Не дает перезаписать файл другой категории.

        Raises:
            RecordIOError: Файл уже принадлежит категории с другим именем
        """
        for path in (prepared.target, prepared.alternate):
            if path is None:
                continue
            owner = self._record_owner(path)
            if owner is not None and owner != prepared.name:
                raise RecordIOError(
                    f"Файл {path.name} принадлежит категории '{owner}'",
                    details={"file_path": path.name, "category": prepared.name},
                )

    # ------------------------------------------------------------------
    # Документы

    def _encode_document(self, category: CategoryItem, password_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Формирует документ записи, шифруя его при наличии защиты.

        Аргументы:
            category: Категория
            password_path: Путь категории для поиска собственного пароля
                (по умолчанию имя категории)

        Raises:
            PasswordUnavailableError: Для защищенной категории нет пароля
            AuthenticationFailure: Пароль не совпадает с хэшем собственного пароля
        """
        document = category_to_dict(category)
        protection = category.password_protection
        if protection == PasswordProtection.NONE:
            return document

        path = password_path or category.name
        password = self.password_cache.resolve(path, protection)
        if not password:
            raise PasswordUnavailableError(
                f"Нет пароля для защищенной категории '{path}'",
                details={"category": path, "protection": protection.value},
            )
        if (
            protection == PasswordProtection.OWN_PASSWORD
            and category.own_password_hash
            and not verify_password(category.own_password_hash, password)
        ):
            raise AuthenticationFailure(
                f"Пароль не подходит к категории '{path}'",
                details={"category": path},
            )

        plaintext = json.dumps(document, ensure_ascii=False).encode("utf-8")
        payload = self.cipher.encrypt(plaintext, password)
        envelope = {
            "format": ENVELOPE_FORMAT,
            "version": ENVELOPE_VERSION,
            "name": category.name,
            "protection": protection.value,
        }
        if path != category.name:
            envelope["passwordPath"] = path
        envelope.update(payload.to_dict())
        return envelope

    def _decode_document(self, document: Any) -> CategoryItem:
        """
        Восстанавливает категорию из документа, расшифровывая конверт.

        Raises:
            PasswordUnavailableError: Пароль для конверта не найден в кэше
            AuthenticationFailure: Неверный пароль или поврежденный конверт
            RecordSchemaError: Документ не соответствует формату
        """
        if not is_envelope(document):
            return category_from_dict(document)

        name, protection, password_path = self._envelope_header(document)
        if document.get("version") != ENVELOPE_VERSION:
            raise RecordSchemaError(f"Неподдерживаемая версия конверта: {document.get('version')}")

        password = self.password_cache.resolve(password_path, protection)
        if not password:
            raise PasswordUnavailableError(
                f"Нет пароля для категории '{password_path}'",
                details={"category": password_path, "protection": protection.value},
            )

        payload = EncryptedPayload.from_dict(document)
        plaintext = self.cipher.decrypt(payload, password)
        try:
            inner = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RecordSchemaError(f"Расшифрованная запись повреждена: {e}") from e

        category = category_from_dict(inner)
        category.password_protection = protection
        return category

    @staticmethod
    def _envelope_header(document: Dict[str, Any]) -> Tuple[str, PasswordProtection, str]:
        name = document.get("name")
        if not isinstance(name, str) or not name:
            raise RecordSchemaError("В конверте отсутствует имя категории")
        protection = parse_enum(
            PasswordProtection, document.get("protection"), PasswordProtection.GLOBAL_PASSWORD
        )
        if protection == PasswordProtection.NONE:
            raise RecordSchemaError("Зашифрованный конверт без режима защиты")
        password_path = document.get("passwordPath", name)
        if not isinstance(password_path, str) or not password_path:
            raise RecordSchemaError("Некорректное поле 'passwordPath' в конверте")
        return name, protection, password_path

    def _read_document(self, path: Path) -> Any:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise RecordSchemaError(f"Запись не в кодировке UTF-8: {path.name}") from e
        except OSError as e:
            raise RecordIOError(f"Ошибка чтения записи {path.name}: {e}") from e
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise RecordSchemaError(f"Ошибка парсинга JSON в {path.name}: {e}") from e

    def _placeholder_for(self, document: Any, fallback_name: str) -> CategoryItem:
        try:
            name, protection, _ = self._envelope_header(document)
        except RecordSchemaError:
            name, protection = fallback_name, PasswordProtection.GLOBAL_PASSWORD
        return CategoryItem.locked_placeholder(name, protection)

    @staticmethod
    def _record_stem(path: Path) -> str:
        if path.name.endswith(ENCRYPTED_SUFFIX):
            return path.name[: -len(ENCRYPTED_SUFFIX)]
        return path.name[: -len(PLAIN_SUFFIX)]

    # ------------------------------------------------------------------
    # Загрузка

    def load_all(self) -> LoadResult:
        """
        Загружает все корневые категории из каталога данных.

        Сбой одной записи не прерывает загрузку остальных. Зашифрованные
        категории без пароля или с неверным паролем возвращаются как
        заблокированные заглушки.

        Возвращает:
            LoadResult: Загруженные категории и список сбоев
        """
        start_time = time.time()
        log_function_call("CategoryStore.load_all", (str(self.data_dir),))

        result = LoadResult()
        for path in self._discover_records():
            document: Any = None
            fallback_name = PathUtils.decode_filename(self._record_stem(path))
            try:
                document = self._read_document(path)
                category = self._decode_document(document)
                result.categories.append(category)
                logger.debug(f"Категория загружена: {category.name}")

            except PasswordUnavailableError:
                placeholder = self._placeholder_for(document, fallback_name)
                result.categories.append(placeholder)
                logger.info(f"Категория заблокирована, пароль не задан: {placeholder.name}")

            except AuthenticationFailure as e:
                placeholder = self._placeholder_for(document, fallback_name)
                result.categories.append(placeholder)
                result.failures.append(RecordFailure(path.name, e.kind, e.message))
                log_error_with_context(e, {"operation": "load_all", "file_path": path.name})

            except (RecordSchemaError, RecordIOError) as e:
                result.failures.append(RecordFailure(path.name, e.kind, e.message))
                log_error_with_context(e, {"operation": "load_all", "file_path": path.name})

        duration = time.time() - start_time
        log_performance(
            "CategoryStore.load_all",
            duration,
            f"categories={len(result.categories)}, failures={len(result.failures)}",
        )
        logger.info(
            f"Загружено категорий: {len(result.categories)}, ошибок: {len(result.failures)}"
        )
        return result

    def load_category(self, name: str) -> CategoryItem:
        """
        Загружает одну корневую категорию.

        Используется для разблокировки заглушки после ввода пароля.

        Аргументы:
            name: Имя категории

        Возвращает:
            CategoryItem: Загруженная категория

        Raises:
            RecordIOError: Запись не найдена или не читается
            PasswordUnavailableError: Нет пароля для зашифрованной записи
            AuthenticationFailure: Неверный пароль
            RecordSchemaError: Некорректная запись
        """
        log_function_call("CategoryStore.load_category", (name,))
        path = self.record_path(name)
        if path is None:
            raise RecordIOError(f"Запись категории не найдена: {name}", details={"category": name})
        return self._decode_document(self._read_document(path))

    # ------------------------------------------------------------------
    # Сохранение и удаление

    def prepare(self, category: CategoryItem) -> PreparedWrite:
        """
        Сериализует и при необходимости шифрует корневую категорию, не трогая диск.

        Аргументы:
            category: Корневая категория

        Возвращает:
            PreparedWrite: Документ для commit

        Raises:
            PasswordUnavailableError: Категория заблокирована или нет пароля
            AuthenticationFailure: Пароль не совпадает с хэшем собственного пароля
            RecordSchemaError: Передан узел архива
        """
        if category.is_locked:
            raise PasswordUnavailableError(
                f"Категория '{category.name}' заблокирована и не может быть сохранена",
                details={"category": category.name},
            )
        if category.is_archive_node:
            raise RecordSchemaError("Узел архива сохраняется через save_archive")

        document = self._encode_document(category)
        encrypted = is_envelope(document)
        plain, sealed = self._plain_path(category.name), self._encrypted_path(category.name)
        return PreparedWrite(
            name=category.name,
            target=sealed if encrypted else plain,
            content=json.dumps(document, ensure_ascii=False, indent=2),
            alternate=plain if encrypted else sealed,
            encrypted=encrypted,
        )

    def commit(self, prepared: PreparedWrite) -> OperationResult:
        """
        Атомарно записывает подготовленный документ.

        Для записей категорий проверяется, что файл не принадлежит другой
        категории; после записи удаляется файл другой формы.

        Аргументы:
            prepared: Результат prepare или prepare_archive

        Возвращает:
            OperationResult: Результат операции
        """
        lock = self._archive_lock if prepared.is_archive else self._lock_for(prepared.name)
        try:
            with lock:
                if not prepared.is_archive:
                    self._check_owner(prepared)
                try:
                    PathUtils.ensure_dir(prepared.target.parent)
                    PathUtils.atomic_write_text(prepared.target, prepared.content)
                    if prepared.alternate is not None:
                        prepared.alternate.unlink(missing_ok=True)
                except OSError as e:
                    raise RecordIOError(
                        f"Ошибка записи '{prepared.name}': {e}",
                        details={"file_path": prepared.target.name},
                    ) from e
        except MyMemoriesError as e:
            log_error_with_context(e, {"operation": "commit", "category": prepared.name})
            return OperationResult.failed(e)

        if prepared.is_archive:
            self._archive_intact = True
        return OperationResult.ok(str(prepared.target))

    def save(self, category: CategoryItem) -> OperationResult:
        """
        Сохраняет корневую категорию со всеми вложенными элементами.

        Защищенные категории шифруются паролем из кэша. Запись выполняется
        атомарно; после успешной записи удаляется файл другой формы.
        Сама категория не изменяется.

        Аргументы:
            category: Корневая категория

        Возвращает:
            OperationResult: Результат операции
        """
        start_time = time.time()
        log_function_call("CategoryStore.save", (category.name,))

        try:
            prepared = self.prepare(category)
        except MyMemoriesError as e:
            log_error_with_context(e, {"operation": "save", "category": category.name})
            return OperationResult.failed(e)

        result = self.commit(prepared)
        if not result:
            return result

        stats = CategoryStatistics.of(category)
        duration = time.time() - start_time
        log_performance("CategoryStore.save", duration, f"encrypted={prepared.encrypted}")
        logger.info(
            f"Категория сохранена: {category.name} "
            f"(Links: {stats.link_count}, Subcategories: {stats.subcategory_count})"
        )
        return result

    def delete(self, name: str) -> OperationResult:
        """
        Удаляет обе формы записи категории. Повторное удаление не является ошибкой.

        Файлы, принадлежащие категории с другим именем, не удаляются.

        Аргументы:
            name: Имя корневой категории

        Возвращает:
            OperationResult: Результат операции
        """
        log_function_call("CategoryStore.delete", (name,))

        removed = 0
        with self._lock_for(name):
            for path in (self._plain_path(name), self._encrypted_path(name)):
                owner = self._record_owner(path)
                if owner is not None and owner != name:
                    logger.warning(f"Файл {path.name} принадлежит категории '{owner}' и не удаляется")
                    continue
                try:
                    path.unlink()
                    removed += 1
                except FileNotFoundError:
                    continue
                except OSError as e:
                    error = RecordIOError(f"Ошибка удаления записи {path.name}: {e}")
                    log_error_with_context(error, {"operation": "delete", "category": name})
                    return OperationResult.failed(error)

        logger.info(f"Категория удалена: {name} (файлов: {removed})")
        return OperationResult.ok()

    # ------------------------------------------------------------------
    # Архив

    @property
    def archive_path(self) -> Path:
        return self.data_dir / ARCHIVE_DIR / ARCHIVE_FILE

    def _entry_failure(
        self,
        failures: Optional[List[RecordFailure]],
        record: str,
        error: MyMemoriesError,
    ) -> None:
        if failures is not None:
            failures.append(RecordFailure(record, error.kind, error.message))
        log_error_with_context(error, {"operation": "load_archive", "file_path": record})

    def load_archive(self, failures: Optional[List[RecordFailure]] = None) -> CategoryItem:
        """
        Загружает архив в виде синтетического узла.

        Защищенные архивированные категории без пароля возвращаются
        заблокированными заглушками. Поврежденные элементы пропускаются по
        одному; после этого архив нельзя перезаписать, пока файл не исправлен.

        Аргументы:
            failures: Список, в который добавляются сбои отдельных элементов

        Возвращает:
            CategoryItem: Узел архива (is_archive_node=True)

        Raises:
            RecordIOError: Файл архива не читается
            RecordSchemaError: Файл архива поврежден целиком
        """
        self._archive_intact = False
        node = CategoryItem(name=ARCHIVE_NODE_NAME, icon="🗄", is_archive_node=True)
        if not self.archive_path.exists():
            self._archive_intact = True
            return node

        document = self._read_document(self.archive_path)
        if not isinstance(document, dict):
            raise RecordSchemaError("Файл архива должен быть JSON-объектом")

        damaged = False
        for section in ("archivedCategories", "archivedLinks"):
            entries = document.get(section) or []
            if not isinstance(entries, list):
                damaged = True
                self._entry_failure(failures, f"{ARCHIVE_FILE}:{section}",
                                    RecordSchemaError(f"Поле '{section}' должно быть списком"))
                continue

            for index, entry in enumerate(entries):
                record = f"{ARCHIVE_FILE}:{section}[{index}]"
                try:
                    if section == "archivedLinks":
                        node.links.append(link_from_dict(entry))
                    else:
                        node.children.append(self._decode_document(entry))
                except PasswordUnavailableError:
                    node.children.append(self._placeholder_for(entry, "unnamed"))
                except AuthenticationFailure as e:
                    node.children.append(self._placeholder_for(entry, "unnamed"))
                    self._entry_failure(failures, record, e)
                except RecordSchemaError as e:
                    damaged = True
                    self._entry_failure(failures, record, e)

        self._archive_intact = not damaged
        logger.info(
            f"Архив загружен: категорий {len(node.children)}, ссылок {len(node.links)}"
        )
        return node

    def prepare_archive(self, archive_node: CategoryItem) -> PreparedWrite:
        """
        Формирует документ архива, не трогая диск.

        Защищенные категории шифруются паролем, найденным по пути, который
        категория имела до архивирования.

        Raises:
            RecordSchemaError: Существующий архив не загружен или загружен с ошибками
            PasswordUnavailableError: В архиве есть заблокированная категория или нет пароля
        """
        if self.archive_path.exists() and not self._archive_intact:
            raise RecordSchemaError(
                "Архив не загружен полностью, перезапись отменена",
                details={"file_path": ARCHIVE_FILE},
            )
        if any(child.is_locked for child in archive_node.children):
            raise PasswordUnavailableError("Архив содержит заблокированные категории")

        document = {
            "archivedCategories": [
                self._encode_document(c, archived_category_path(c)) for c in archive_node.children
            ],
            "archivedLinks": [link_to_dict(link) for link in archive_node.links],
        }
        return PreparedWrite(
            name=ARCHIVE_FILE,
            target=self.archive_path,
            content=json.dumps(document, ensure_ascii=False, indent=2),
            is_archive=True,
        )

    def save_archive(self, archive_node: CategoryItem) -> OperationResult:
        """
        Сохраняет содержимое узла архива в archive/Archive.json.

        Аргументы:
            archive_node: Узел архива

        Возвращает:
            OperationResult: Результат операции
        """
        try:
            prepared = self.prepare_archive(archive_node)
        except MyMemoriesError as e:
            log_error_with_context(e, {"operation": "save_archive", "file_path": ARCHIVE_FILE})
            return OperationResult.failed(e)

        result = self.commit(prepared)
        if result:
            logger.info(
                f"Архив сохранен (Categories: {len(archive_node.children)}, Links: {len(archive_node.links)})"
            )
        return result
