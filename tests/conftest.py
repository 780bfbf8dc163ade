"""
Общие фикстуры для тестов.
Содержит вспомогательные функции и фикстуры для создания тестовых данных.
"""
import json
import logging
import shutil
import tempfile
from pathlib import Path

import pytest

from mymemories.crypto import KdfParams, KeyDeriver, RecordCipher
from mymemories.models import CategoryItem, LinkItem, PasswordProtection
from mymemories.passwords import PasswordCache
from mymemories.store import CategoryStore

# Быстрые параметры Argon2id, чтобы тесты не тратили секунды на вывод ключа
FAST_KDF = KdfParams(time_cost=1, memory_cost=1024, parallelism=1)

CONFIG_KEYS = (
    "DATA_DIR",
    "CHECK_TIMEOUT",
    "CHECK_MAX_CONCURRENT",
    "CHECK_USER_AGENT",
    "SUMMARY_TIMEOUT",
    "SUMMARY_MAX_SIZE_MB",
    "KDF_TIME_COST",
    "KDF_MEMORY_COST",
    "KDF_PARALLELISM",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture
def temp_dir():
    """Создает временную директорию для тестов."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clean_env(monkeypatch):
    """Убирает параметры приложения из окружения и восстанавливает его после теста."""
    for key in CONFIG_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def restore_root_logger():
    """Сохраняет и восстанавливает обработчики корневого логгера."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def cipher():
    return RecordCipher(KeyDeriver(FAST_KDF))


@pytest.fixture
def password_cache():
    return PasswordCache()


@pytest.fixture
def store(temp_dir, password_cache, cipher):
    return CategoryStore(temp_dir / "data", password_cache, cipher)


def create_test_link(title="Example", target="https://example.com", **kwargs):
    """Создает тестовую ссылку."""
    return LinkItem(title=title, target=target, **kwargs)


def create_test_category(name="Work", children=None, links=None,
                         protection=PasswordProtection.NONE, **kwargs):
    """Создает тестовую категорию."""
    return CategoryItem(
        name=name,
        children=children or [],
        links=links or [],
        password_protection=protection,
        **kwargs,
    )


def create_nested_category():
    """
    Создает категорию A с подкатегорией B, у которой есть подкатегория C.

    Ссылки: A - одна веб-ссылка и один файл, B - одна веб-ссылка, C - две веб-ссылки.
    """
    c = create_test_category("C", links=[
        create_test_link("c1", "https://c1.example.com"),
        create_test_link("c2", "https://c2.example.com/page"),
    ])
    b = create_test_category("B", children=[c], links=[
        create_test_link("b1", "http://b1.example.com"),
    ])
    return create_test_category("A", children=[b], links=[
        create_test_link("a1", "https://a1.example.com"),
        create_test_link("notes", "/home/user/notes.txt"),
    ])


def write_json(path, data):
    """Записывает JSON-файл в UTF-8."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False)
    return path


@pytest.fixture
def nested_category():
    return create_nested_category()


@pytest.fixture
def sample_bookmarks_file(temp_dir):
    """Создает файл закладок Chrome с вложенными папками."""
    data = {
        "checksum": "test",
        "roots": {
            "bookmark_bar": {
                "type": "folder",
                "name": "Bookmarks bar",
                "date_added": "13285932710000000",
                "children": [
                    {
                        "type": "url",
                        "name": "Python",
                        "url": "https://www.python.org",
                        "date_added": "13285932710000000",
                    },
                    {
                        "type": "folder",
                        "name": "Docs",
                        "children": [
                            {"type": "url", "name": "httpx", "url": "https://www.python-httpx.org"},
                            {"type": "url", "name": "Empty", "url": ""},
                        ],
                    },
                ],
            },
            "other": {"type": "folder", "name": "Other bookmarks", "children": []},
            "synced": {
                "type": "folder",
                "name": "Mobile bookmarks",
                "children": [{"type": "url", "name": "News", "url": "https://news.example.com"}],
            },
        },
        "version": 1,
    }
    return write_json(temp_dir / "Bookmarks", data)
