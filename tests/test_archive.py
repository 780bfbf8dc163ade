"""
Тесты для модуля archive.py
"""
import json
from unittest.mock import patch

import pytest

from mymemories.archive import ArchiveManager
from mymemories.exceptions import ErrorKind
from mymemories.models import CategoryItem, PasswordProtection
from mymemories.passwords import PasswordCache
from mymemories.store import ENVELOPE_FORMAT, ROOT_PARENT, CategoryStore
from mymemories.tree import CategoryTree
from tests.conftest import create_nested_category, create_test_category, create_test_link


def load_tree(store):
    return CategoryTree.build(store.load_all().categories, store.load_archive())


def read_archive(store):
    with open(store.archive_path, encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def populated_store(store):
    store.save(create_nested_category())
    store.save(create_test_category("Z", links=[create_test_link("z1", "https://z.example.com")]))
    return store


@pytest.fixture
def manager(populated_store):
    return ArchiveManager(populated_store, load_tree(populated_store))


class TestArchiveCategory:
    def test_nested_category(self, manager, populated_store):
        b = manager.tree.find_by_path("A.B")

        result = manager.archive_category(b)

        assert result
        reloaded = load_tree(populated_store)
        assert reloaded.find_by_path("A.B") is None
        archive = reloaded.payload(reloaded.archive_id)
        assert [c.name for c in archive.children] == ["B"]
        assert archive.children[0].original_parent_path == "A"
        assert archive.children[0].archived_date is not None
        assert [c.name for c in archive.children[0].children] == ["C"]

    def test_root_category_loses_record(self, manager, populated_store):
        z = manager.tree.find_by_path("Z")

        assert manager.archive_category(z)

        assert populated_store.record_path("Z") is None
        document = read_archive(populated_store)
        assert document["archivedCategories"][0]["name"] == "Z"
        assert document["archivedCategories"][0]["originalParentPath"] == ROOT_PARENT

    def test_archive_node_shown_last_with_count(self, manager):
        manager.archive_category(manager.tree.find_by_path("Z"))

        roots = manager.tree.roots()
        assert roots[-1] == manager.tree.archive_id
        assert manager.tree.display_name(roots[-1]) == "Archived (1)"

    def test_archive_node_itself_refused(self, manager):
        result = manager.archive_category(manager.tree.archive_id)

        assert not result

    def test_locked_category_refused(self, populated_store):
        tree = CategoryTree.build([CategoryItem.locked_placeholder("Secret")])
        manager = ArchiveManager(populated_store, tree)

        assert not manager.archive_category(tree.roots()[0])

    def test_already_archived_refused(self, manager):
        manager.archive_category(manager.tree.find_by_path("A.B"))
        archived = manager.tree.children(manager.tree.archive_id)[0]

        assert not manager.archive_category(archived)

    def test_protected_category_stays_encrypted(self, temp_dir, cipher):
        cache = PasswordCache()
        cache.set_global("global-pw")
        store = CategoryStore(temp_dir / "data", cache, cipher)
        store.save(create_test_category("Secret", protection=PasswordProtection.GLOBAL_PASSWORD,
                                        links=[create_test_link("hidden", "https://hidden.example.com")]))
        manager = ArchiveManager(store, load_tree(store))

        assert manager.archive_category(manager.tree.find_by_path("Secret"))

        raw = store.archive_path.read_text(encoding="utf-8")
        assert "hidden.example.com" not in raw
        assert read_archive(store)["archivedCategories"][0]["format"] == ENVELOPE_FORMAT

        locked_store = CategoryStore(temp_dir / "data", PasswordCache(), cipher)
        archive = locked_store.load_archive()
        assert archive.children[0].name == "Secret"
        assert archive.children[0].is_locked


class TestRestoreCategory:
    def test_restore_to_original_parent(self, manager, populated_store):
        manager.archive_category(manager.tree.find_by_path("A.B"))
        archived = manager.tree.children(manager.tree.archive_id)[0]

        result = manager.restore_category(archived)

        assert result
        reloaded = load_tree(populated_store)
        restored = reloaded.payload(reloaded.find_by_path("A.B"))
        assert restored.archived_date is None
        assert restored.original_parent_path is None
        assert reloaded.find_by_path("A.B.C") is not None
        assert read_archive(populated_store)["archivedCategories"] == []

    def test_restore_root_category(self, manager, populated_store):
        manager.archive_category(manager.tree.find_by_path("Z"))
        archived = manager.tree.children(manager.tree.archive_id)[0]

        assert manager.restore_category(archived)

        assert populated_store.record_path("Z") is not None
        assert manager.tree.roots()[-1] == manager.tree.archive_id

    def test_missing_parent_falls_back_to_root(self, manager, populated_store):
        manager.archive_category(manager.tree.find_by_path("A.B"))
        manager.tree.remove(manager.tree.find_by_path("A"))
        populated_store.delete("A")
        archived = manager.tree.children(manager.tree.archive_id)[0]

        assert manager.restore_category(archived)

        assert manager.tree.find_by_path("B") is not None
        assert populated_store.record_path("B") is not None

    def test_name_conflict_fails(self, manager):
        manager.archive_category(manager.tree.find_by_path("Z"))
        manager.tree.add_category(None, create_test_category("Z"))
        archived = manager.tree.children(manager.tree.archive_id)[0]

        result = manager.restore_category(archived)

        assert not result
        assert "Z" in result.message
        assert manager.tree.parent(archived) == manager.tree.archive_id

    def test_not_archived_refused(self, manager):
        assert not manager.restore_category(manager.tree.find_by_path("A.B"))


class TestLinks:
    def test_archive_and_restore_link(self, manager, populated_store):
        c = manager.tree.find_by_path("A.B.C")
        link_id = manager.tree.children(c)[0]

        assert manager.archive_link(link_id)

        reloaded = load_tree(populated_store)
        assert [l.title for l in reloaded.payload(reloaded.find_by_path("A.B.C")).links] == ["c2"]
        archived_link = reloaded.payload(reloaded.archive_id).links[0]
        assert archived_link.original_category_path == "A.B.C"

        archived_id = manager.tree.children(manager.tree.archive_id)[0]
        assert manager.restore_link(archived_id)

        reloaded = load_tree(populated_store)
        titles = [l.title for l in reloaded.payload(reloaded.find_by_path("A.B.C")).links]
        assert titles == ["c2", "c1"]
        assert reloaded.payload(reloaded.archive_id).links == []

    def test_restore_link_without_category_fails(self, manager):
        z = manager.tree.find_by_path("Z")
        manager.archive_link(manager.tree.children(z)[0])
        manager.archive_category(manager.tree.find_by_path("Z"))
        archive_children = manager.tree.children(manager.tree.archive_id)
        link_id = next(i for i in archive_children if manager.tree.display_name(i) == "z1")

        result = manager.restore_link(link_id)

        assert not result
        assert manager.tree.parent(link_id) == manager.tree.archive_id

    def test_archive_category_node_as_link_refused(self, manager):
        assert not manager.archive_link(manager.tree.find_by_path("A"))


class TestDeletePermanently:
    def test_delete_archived_category(self, manager, populated_store):
        manager.archive_category(manager.tree.find_by_path("Z"))
        archived = manager.tree.children(manager.tree.archive_id)[0]

        assert manager.delete_permanently(archived)

        assert read_archive(populated_store)["archivedCategories"] == []
        assert manager.tree.display_name(manager.tree.archive_id) == "Archived (0)"

    def test_live_category_refused(self, manager):
        assert not manager.delete_permanently(manager.tree.find_by_path("A"))

    def test_nested_archive_item_refused(self, manager):
        manager.archive_category(manager.tree.find_by_path("A.B"))
        archived = manager.tree.children(manager.tree.archive_id)[0]
        nested = manager.tree.children(archived)[0]

        assert not manager.delete_permanently(nested)


class TestFailedMoves:
    """Сбой сохранения не теряет перемещаемый элемент."""

    @pytest.fixture
    def own_store(self, temp_dir, cipher):
        store = CategoryStore(temp_dir / "data", PasswordCache(), cipher)
        secret = create_test_category("Secret", protection=PasswordProtection.OWN_PASSWORD,
                                      links=[create_test_link("hidden", "https://hidden.example.com")])
        store.save(create_test_category("Work", children=[secret]))
        return store

    def test_nested_own_password_category(self, own_store, cipher):
        own_store.cache_category_password("Work.Secret", "own-pw")
        manager = ArchiveManager(own_store, load_tree(own_store))

        assert manager.archive_category(manager.tree.find_by_path("Work.Secret"))

        entry = read_archive(own_store)["archivedCategories"][0]
        assert entry["format"] == ENVELOPE_FORMAT
        assert entry["passwordPath"] == "Work.Secret"
        assert "hidden.example.com" not in own_store.archive_path.read_text(encoding="utf-8")

        reader = CategoryStore(own_store.data_dir, PasswordCache(), cipher)
        reader.cache_category_password("Work.Secret", "own-pw")
        reloaded = load_tree(reader)
        assert reloaded.find_by_path("Work.Secret") is None
        archived = reloaded.payload(reloaded.archive_id).children[0]
        assert not archived.is_locked
        assert archived.links[0].title == "hidden"

        restorer = ArchiveManager(reader, reloaded)
        assert restorer.restore_category(reloaded.children(reloaded.archive_id)[0])
        assert load_tree(reader).find_by_path("Work.Secret") is not None

    def test_missing_password_leaves_records_untouched(self, own_store):
        manager = ArchiveManager(own_store, load_tree(own_store))
        before = own_store.record_path("Work").read_text(encoding="utf-8")

        result = manager.archive_category(manager.tree.find_by_path("Work.Secret"))

        assert not result
        assert result.kind == ErrorKind.CRYPTO
        assert own_store.record_path("Work").read_text(encoding="utf-8") == before
        assert not own_store.archive_path.exists()
        secret = manager.tree.find_by_path("Work.Secret")
        assert secret is not None
        assert manager.tree.payload(secret).original_parent_path is None
        assert manager.tree.display_name(manager.tree.archive_id) == "Archived (0)"

    def test_failed_restore_keeps_archive_entry(self, own_store):
        own_store.cache_category_password("Work.Secret", "own-pw")
        manager = ArchiveManager(own_store, load_tree(own_store))
        manager.archive_category(manager.tree.find_by_path("Work.Secret"))
        manager.tree.remove(manager.tree.find_by_path("Work"))
        own_store.delete("Work")
        before = own_store.archive_path.read_text(encoding="utf-8")

        # В корне категория ищет пароль по пути "Secret", он не задан
        result = manager.restore_category(manager.tree.children(manager.tree.archive_id)[0])

        assert not result
        assert own_store.archive_path.read_text(encoding="utf-8") == before
        assert own_store.record_path("Secret") is None
        archived = manager.tree.children(manager.tree.archive_id)
        assert [manager.tree.payload(a).name for a in archived] == ["Secret"]
        assert manager.tree.payload(archived[0]).original_parent_path == "Work"

    def test_write_failure_rolls_back_tree(self, manager, populated_store):
        before = populated_store.record_path("A").read_text(encoding="utf-8")

        with patch("mymemories.utils.os.replace", side_effect=OSError("disk full")):
            result = manager.archive_category(manager.tree.find_by_path("A.B"))

        assert not result
        assert result.kind == ErrorKind.IO
        assert populated_store.record_path("A").read_text(encoding="utf-8") == before
        assert manager.tree.find_by_path("A.B.C") is not None
        assert manager.tree.display_name(manager.tree.archive_id) == "Archived (0)"

    def test_link_rollback_keeps_position(self, manager):
        c = manager.tree.find_by_path("A.B.C")

        with patch("mymemories.utils.os.replace", side_effect=OSError("disk full")):
            assert not manager.archive_link(manager.tree.children(c)[0])

        assert [l.title for l in manager.tree.payload(c).links] == ["c1", "c2"]
        assert [manager.tree.display_name(i) for i in manager.tree.children(c)] == ["c1", "c2"]
