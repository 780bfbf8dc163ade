"""
Тесты для модуля main.py
"""
from unittest.mock import patch

import httpx
import pytest

from mymemories.checker import UrlHealthChecker
from mymemories.config import ConfigManager
from mymemories.crypto import verify_password
from mymemories.main import main, parse_arguments
from mymemories.models import PasswordProtection
from mymemories.passwords import PasswordCache
from mymemories.store import CategoryStore


@pytest.fixture
def env_file(clean_env, restore_root_logger, temp_dir):
    """Создает .env с каталогом данных во временной директории и быстрым KDF."""
    env_path = temp_dir / ".env"
    env_path.write_text("\n".join([
        f"DATA_DIR={temp_dir / 'data'}",
        "LOG_LEVEL=WARNING",
        "LOG_FILE=",
        "KDF_TIME_COST=1",
        "KDF_MEMORY_COST=1024",
        "KDF_PARALLELISM=1",
    ]), encoding="utf-8")
    return str(env_path)


def run_main(env_file, *args):
    """Запускает main и возвращает код завершения."""
    try:
        main(["--config", env_file, *args])
    except SystemExit as e:
        return e.code
    return 0


class TestParseArguments:
    def test_list(self):
        args = parse_arguments(["list"])

        assert args.command == "list"
        assert not args.global_password
        assert args.password_for == []

    def test_check_options(self):
        args = parse_arguments(["--password", "Work", "--password", "Home", "check", "Work.Docs",
                                "--max-concurrent", "2"])

        assert args.category == "Work.Docs"
        assert args.max_concurrent == 2
        assert args.password_for == ["Work", "Home"]

    def test_import_requires_name(self):
        with pytest.raises(SystemExit):
            parse_arguments(["import", "Bookmarks"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_arguments([])


class TestCommands:
    def test_list_empty(self, env_file, capsys):
        assert run_main(env_file, "list") == 0

        assert "Archived (0)" in capsys.readouterr().out

    def test_import_and_list(self, env_file, sample_bookmarks_file, capsys):
        assert run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Chrome") == 0
        assert run_main(env_file, "list") == 0

        out = capsys.readouterr().out
        assert "Chrome" in out
        assert "Bookmarks Bar" in out
        assert "<https://www.python.org>" in out

    def test_import_existing_name_fails(self, env_file, sample_bookmarks_file):
        run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Chrome")

        assert run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Chrome") == 1

    def test_protected_import_requires_password(self, env_file, sample_bookmarks_file):
        assert run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Secret",
                        "--protect", "global") == 1

    def test_protected_import_and_locked_listing(self, env_file, sample_bookmarks_file, temp_dir, capsys):
        with patch("mymemories.main.getpass.getpass", return_value="global-pw"):
            code = run_main(env_file, "--global-password", "import", str(sample_bookmarks_file),
                            "--name", "Secret", "--protect", "global")

        assert code == 0
        assert (temp_dir / "data" / "Secret.enc.json").exists()

        capsys.readouterr()
        assert run_main(env_file, "list") == 0
        out = capsys.readouterr().out
        assert "🔒 Secret (Заблокировано)" in out
        assert "python.org" not in out

        with patch("mymemories.main.getpass.getpass", return_value="global-pw"):
            assert run_main(env_file, "--global-password", "list") == 0
        assert "python.org" in capsys.readouterr().out

    def test_own_password_import_stores_verifier(self, env_file, sample_bookmarks_file, temp_dir):
        with patch("mymemories.main.getpass.getpass", return_value="own-pw"):
            code = run_main(env_file, "--password", "Secret", "import", str(sample_bookmarks_file),
                            "--name", "Secret", "--protect", "own")
        assert code == 0

        cache = PasswordCache()
        cache.set_category("Secret", "own-pw")
        store = CategoryStore.from_config(ConfigManager(env_file).get(), cache)
        category = store.load_all().categories[0]

        assert category.password_protection == PasswordProtection.OWN_PASSWORD
        assert verify_password(category.own_password_hash, "own-pw")
        assert not verify_password(category.own_password_hash, "other")

    def test_own_password_import_requires_password(self, env_file, sample_bookmarks_file, temp_dir, capsys):
        code = run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Secret", "--protect", "own")

        assert code == 1
        assert "--password Secret" in capsys.readouterr().out
        assert not (temp_dir / "data" / "Secret.enc.json").exists()

    def test_delete(self, env_file, sample_bookmarks_file, temp_dir):
        run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Chrome")

        assert run_main(env_file, "delete", "Chrome") == 0
        assert not (temp_dir / "data" / "Chrome.json").exists()

    def test_archive_and_restore(self, env_file, sample_bookmarks_file, temp_dir, capsys):
        run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Chrome")

        assert run_main(env_file, "archive", "Chrome.Bookmarks Bar") == 0
        capsys.readouterr()
        run_main(env_file, "list")
        assert "Archived (1)" in capsys.readouterr().out
        assert (temp_dir / "data" / "archive" / "Archive.json").exists()

        assert run_main(env_file, "restore", "Bookmarks Bar") == 0
        capsys.readouterr()
        run_main(env_file, "list")
        assert "Archived (0)" in capsys.readouterr().out

    def test_damaged_archive_is_not_overwritten(self, env_file, sample_bookmarks_file, temp_dir, capsys):
        run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Chrome")
        archive_path = temp_dir / "data" / "archive" / "Archive.json"
        archive_path.parent.mkdir(parents=True)
        archive_path.write_text('{"archivedCategories": [{"name": "Kept"}, 42]}', encoding="utf-8")
        capsys.readouterr()

        assert run_main(env_file, "archive", "Chrome.Bookmarks Bar") == 1

        assert "archivedCategories[1]" in capsys.readouterr().out
        assert archive_path.read_text(encoding="utf-8") == '{"archivedCategories": [{"name": "Kept"}, 42]}'
        run_main(env_file, "list")
        assert "Bookmarks Bar" in capsys.readouterr().out

    def test_restore_unknown(self, env_file):
        assert run_main(env_file, "restore", "Nothing") == 1

    def test_check_unknown_category(self, env_file, capsys):
        assert run_main(env_file, "check", "Missing") == 1

        assert "Категория не найдена" in capsys.readouterr().out

    def test_check_category(self, env_file, sample_bookmarks_file, capsys):
        run_main(env_file, "import", str(sample_bookmarks_file), "--name", "Chrome")

        def handler(request):
            return httpx.Response(404 if request.url.host == "news.example.com" else 200)

        checker = UrlHealthChecker(transport=httpx.MockTransport(handler))
        with patch("mymemories.main.UrlHealthChecker.from_config", return_value=checker):
            assert run_main(env_file, "check", "Chrome") == 0

        out = capsys.readouterr().out
        assert "Категории: Chrome, Chrome.Bookmarks Bar" in out
        assert "Всего: 3, проверено: 3, доступно: 2, ошибок: 0, не найдено: 1" in out

    def test_invalid_config(self, clean_env, restore_root_logger, temp_dir, capsys):
        env_path = temp_dir / ".env"
        env_path.write_text("CHECK_TIMEOUT=0\n", encoding="utf-8")

        assert run_main(str(env_path), "list") == 1
        assert "CHECK_TIMEOUT" in capsys.readouterr().out
