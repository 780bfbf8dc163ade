"""
Модуль test_utils.py
Содержит unit-тесты для вспомогательных утилит из модуля utils.py.
"""
import os
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from mymemories.utils import DateUtils, PathUtils, TextUtils, ValidationUtils


class TestPathUtils:
    """Тесты для утилит работы с путями."""

    def test_ensure_dir_creates_directory(self):
        """Тест создания директории."""
        with tempfile.TemporaryDirectory() as temp_dir:
            test_path = Path(temp_dir) / "new_dir" / "sub_dir"
            result = PathUtils.ensure_dir(test_path)

            assert result.is_dir()
            assert result == test_path

    def test_encode_filename_escapes_invalid_chars(self):
        """Тест экранирования недопустимых символов в имени файла."""
        result = PathUtils.encode_filename('file<>:"/\\|?*name')

        assert result == "file%3C%3E%3A%22%2F%5C%7C%3F%2Aname"

    def test_encode_filename_keeps_unicode(self):
        assert PathUtils.encode_filename("Работа 📁") == "Работа 📁"

    @pytest.mark.parametrize("first, second", [
        ("a/b", "a_b"),
        ("a/b", "a%2Fb"),
        ("Foo.enc", "Foo"),
        ("Notes.", "Notes"),
        ("Notes ", "Notes"),
    ])
    def test_encode_filename_is_injective(self, first, second):
        assert PathUtils.encode_filename(first) != PathUtils.encode_filename(second)

    def test_encode_filename_never_hidden_or_dotted(self):
        encoded = PathUtils.encode_filename("..secret.enc")

        assert not encoded.startswith(".")
        assert "." not in encoded

    @pytest.mark.parametrize("name", ['Work: "2024"/Q1.', "100% ~ done", "Архив.Старое"])
    def test_decode_filename(self, name):
        assert PathUtils.decode_filename(PathUtils.encode_filename(name)) == name

    def test_encode_filename_length_limit(self):
        first = PathUtils.encode_filename("я" * 300 + "1")
        second = PathUtils.encode_filename("я" * 300 + "2")

        assert len(first.encode("utf-8")) <= 200
        assert first != second

    def test_encode_filename_empty(self):
        with pytest.raises(ValueError):
            PathUtils.encode_filename("")

    def test_atomic_write(self, temp_dir):
        target = temp_dir / "Work.json"
        target.write_text("old", encoding="utf-8")

        PathUtils.atomic_write_text(target, '{"name": "Работа"}')

        assert target.read_text(encoding="utf-8") == '{"name": "Работа"}'
        assert [p.name for p in temp_dir.iterdir()] == ["Work.json"]

    def test_atomic_write_failure_keeps_original(self, temp_dir):
        """При сбое переименования исходный файл не изменяется, временный удаляется."""
        target = temp_dir / "Work.json"
        target.write_text("old", encoding="utf-8")

        with patch("mymemories.utils.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                PathUtils.atomic_write_text(target, "new")

        assert target.read_text(encoding="utf-8") == "old"
        assert sorted(os.listdir(temp_dir)) == ["Work.json"]


class TestTextUtils:
    """Тесты для утилит обработки текста."""

    def test_clean_text(self):
        assert TextUtils.clean_text("  много \n\t пробелов  ") == "много пробелов"
        assert TextUtils.clean_text(None) == ""

    def test_truncate_text(self):
        assert TextUtils.truncate_text("short", 10) == "short"
        assert TextUtils.truncate_text("a" * 20, 10) == "aaaaaaa..."


class TestDateUtils:
    """Тесты для утилит работы с датами."""

    def test_chrome_timestamp(self):
        # 1970-01-01 UTC в формате Chrome
        result = DateUtils.chrome_timestamp_to_datetime(str(DateUtils.CHROME_EPOCH_OFFSET))

        assert result == datetime.fromtimestamp(0)

    @pytest.mark.parametrize("value", [None, "", "0", 0, "not-a-number"])
    def test_chrome_timestamp_empty_or_invalid(self, value):
        assert DateUtils.chrome_timestamp_to_datetime(value) is None

    def test_iso_round_trip(self):
        value = datetime(2024, 1, 2, 3, 4, 5)

        assert DateUtils.from_iso(DateUtils.to_iso(value)) == value
        assert DateUtils.to_iso(None) is None

    def test_from_iso_invalid(self):
        assert DateUtils.from_iso("yesterday") is None
        assert DateUtils.from_iso(None) is None

    def test_format_duration(self):
        assert DateUtils.format_duration(5) == "5.0 сек"
        assert DateUtils.format_duration(90) == "1.5 мин"
        assert DateUtils.format_duration(7200) == "2.0 час"


class TestValidationUtils:
    """Тесты для утилит валидации."""

    @pytest.mark.parametrize("url, expected", [
        ("https://example.com", True),
        ("http://localhost:8080/path", True),
        ("mailto:user@example.com", False),
        ("example.com", False),
        ("", False),
    ])
    def test_is_valid_url(self, url, expected):
        assert ValidationUtils.is_valid_url(url) is expected
