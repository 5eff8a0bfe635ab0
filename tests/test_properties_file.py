"""Tests for properties parsing and the line-preserving editor."""

from pathlib import Path

import pytest

from config_sync.properties_file import (
    PropertiesFile,
    format_comments,
    format_entry,
    load_properties,
    save_convert,
)


class TestLoadProperties:
    def test_separators_and_comments(self) -> None:
        text = "# comment\n! also comment\n\na=1\nb : 2\nc 3\n  d=4\n"

        assert load_properties(text) == {"a": "1", "b": "2", "c": "3", "d": "4"}

    def test_continuation_lines(self) -> None:
        text = "list=one,\\\n    two,\\\n    three\n"

        assert load_properties(text) == {"list": "one,two,three"}

    def test_escapes(self) -> None:
        text = "key\\ with\\ space=tab\\there\nunicode=\\u4e2d\\u6587\nemoji=\\uD83D\\uDE00\n"

        assert load_properties(text) == {
            "key with space": "tab\there",
            "unicode": "中文",
            "emoji": "\U0001F600",
        }

    def test_empty_value_and_order(self) -> None:
        assert list(load_properties("z=\ny=1\n").items()) == [("z", ""), ("y", "1")]


class TestSaveConvert:
    def test_specials_are_escaped(self) -> None:
        assert save_convert("a=b:c#d!e\\f", False) == "a\\=b\\:c\\#d\\!e\\\\f"

    def test_spaces(self) -> None:
        assert save_convert(" a b", True) == "\\ a\\ b"
        assert save_convert(" a b", False) == "\\ a b"

    def test_non_ascii_is_unicode_escaped(self) -> None:
        assert save_convert("é\n", False) == "\\u00E9\\n"
        assert save_convert("\U0001F600", False) == "\\uD83D\\uDE00"

    def test_format_entry(self) -> None:
        assert format_entry("my key", " v v") == "my\\ key=\\ v v"


class TestFormatComments:
    def test_multiline_comment(self) -> None:
        assert format_comments("first\nsecond\n#kept") == ["#first", "#second", "#kept"]

    def test_wide_characters_escaped(self) -> None:
        assert format_comments("中") == ["#\\u4E2D"]


class TestPropertiesFile:
    @pytest.fixture
    def conf(self, tmp_path: Path) -> Path:
        path = tmp_path / "app.properties"
        path.write_text("# header\napp.title=old\n#app.hidden=1\n\napp.port=80\n", encoding="utf-8")
        return path

    def test_round_trip_without_changes(self, conf) -> None:
        original = conf.read_bytes()

        PropertiesFile(conf).save({})

        assert conf.read_bytes() == original

    @pytest.mark.parametrize("content", [
        b"a=1\r\n# c\r\nb=2\r\n",
        b"a=1\r\n# c\r\nb=2",
        b"a=1\n# c\nb=2",
    ])
    def test_round_trip_keeps_line_endings(self, tmp_path, content) -> None:
        path = tmp_path / "app.properties"
        path.write_bytes(content)

        PropertiesFile(path).save({})

        assert path.read_bytes() == content

    def test_crlf_file_keeps_crlf_when_appending(self, tmp_path) -> None:
        path = tmp_path / "app.properties"
        path.write_bytes(b"a=1\r\nb=2")

        PropertiesFile(path).save({"b": "3", "c": "4"})

        assert path.read_bytes() == b"a=1\r\nb=3\r\nc=4\r\n"

    def test_saving_twice_does_not_duplicate_appended_keys(self, conf) -> None:
        editor = PropertiesFile(conf)
        editor.save({"app.new": "x"})
        editor.save({"app.new": "y"})

        assert conf.read_text(encoding="utf-8").count("app.new=") == 1
        assert editor.to_dict()["app.new"] == "y"

    def test_comment_lines_are_not_keys(self, conf) -> None:
        editor = PropertiesFile(conf)

        assert set(editor.key_lines) == {"app.title", "app.port"}

    def test_replaces_existing_and_appends_new(self, conf) -> None:
        PropertiesFile(conf).save(
            {"app.port": "8080", "app.hidden": "2", "app.new": "x"},
            comment="added",
        )

        assert conf.read_text(encoding="utf-8") == (
            "# header\n"
            "app.title=old\n"
            "#app.hidden=1\n"
            "\n"
            "app.port=8080\n"
            "#added\n"
            "app.hidden=2\n"
            "app.new=x\n"
        )

    def test_missing_file_is_created(self, tmp_path) -> None:
        path = tmp_path / "conf" / "app.properties"

        PropertiesFile(path).save({"a": "1"})

        assert path.read_text(encoding="utf-8") == "a=1\n"

    def test_to_dict(self, conf) -> None:
        assert PropertiesFile(conf).to_dict() == {"app.title": "old", "app.port": "80"}
