"""
Tests for sitesh.utils module.
"""

import pytest

from sitesh.utils import (
    file_checksum,
    has_trailing_backslash,
    is_quote_balanced,
    is_shell_input_incomplete,
    shell_quote,
    split_words,
)


def test_shell_quote_plain_and_spaces():
    """Safe paths pass through; anything else is single-quoted."""
    assert shell_quote("/code/web") == "/code/web"
    assert shell_quote("/code/my dir") == "'/code/my dir'"
    assert shell_quote("it's") == "'it'\"'\"'s'"


def test_file_checksum_tracks_content(tmp_path):
    """Checksum changes with content and ignores mtime."""
    f = tmp_path / "a.txt"
    f.write_text("one")
    first = file_checksum(f)

    f.write_text("one")
    assert file_checksum(f) == first

    f.write_text("two")
    assert file_checksum(f) != first
    assert len(first) == 64


def test_split_words_honours_quotes():
    assert split_words(".ed 'my file.php' +3") == [".ed", "my file.php", "+3"]


def test_split_words_falls_back_on_bad_quotes():
    assert split_words(".ed 'broken") == [".ed", "'broken"]


@pytest.mark.parametrize(
    "text,balanced",
    [
        ("echo hi", True),
        ("echo 'hi'", True),
        ('echo "hi"', True),
        ("echo 'hi", False),
        ('echo "hi', False),
        ("echo \"it's\"", True),
        ("echo \\'", True),
        ('echo "a \\" b"', True),
    ],
)
def test_is_quote_balanced(text, balanced):
    assert is_quote_balanced(text) is balanced


def test_trailing_backslash():
    assert has_trailing_backslash("ls \\")
    assert not has_trailing_backslash("ls \\\\")
    assert not has_trailing_backslash("")
    assert not has_trailing_backslash("echo '\\'")


def test_incomplete_input():
    """Test is_shell_input_incomplete for the continuation prompt."""
    assert is_shell_input_incomplete("echo 'open")
    assert is_shell_input_incomplete("make \\")
    assert not is_shell_input_incomplete("echo 'a\nb'")
    assert not is_shell_input_incomplete("ls -la")
