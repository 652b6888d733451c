from __future__ import annotations

import pytest

from gemini_files.errors import InputError
from gemini_files.ids import normalize_file_id, normalize_file_ids, normalize_query_target


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("files/abc-123", "files/abc-123"),
        ("abc-123", "files/abc-123"),
        ("a.b_c", "files/a.b_c"),
        ("  abc  ", "files/abc"),
        ("files/", None),
        ("bad id", None),
        ("x/y", None),
        ("", None),
    ],
)
def test_normalize_file_id(raw, expected):
    assert normalize_file_id(raw) == expected


def test_duplicates_after_normalization_collapse():
    normalized, rejected = normalize_file_ids(["files/a", "a", "b", "no way"])

    assert normalized == ["files/a", "files/b"]
    assert rejected == ["no way"]


def test_query_target_forms():
    assert normalize_query_target("abc") == "files/abc"
    assert normalize_query_target("files/abc") == "files/abc"
    assert (
        normalize_query_target("https://generativelanguage.googleapis.com/v1beta/files/abc")
        == "files/abc"
    )


@pytest.mark.parametrize("raw", ["not valid!", "https://example.com/nothing-here", "http://x/files/abc"])
def test_query_target_rejects(raw):
    with pytest.raises(InputError):
        normalize_query_target(raw)
