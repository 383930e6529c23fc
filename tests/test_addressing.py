"""Tests for address allocation."""

import re

import pytest

from datasets import addressing


@pytest.mark.parametrize(
    "name, base",
    [
        ("My Cool API", "my-cool-api"),
        ("  Students -- 2024!! ", "students-2024"),
        ("___leading and trailing___", "leading-and-trailing"),
        ("Café Menu", "caf-menu"),
        ("UPPER", "upper"),
        ("!!!", addressing.FALLBACK_BASE),
        ("", addressing.FALLBACK_BASE),
    ],
)
def test_normalize(name, base):
    assert addressing.normalize(name) == base


def test_normalize_caps_length_without_trailing_hyphen():
    base = addressing.normalize("a" * 47 + " b" + "c" * 30)

    assert len(base) <= addressing.MAX_BASE_CHARS
    assert not base.endswith("-")


def test_allocate_twice_gives_different_addresses_with_same_base():
    first = addressing.allocate("My Cool API")
    second = addressing.allocate("My Cool API")

    assert first != second
    pattern = re.compile(r"my-cool-api-[0-9a-f]{6}")
    assert pattern.fullmatch(first)
    assert pattern.fullmatch(second)


def test_allocate_is_url_safe():
    address = addressing.allocate("Ünïcödé / slashes ? & query")

    assert re.fullmatch(r"[a-z0-9-]+", address)


def test_serving_url_joins_base_and_address():
    assert addressing.serving_url("http://h/serve/", "abc-123456") == "http://h/serve/abc-123456"


def test_example_usage_snippet_mentions_name_and_url():
    snippet = addressing.example_usage_snippet("Students", "http://h/serve/students-abcdef")

    assert '"Students"' in snippet
    assert 'httpx.get("http://h/serve/students-abcdef")' in snippet
