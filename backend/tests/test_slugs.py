"""Slug generation tests."""

from app.services.slugs import MAX_SLUG_LENGTH, pick_available_slug, slugify


def test_slugify_lowercases_and_hyphenates():
    assert slugify("Summer Drop 2024!") == "summer-drop-2024"


def test_slugify_collapses_separators_and_trims():
    assert slugify("  --Hello___World--  ") == "hello-world"


def test_slugify_drops_non_ascii():
    assert slugify("Café Crème") == "caf-cr-me"


def test_slugify_empty_when_nothing_usable():
    assert slugify("!!!") == ""


def test_slugify_truncates_without_trailing_hyphen():
    slug = slugify("a" * 62 + " b")
    assert len(slug) <= MAX_SLUG_LENGTH
    assert not slug.endswith("-")


def test_pick_available_slug_returns_base_when_free():
    assert pick_available_slug("drop", {"other"}) == "drop"


def test_pick_available_slug_appends_first_free_suffix():
    assert pick_available_slug("drop", {"drop", "drop-2", "drop-3"}) == "drop-4"


def test_pick_available_slug_keeps_max_length():
    base = "x" * MAX_SLUG_LENGTH
    candidate = pick_available_slug(base, {base})
    assert candidate.endswith("-2")
    assert len(candidate) == MAX_SLUG_LENGTH
