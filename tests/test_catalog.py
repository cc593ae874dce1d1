import math

import pytest

from wondernest import catalog


def test_category_filter_is_exact():
	items = catalog.filter_content(category="educational")
	assert [i.id for i in items] == ["content_1", "content_3"]
	assert catalog.filter_content(category="Educational") == []


@pytest.mark.parametrize(
	"age_group, expected",
	[(1, ["content_1"]), (3, ["content_1", "content_2"]), (4, ["content_1", "content_2", "content_3"]), (0, [])],
)
def test_age_filter_allows_two_years_of_tolerance(age_group, expected):
	assert [i.id for i in catalog.filter_content(age_group=age_group)] == expected


def test_filtered_items_are_copies():
	item = catalog.filter_content()[0]
	item.tags.append("mutated")
	assert "mutated" not in catalog.CONTENT_ITEMS[0].tags


@pytest.mark.parametrize("raw, parsed", [("5", 5), (" 7 ", 7), ("abc", None), (None, None), ("", None)])
def test_parse_int(raw, parsed):
	assert catalog.parse_int(raw) == parsed


def test_limits_and_pages_are_normalized():
	assert catalog.normalize_page(None) == 1
	assert catalog.normalize_page(0) == 1
	assert catalog.normalize_page(3) == 3
	assert catalog.normalize_limit(None) == 20
	assert catalog.normalize_limit(-4) == 20
	assert catalog.normalize_limit(500) == 100


@pytest.mark.parametrize("total, limit", [(3, 1), (3, 2), (3, 20), (0, 20), (100, 100), (101, 100)])
def test_total_pages(total, limit):
	assert catalog.total_pages(total, limit) == (math.ceil(total / limit) if total else 0)


def test_paginate_beyond_end_is_empty():
	page = catalog.paginate(catalog.filter_content(), 5, 2)
	assert page.items == []
	assert page.total_items == 3
	assert page.total_pages == 2
	assert page.current_page == 5
	assert len(page.categories) == 5


def test_recommendations_skip_completed():
	assert [i.id for i in catalog.recommend(["content_1"])] == ["content_2", "content_3"]
	everything = ["content_1", "content_2", "content_3"]
	assert [i.id for i in catalog.recommend(everything)] == everything


def test_find_content():
	assert catalog.find_content("content_2").title == "Adventure Island Stories"
	assert catalog.find_content("missing") is None
