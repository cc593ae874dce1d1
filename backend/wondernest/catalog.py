"""In-memory content catalog served to the mobile app.

The catalog is a fixed list until content publishing is backed by the
database; filtering and pagination operate on copies so callers can never
mutate the shared items.
"""
from __future__ import annotations
import math
from typing import Iterable, List, Optional, Set

from .schemas import CamelModel


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
AGE_TOLERANCE = 2
MAX_RECOMMENDATIONS = 5


class ContentItem(CamelModel):
	id: str
	title: str
	description: str
	category: str
	age_rating: int
	duration: int  # minutes
	thumbnail_url: str
	content_url: str
	tags: List[str]
	is_educational: bool
	difficulty: str
	created_at: str


class ContentCategory(CamelModel):
	id: str
	name: str
	description: str
	icon: str
	color: str
	min_age: int
	max_age: int


class ContentPage(CamelModel):
	items: List[ContentItem]
	total_items: int
	current_page: int
	total_pages: int
	categories: List[ContentCategory]


CONTENT_ITEMS: List[ContentItem] = [
	ContentItem(
		id="content_1",
		title="Learning Colors with Animals",
		description="Fun way to learn colors through animal friends",
		category="educational",
		age_rating=3,
		duration=10,
		thumbnail_url="/thumbnails/colors_animals.jpg",
		content_url="/content/colors_animals.mp4",
		tags=["colors", "animals", "learning"],
		is_educational=True,
		difficulty="easy",
		created_at="2024-01-15T10:00:00Z",
	),
	ContentItem(
		id="content_2",
		title="Adventure Island Stories",
		description="Exciting adventures on a magical island",
		category="stories",
		age_rating=5,
		duration=15,
		thumbnail_url="/thumbnails/adventure_island.jpg",
		content_url="/content/adventure_island.mp4",
		tags=["adventure", "story", "imagination"],
		is_educational=False,
		difficulty="medium",
		created_at="2024-01-16T14:30:00Z",
	),
	ContentItem(
		id="content_3",
		title="Math Puzzles for Kids",
		description="Interactive math problems and puzzles",
		category="educational",
		age_rating=6,
		duration=20,
		thumbnail_url="/thumbnails/math_puzzles.jpg",
		content_url="/content/math_puzzles.mp4",
		tags=["math", "puzzles", "problem-solving"],
		is_educational=True,
		difficulty="medium",
		created_at="2024-01-17T09:15:00Z",
	),
]

CATEGORIES: List[ContentCategory] = [
	ContentCategory(id="educational", name="Educational", description="Learn while you play", icon="🎓", color="#4CAF50", min_age=3, max_age=12),
	ContentCategory(id="stories", name="Stories", description="Amazing tales and adventures", icon="📚", color="#FF9800", min_age=4, max_age=10),
	ContentCategory(id="music", name="Music", description="Songs and musical activities", icon="🎵", color="#E91E63", min_age=2, max_age=8),
	ContentCategory(id="art", name="Art & Craft", description="Creative drawing and crafts", icon="🎨", color="#9C27B0", min_age=4, max_age=12),
	ContentCategory(id="science", name="Science", description="Explore the world around us", icon="🔬", color="#2196F3", min_age=5, max_age=12),
]


def parse_int(value: Optional[str]) -> Optional[int]:
	"""Lenient query-string integer: anything unparseable is treated as absent."""
	if value is None:
		return None
	try:
		return int(value.strip())
	except (TypeError, ValueError):
		return None


def filter_content(age_group: Optional[int] = None, category: Optional[str] = None) -> List[ContentItem]:
	return [
		item.model_copy(deep=True)
		for item in CONTENT_ITEMS
		if (age_group is None or item.age_rating <= age_group + AGE_TOLERANCE)
		and (category is None or item.category == category)
	]


def normalize_page(page: Optional[int]) -> int:
	return page if page is not None and page >= 1 else 1


def normalize_limit(limit: Optional[int]) -> int:
	if limit is None or limit < 1:
		return DEFAULT_PAGE_SIZE
	return min(limit, MAX_PAGE_SIZE)


def total_pages(total_items: int, limit: int) -> int:
	return math.ceil(total_items / limit) if total_items else 0


def paginate(items: List[ContentItem], page: Optional[int], limit: Optional[int]) -> ContentPage:
	page = normalize_page(page)
	limit = normalize_limit(limit)
	start = (page - 1) * limit
	return ContentPage(
		items=items[start:start + limit],
		total_items=len(items),
		current_page=page,
		total_pages=total_pages(len(items), limit),
		categories=list_categories(),
	)


def find_content(content_id: str) -> Optional[ContentItem]:
	for item in CONTENT_ITEMS:
		if item.id == content_id:
			return item.model_copy(deep=True)
	return None


def list_categories() -> List[ContentCategory]:
	return [c.model_copy() for c in CATEGORIES]


def recommend(completed_ids: Iterable[str] = ()) -> List[ContentItem]:
	"""Catalog order, skipping items already completed; everything again once all are done."""
	done: Set[str] = set(completed_ids)
	fresh = [item for item in filter_content() if item.id not in done]
	return (fresh or filter_content())[:MAX_RECOMMENDATIONS]
