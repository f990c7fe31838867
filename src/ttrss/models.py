from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel, Field


# Pseudo-category that makes getFeeds return every subscribed feed
ALL_FEEDS = -4

VIEW_MODES = ("all_articles", "unread", "adaptive", "marked", "updated")


class ArticleField(IntEnum):
    """Field codes understood by `updateArticle`."""

    STARRED = 0
    PUBLISHED = 1
    UNREAD = 2


class UpdateMode(IntEnum):
    """Modes understood by `updateArticle`."""

    SET_FALSE = 0
    SET_TRUE = 1
    TOGGLE = 2


class Article(BaseModel):
    id: int = 0
    feed_id: int = 0
    title: str = ""
    is_unread: bool = False
    url: str = ""
    comment_url: str = ""
    updated: int = Field(0, description="Publish time, milliseconds since the epoch")
    content: str = ""
    attachments: List[str] = Field(
        default_factory=list,
        description="Attachment URLs in decode order, without duplicates",
    )

    @property
    def updated_at(self) -> datetime:
        return datetime.fromtimestamp(self.updated / 1000, tz=timezone.utc)


class Feed(BaseModel):
    category_id: int = 0
    id: int = 0
    title: str = ""
    url: str = ""
    unread: int = 0
    articles: Optional[List[Article]] = None


class Category(BaseModel):
    id: int = 0
    title: str = ""
    unread: int = 0
    feeds: Optional[List[Feed]] = None


class Counter(BaseModel):
    """Unread counter for one feed or category (`is_category`)."""

    is_category: bool = False
    id: int
    count: int = 0


__all__ = [
    "ALL_FEEDS",
    "VIEW_MODES",
    "Article",
    "ArticleField",
    "Category",
    "Counter",
    "Feed",
    "UpdateMode",
]
