"""Chapter and catalogue records shared by extraction, reconciliation and writers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional

from .keys import K_CHAPTERS, K_CONTENT, K_FETCHED, K_NAME, K_SOURCE, K_URL


@dataclass
class Chapter:
    """One named, URL-addressed unit of novel text plus its fetch state."""

    name: str
    url: str
    content: str = ""
    fetched: bool = False

    def mark_fetched(self, content: str) -> None:
        self.content = content
        self.fetched = True

    def copy(self) -> "Chapter":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_NAME: self.name,
            K_URL: self.url,
            K_CONTENT: self.content,
            K_FETCHED: self.fetched,
        }


@dataclass
class Catalogue:
    """Ordered table of contents harvested from one source (or merged from several)."""

    chapters: List[Chapter] = field(default_factory=list)
    source: Optional[str] = None

    def __len__(self) -> int:
        return len(self.chapters)

    def __iter__(self) -> Iterator[Chapter]:
        return iter(self.chapters)

    def __getitem__(self, index: int) -> Chapter:
        return self.chapters[index]

    @property
    def names(self) -> List[str]:
        return [chapter.name for chapter in self.chapters]

    def by_name(self) -> Dict[str, Chapter]:
        return {chapter.name: chapter for chapter in self.chapters}

    def pending(self) -> List[Chapter]:
        """Chapters still waiting for a successful fetch, in reading order."""
        return [chapter for chapter in self.chapters if not chapter.fetched]

    def fetched_count(self) -> int:
        return sum(1 for chapter in self.chapters if chapter.fetched)

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_SOURCE: self.source,
            K_CHAPTERS: [chapter.to_dict() for chapter in self.chapters],
        }
