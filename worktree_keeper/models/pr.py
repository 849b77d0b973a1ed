"""Pull/merge request model and staleness policy."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

# Maximum age of cached PR info before it's considered stale
CACHE_MAX_AGE = timedelta(hours=24)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp for the cache file."""
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a cached timestamp; unparseable or empty values become None."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PRState(Enum):
    """Normalized state of a pull/merge request."""
    OPEN = "OPEN"
    MERGED = "MERGED"
    CLOSED = "CLOSED"
    DRAFT = "DRAFT"
    NONE = ""  # Fetched, but no PR exists for the branch

    @classmethod
    def parse(cls, value: Any) -> "PRState":
        """Normalize a forge or cache state string; unknown values map to NONE."""
        if isinstance(value, PRState):
            return value
        if not value:
            return cls.NONE
        normalized = str(value).strip().upper()
        # GitLab reports "opened"
        if normalized == "OPENED":
            normalized = "OPEN"
        try:
            return cls(normalized)
        except ValueError:
            return cls.NONE


@dataclass
class PRInfo:
    """Cached snapshot of a remote pull/merge request."""
    number: int = 0
    state: PRState = PRState.NONE
    is_draft: bool = False
    url: str = ""
    author: str = ""
    comment_count: int = 0
    has_reviews: bool = False
    is_approved: bool = False
    cached_at: Optional[datetime] = None  # None = never cached, always stale
    fetched: bool = False  # True once the forge was queried, even if no PR exists

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """Check whether this entry is older than CACHE_MAX_AGE.

        An entry exactly CACHE_MAX_AGE old is still fresh.
        """
        if self.cached_at is None:
            return True
        if now is None:
            now = utcnow()
        return now - self.cached_at > CACHE_MAX_AGE

    @property
    def exists(self) -> bool:
        """True if the forge reported an actual PR (not just 'none found')."""
        return self.number > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "state": self.state.value,
            "is_draft": self.is_draft,
            "url": self.url,
            "author": self.author,
            "comment_count": self.comment_count,
            "has_reviews": self.has_reviews,
            "is_approved": self.is_approved,
            "cached_at": format_timestamp(self.cached_at),
            "fetched": self.fetched,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PRInfo":
        """Build a PRInfo from its cached dictionary form.

        Raises:
            ValueError: If data is not a mapping or has a non-integer number
        """
        if not isinstance(data, dict):
            raise ValueError(f"PR data must be an object, got {type(data).__name__}")
        number = data.get("number", 0) or 0
        if not isinstance(number, int) or isinstance(number, bool):
            raise ValueError(f"PR number must be an integer, got {number!r}")
        return cls(
            number=number,
            state=PRState.parse(data.get("state")),
            is_draft=bool(data.get("is_draft", False)),
            url=data.get("url") or "",
            author=data.get("author") or "",
            comment_count=int(data.get("comment_count") or 0),
            has_reviews=bool(data.get("has_reviews", False)),
            is_approved=bool(data.get("is_approved", False)),
            cached_at=parse_timestamp(data.get("cached_at")),
            fetched=bool(data.get("fetched", False)),
        )
