"""Wishlist models."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class WishlistEntry:
    """Saved product or variant, keyed by its id."""
    key: str
    title: str = ""
    image_url: Optional[str] = None
    added_at: str = ""

    def __post_init__(self):
        if not self.added_at:
            self.added_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "title": self.title,
            "imageUrl": self.image_url,
            "addedAt": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WishlistEntry":
        """Create from dictionary."""
        key = data["key"]
        if not key:
            raise ValueError("Wishlist entry without key")
        return cls(
            key=str(key),
            title=str(data.get("title") or ""),
            image_url=data.get("imageUrl"),
            added_at=data.get("addedAt", ""),
        )
