"""Timestamps shared by groups and entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from .values import XmlBool


def _now() -> datetime:
    # KDBX stores whole seconds
    return datetime.now(UTC).replace(microsecond=0)


@dataclass
class Times:
    """Timestamps for a group or entry.

    All datetimes are timezone-aware UTC. A missing element reads as None.

    Attributes:
        creation_time: When the item was created
        last_modification_time: When the item was last modified
        last_access_time: When the item was last accessed
        expiry_time: When the item expires (if expires is set)
        expires: Whether the item expires
        usage_count: Number of times the item was used
        location_changed: When the item was last moved to another group
    """

    creation_time: datetime | None = field(default_factory=_now)
    last_modification_time: datetime | None = field(default_factory=_now)
    last_access_time: datetime | None = field(default_factory=_now)
    expiry_time: datetime | None = None
    expires: XmlBool = field(default_factory=lambda: XmlBool.of(False))
    usage_count: int = 0
    location_changed: datetime | None = field(default_factory=_now)

    @classmethod
    def create_new(
        cls,
        expires: bool = False,
        expiry_time: datetime | None = None,
    ) -> Times:
        """Create timestamps for a new item, all set to now."""
        now = _now()
        return cls(
            creation_time=now,
            last_modification_time=now,
            last_access_time=now,
            expiry_time=expiry_time if expiry_time is not None else now,
            expires=XmlBool.of(expires),
            usage_count=0,
            location_changed=now,
        )

    @classmethod
    def empty(cls) -> Times:
        """Timestamps with every field unset, as read from an empty element."""
        return cls(
            creation_time=None,
            last_modification_time=None,
            last_access_time=None,
            expiry_time=None,
            expires=XmlBool(),
            usage_count=0,
            location_changed=None,
        )

    @property
    def expired(self) -> bool:
        if not self.expires or self.expiry_time is None:
            return False
        return datetime.now(UTC) >= self.expiry_time

    def touch(self, modify: bool = False) -> None:
        """Update access time, optionally modification time."""
        now = _now()
        self.last_access_time = now
        if modify:
            self.last_modification_time = now

    def update_location(self) -> None:
        self.location_changed = _now()
