"""Entry model for KDBX password entries."""

from __future__ import annotations

import copy
import uuid as uuid_module
from dataclasses import dataclass, field
from datetime import datetime

from .times import Times
from .values import ProtectedValue, XmlBool

# Standard fields, in the order KeePass writes them
STANDARD_KEYS = ("Title", "UserName", "Password", "URL", "Notes")


@dataclass
class StringField:
    """A named string field of an entry.

    Attributes:
        key: Field name (e.g., "Title", "UserName", "Password")
        value: Field value and protection flag
    """

    key: str
    value: ProtectedValue = field(default_factory=ProtectedValue)


@dataclass
class BinaryRef:
    """Reference to a binary attachment stored in Meta.

    Attributes:
        key: Filename of the attachment
        ref: ID of the binary in Meta/Binaries
    """

    key: str
    ref: int


@dataclass
class Association:
    """Window-specific auto-type sequence.

    Attributes:
        window: Window title filter
        keystroke_sequence: Sequence to type for matching windows
    """

    window: str = ""
    keystroke_sequence: str = ""


@dataclass
class AutoType:
    """AutoType settings for an entry.

    Attributes:
        enabled: Whether AutoType is enabled for this entry
        data_transfer_obfuscation: Obfuscation level (0 = none)
        default_sequence: Default keystroke sequence, None if absent
        associations: Window-specific sequences
    """

    enabled: XmlBool = field(default_factory=lambda: XmlBool.of(True))
    data_transfer_obfuscation: int = 0
    default_sequence: str | None = None
    associations: list[Association] = field(default_factory=list)


@dataclass
class Entry:
    """A password entry in a KDBX database.

    Entries store credentials and associated metadata as an ordered list of
    string fields. Order matters: protected values are masked in the order
    they appear in the file.

    Attributes:
        uuid: Unique identifier for the entry
        icon_id: Icon ID for display
        custom_icon_uuid: Custom icon reference, if any
        foreground_color: Custom foreground color (hex)
        background_color: Custom background color (hex)
        override_url: URL override
        tags: List of tags for categorization
        times: Timestamps (creation, modification, access, expiry)
        strings: Ordered string fields
        binaries: Binary attachment references
        autotype: AutoType settings
        history: Previous versions of this entry, oldest first
    """

    uuid: uuid_module.UUID = field(default_factory=uuid_module.uuid4)
    icon_id: int = 0
    custom_icon_uuid: uuid_module.UUID | None = None
    foreground_color: str = ""
    background_color: str = ""
    override_url: str = ""
    tags: list[str] = field(default_factory=list)
    times: Times = field(default_factory=Times.create_new)
    strings: list[StringField] = field(default_factory=list)
    binaries: list[BinaryRef] = field(default_factory=list)
    autotype: AutoType = field(default_factory=AutoType)
    history: list[Entry] = field(default_factory=list)

    # --- String fields ---

    def get(self, key: str) -> ProtectedValue:
        """Get the value of a string field.

        Raises:
            KeyError: If the entry has no field with that key
        """
        for string_field in self.strings:
            if string_field.key == key:
                return string_field.value
        raise KeyError(f"No such key: {key}")

    def try_get(self, key: str, fallback: str = "") -> str:
        """Get a field's plaintext, or fallback if the field is absent."""
        try:
            return self.get(key).text
        except KeyError:
            return fallback

    def update_field(self, key: str, text: str, protected: bool | None = None) -> None:
        """Set a string field, appending it if it doesn't exist yet.

        Args:
            key: Field name
            text: New plaintext
            protected: New protection flag; None keeps the current flag
                (new fields are protected only if they are the password)
        """
        for string_field in self.strings:
            if string_field.key == key:
                string_field.value.text = text
                if protected is not None:
                    string_field.value.protected = protected
                return
        if protected is None:
            protected = key == "Password"
        self.strings.append(StringField(key=key, value=ProtectedValue(text, protected)))

    def delete_field(self, key: str) -> None:
        """Remove a string field.

        Raises:
            KeyError: If the entry has no field with that key
        """
        for i, string_field in enumerate(self.strings):
            if string_field.key == key:
                del self.strings[i]
                return
        raise KeyError(f"No such key: {key}")

    @property
    def keys(self) -> list[str]:
        return [string_field.key for string_field in self.strings]

    # --- Standard field properties ---

    @property
    def title(self) -> str:
        """Get or set entry title."""
        return self.try_get("Title")

    @title.setter
    def title(self, value: str) -> None:
        self.update_field("Title", value)

    @property
    def username(self) -> str:
        """Get or set entry username."""
        return self.try_get("UserName")

    @username.setter
    def username(self, value: str) -> None:
        self.update_field("UserName", value)

    @property
    def password(self) -> str:
        """Get or set entry password."""
        return self.try_get("Password")

    @password.setter
    def password(self, value: str) -> None:
        self.update_field("Password", value)

    @property
    def url(self) -> str:
        """Get or set entry URL."""
        return self.try_get("URL")

    @url.setter
    def url(self, value: str) -> None:
        self.update_field("URL", value)

    @property
    def notes(self) -> str:
        """Get or set entry notes."""
        return self.try_get("Notes")

    @notes.setter
    def notes(self, value: str) -> None:
        self.update_field("Notes", value)

    # --- Convenience methods ---

    @property
    def expired(self) -> bool:
        """Check if entry has expired."""
        return self.times.expired

    def touch(self, modify: bool = False) -> None:
        """Update access time, optionally modification time."""
        self.times.touch(modify=modify)

    def copy(self) -> Entry:
        """Return a deep copy of this entry, history included.

        Use this to build the replacement passed to UpdateEntryAction so the
        edit keeps the entry's history.
        """
        return copy.deepcopy(self)

    def copy_meta(self) -> Entry:
        """Return a deep copy of this entry without its history."""
        entry = copy.deepcopy(self)
        entry.history = []
        return entry

    def save_history(self) -> None:
        """Save current state to history before making changes."""
        self.history.append(self.copy_meta())

    def __str__(self) -> str:
        return f'Entry: "{self.title}" ({self.username})'

    @classmethod
    def create(
        cls,
        title: str = "",
        username: str = "",
        password: str = "",
        url: str = "",
        notes: str = "",
        tags: list[str] | None = None,
        icon_id: int = 0,
        expires: bool = False,
        expiry_time: datetime | None = None,
    ) -> Entry:
        """Create a new entry with the standard fields.

        Args:
            title: Entry title
            username: Username
            password: Password (stored protected)
            url: URL
            notes: Notes
            tags: List of tags
            icon_id: Icon ID
            expires: Whether entry expires
            expiry_time: Expiration time

        Returns:
            New Entry instance
        """
        entry = cls(
            times=Times.create_new(expires=expires, expiry_time=expiry_time),
            icon_id=icon_id,
            tags=tags or [],
        )
        values = (title, username, password, url, notes)
        for key, text in zip(STANDARD_KEYS, values, strict=True):
            entry.update_field(key, text)
        return entry
