"""Group model for KDBX database folders."""

from __future__ import annotations

import copy
import uuid as uuid_module
from collections.abc import Iterator
from dataclasses import dataclass, field

from .entry import Entry
from .times import Times
from .values import XmlBool

# Default folder icon
DEFAULT_GROUP_ICON = 48


@dataclass
class Group:
    """A group (folder) in a KDBX database.

    Groups organize entries into a hierarchical structure. Each group owns
    its entries and subgroups; there are no parent back-references, so an
    item's location is expressed as a path of UUIDs from the top.

    Attributes:
        uuid: Unique identifier for the group
        name: Display name of the group
        notes: Optional notes/description
        icon_id: Icon ID for display
        custom_icon_uuid: Custom icon reference, if any
        times: Timestamps (creation, modification, access, expiry)
        is_expanded: Whether group is expanded in UI
        default_autotype_sequence: Default AutoType sequence for entries
        enable_autotype: AutoType flag (unset = inherit from parent)
        enable_searching: Search flag (unset = inherit from parent)
        last_top_visible_entry: UUID of last visible entry (UI state)
        entries: Entries in this group, in file order
        subgroups: Subgroups, in file order
    """

    uuid: uuid_module.UUID = field(default_factory=uuid_module.uuid4)
    name: str = ""
    notes: str = ""
    icon_id: int = DEFAULT_GROUP_ICON
    custom_icon_uuid: uuid_module.UUID | None = None
    times: Times = field(default_factory=Times.create_new)
    is_expanded: XmlBool = field(default_factory=lambda: XmlBool.of(True))
    default_autotype_sequence: str = ""
    enable_autotype: XmlBool = field(default_factory=XmlBool)
    enable_searching: XmlBool = field(default_factory=XmlBool)
    last_top_visible_entry: uuid_module.UUID = field(
        default_factory=lambda: uuid_module.UUID(int=0)
    )
    entries: list[Entry] = field(default_factory=list)
    subgroups: list[Group] = field(default_factory=list)

    @property
    def expired(self) -> bool:
        """Check if group has expired."""
        return self.times.expired

    def touch(self, modify: bool = False) -> None:
        """Update access time, optionally modification time."""
        self.times.touch(modify=modify)

    def get(self, uuid: uuid_module.UUID) -> Group | Entry:
        """Get a direct child (subgroup or entry) by UUID.

        Subgroups are searched before entries.

        Raises:
            KeyError: If no direct child has that UUID
        """
        for subgroup in self.subgroups:
            if subgroup.uuid == uuid:
                return subgroup
        for entry in self.entries:
            if entry.uuid == uuid:
                return entry
        raise KeyError(f"Group '{self.name}' has no item with UUID '{uuid}'")

    def copy_meta(self) -> Group:
        """Return a copy of this group's metadata without entries or subgroups."""
        return Group(
            uuid=self.uuid,
            name=self.name,
            notes=self.notes,
            icon_id=self.icon_id,
            custom_icon_uuid=self.custom_icon_uuid,
            times=copy.copy(self.times),
            is_expanded=self.is_expanded,
            default_autotype_sequence=self.default_autotype_sequence,
            enable_autotype=self.enable_autotype,
            enable_searching=self.enable_searching,
            last_top_visible_entry=self.last_top_visible_entry,
        )

    # --- Entry management ---

    def add_entry(self, entry: Entry) -> Entry:
        """Add an entry to this group.

        Args:
            entry: Entry to add

        Returns:
            The added entry
        """
        self.entries.append(entry)
        self.touch(modify=True)
        return entry

    def remove_entry(self, entry: Entry) -> None:
        """Remove an entry from this group.

        Raises:
            ValueError: If entry is not in this group
        """
        for i, candidate in enumerate(self.entries):
            if candidate.uuid == entry.uuid:
                del self.entries[i]
                self.touch(modify=True)
                return
        raise ValueError("Entry not in this group")

    def create_entry(
        self,
        title: str = "",
        username: str = "",
        password: str = "",
        url: str = "",
        notes: str = "",
        tags: list[str] | None = None,
    ) -> Entry:
        """Create and add a new entry to this group.

        Returns:
            Newly created entry
        """
        entry = Entry.create(
            title=title,
            username=username,
            password=password,
            url=url,
            notes=notes,
            tags=tags,
        )
        return self.add_entry(entry)

    # --- Subgroup management ---

    def add_subgroup(self, group: Group) -> Group:
        """Add a subgroup to this group.

        Returns:
            The added group
        """
        self.subgroups.append(group)
        self.touch(modify=True)
        return group

    def create_subgroup(
        self,
        name: str,
        notes: str = "",
        icon_id: int = DEFAULT_GROUP_ICON,
    ) -> Group:
        """Create and add a new subgroup.

        Returns:
            Newly created group
        """
        group = Group(name=name, notes=notes, icon_id=icon_id)
        return self.add_subgroup(group)

    # --- Iteration and search ---

    def iter_entries(self, recursive: bool = True) -> Iterator[Entry]:
        """Iterate over entries in this group.

        Args:
            recursive: If True, include entries from all subgroups

        Yields:
            Entry objects (history versions are not included)
        """
        yield from self.entries
        if recursive:
            for subgroup in self.subgroups:
                yield from subgroup.iter_entries(recursive=True)

    def iter_groups(self, recursive: bool = True) -> Iterator[Group]:
        """Iterate over subgroups.

        Args:
            recursive: If True, include nested subgroups

        Yields:
            Group objects
        """
        for subgroup in self.subgroups:
            yield subgroup
            if recursive:
                yield from subgroup.iter_groups(recursive=True)

    def find_entries(
        self,
        title: str | None = None,
        username: str | None = None,
        url: str | None = None,
        tags: list[str] | None = None,
        recursive: bool = True,
    ) -> list[Entry]:
        """Find entries matching criteria.

        All criteria are combined with AND logic. None means "any value".

        Args:
            title: Match entries with this title (exact)
            username: Match entries with this username (exact)
            url: Match entries with this URL (exact)
            tags: Match entries containing all these tags
            recursive: Search in subgroups

        Returns:
            List of matching entries
        """
        results = []
        for entry in self.iter_entries(recursive=recursive):
            if title is not None and entry.title != title:
                continue
            if username is not None and entry.username != username:
                continue
            if url is not None and entry.url != url:
                continue
            if tags is not None and not all(t in entry.tags for t in tags):
                continue
            results.append(entry)
        return results

    def find_groups(self, name: str, recursive: bool = True) -> list[Group]:
        """Find subgroups with this exact name."""
        return [g for g in self.iter_groups(recursive=recursive) if g.name == name]

    def __str__(self) -> str:
        return f'Group: "{self.name}"'
