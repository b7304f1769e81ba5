"""Document model: the decrypted contents of a KDBX file.

A Document mirrors the inner XML tree: `Meta` holds database-wide settings
and the binary attachment pool, `Root` holds the forest of top-level
groups and the deleted-object tombstones. Items are addressed by paths of
UUIDs walking down from a top-level group.
"""

from __future__ import annotations

import base64
import binascii
import uuid as uuid_module
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from tresor.exceptions import BinaryNotFoundError, InvalidPathError, PathNotFoundError
from tresor.parsing.compression import decompress

from .entry import Entry
from .group import Group
from .values import XmlBool

Item = Group | Entry
PathStep = uuid_module.UUID | str

NULL_UUID = uuid_module.UUID(int=0)


def uuid_to_b64(value: uuid_module.UUID) -> str:
    """Encode a UUID the way KeePass stores it in XML."""
    return base64.b64encode(value.bytes).decode("ascii")


def uuid_from_b64(text: str) -> uuid_module.UUID:
    """Decode a base64 UUID from XML.

    Raises:
        ValueError: If text isn't base64 of exactly 16 bytes
    """
    try:
        raw = base64.b64decode(text, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid UUID: {text!r}") from e
    if len(raw) != 16:
        raise ValueError(f"invalid UUID length {len(raw)}: {text!r}")
    return uuid_module.UUID(bytes=raw)


def _as_uuid(step: PathStep) -> uuid_module.UUID:
    if isinstance(step, uuid_module.UUID):
        return step
    return uuid_from_b64(step)


@dataclass
class MemoryProtection:
    """Which standard fields KeePass protects by default."""

    protect_title: XmlBool = field(default_factory=lambda: XmlBool.of(False))
    protect_username: XmlBool = field(default_factory=lambda: XmlBool.of(False))
    protect_password: XmlBool = field(default_factory=lambda: XmlBool.of(True))
    protect_url: XmlBool = field(default_factory=lambda: XmlBool.of(False))
    protect_notes: XmlBool = field(default_factory=lambda: XmlBool.of(False))


@dataclass
class Binary:
    """An attachment body in the Meta binary pool.

    Attributes:
        id: Integer ID referenced by entries
        data: Stored bytes (gzip-compressed when compressed is set)
        compressed: Whether data is gzip-compressed
        protected: Whether data is masked with the inner stream on disk
    """

    id: int
    data: bytes = b""
    compressed: bool = False
    protected: bool = False


@dataclass
class CustomIcon:
    uuid: uuid_module.UUID
    data: bytes


@dataclass
class CustomDataItem:
    key: str
    value: str


@dataclass
class Meta:
    """Database-wide settings.

    Attributes:
        generator: Application that wrote the file
        header_hash: Base64 SHA-256 of the outer header, None if absent
        database_name: Name of the database
        database_description: Description of the database
        default_username: Default username for new entries
        maintenance_history_days: Days to keep deleted items
        color: Database color (hex)
        master_key_change_rec: Days until master key change recommended
        master_key_change_force: Days until master key change forced
        memory_protection: Which fields to protect
        recycle_bin_enabled: Whether recycle bin is enabled
        recycle_bin_uuid: UUID of recycle bin group
        entry_templates_group: UUID of the entry templates group
        history_max_items: Max history entries per entry
        history_max_size: Max history size in bytes
        last_selected_group: UI state
        last_top_visible_group: UI state
        custom_icons: Custom icon images
        binaries: Attachment pool
        custom_data: Plugin key/value pairs
    """

    generator: str = "tresor"
    header_hash: str | None = None
    database_name: str = ""
    database_name_changed: datetime | None = None
    database_description: str = ""
    database_description_changed: datetime | None = None
    default_username: str = ""
    default_username_changed: datetime | None = None
    maintenance_history_days: int = 365
    color: str = ""
    master_key_changed: datetime | None = None
    master_key_change_rec: int = -1
    master_key_change_force: int = -1
    memory_protection: MemoryProtection = field(default_factory=MemoryProtection)
    custom_icons: list[CustomIcon] = field(default_factory=list)
    recycle_bin_enabled: XmlBool = field(default_factory=lambda: XmlBool.of(True))
    recycle_bin_uuid: uuid_module.UUID = NULL_UUID
    recycle_bin_changed: datetime | None = None
    entry_templates_group: uuid_module.UUID = NULL_UUID
    entry_templates_group_changed: datetime | None = None
    history_max_items: int = 10
    history_max_size: int = 6 * 1024 * 1024  # 6 MiB
    last_selected_group: uuid_module.UUID = NULL_UUID
    last_top_visible_group: uuid_module.UUID = NULL_UUID
    binaries: list[Binary] = field(default_factory=list)
    custom_data: list[CustomDataItem] = field(default_factory=list)


@dataclass
class DeletedObject:
    uuid: uuid_module.UUID
    deletion_time: datetime | None = None


@dataclass
class Root:
    groups: list[Group] = field(default_factory=list)
    deleted_objects: list[DeletedObject] = field(default_factory=list)


@dataclass
class Document:
    """Decrypted KDBX document.

    Attributes:
        meta: Database-wide settings and attachments
        root: Top-level groups and tombstones
    """

    meta: Meta = field(default_factory=Meta)
    root: Root = field(default_factory=Root)

    # --- Navigation ---

    def get_item(self, path: Sequence[PathStep]) -> Item:
        """Resolve a path of UUIDs.

        An empty path yields a synthetic group whose subgroups are the
        top-level groups.

        Args:
            path: UUIDs (or their base64 text) from a top-level group down

        Returns:
            The Group or Entry named by the last step

        Raises:
            PathNotFoundError: If a step names no child of the previous group
            InvalidPathError: If an Entry appears before the last step
        """
        current = Group(uuid=NULL_UUID, subgroups=self.root.groups)
        for i, step in enumerate(path):
            try:
                item = current.get(_as_uuid(step))
            except (KeyError, ValueError) as e:
                raise PathNotFoundError(i, f"invalid path entry: {e}") from None
            if isinstance(item, Entry):
                if i == len(path) - 1:
                    return item
                raise InvalidPathError(f"got Entry for non-final step {i} in path")
            current = item
        return current

    def find_path(self, uuid: PathStep) -> list[uuid_module.UUID] | None:
        """Find the path to the group or entry with this UUID.

        The tree is searched depth-first: each group, then its entries,
        then its subgroups.

        Returns:
            The first matching path, or None if nothing has this UUID
        """
        target = _as_uuid(uuid)
        return _find_path_in_groups(target, self.root.groups)

    def update_entry(self, entry: Entry) -> bool:
        """Replace the first entry with the same UUID, depth-first.

        Returns:
            True if an entry was replaced, False if none matched
        """
        return _replace_entry(entry, self.root.groups)

    def get_binary(self, binary_id: int) -> bytes:
        """Get the body of an attachment from the binary pool.

        Raises:
            BinaryNotFoundError: If no binary has this ID
            CorruptedDataError: If a compressed body doesn't gunzip
        """
        for binary in self.meta.binaries:
            if binary.id == binary_id:
                if binary.compressed:
                    return decompress(binary.data)
                return binary.data
        raise BinaryNotFoundError(binary_id)

    # --- Iteration and search ---

    def iter_groups(self) -> Iterator[Group]:
        """Iterate over every group, depth-first."""
        for group in self.root.groups:
            yield group
            yield from group.iter_groups(recursive=True)

    def iter_entries(self) -> Iterator[Entry]:
        """Iterate over every entry, group by group."""
        for group in self.root.groups:
            yield from group.iter_entries(recursive=True)

    def find_entries(
        self,
        title: str | None = None,
        username: str | None = None,
        url: str | None = None,
        tags: list[str] | None = None,
    ) -> list[Entry]:
        """Find entries anywhere in the document. See Group.find_entries."""
        results: list[Entry] = []
        for group in self.root.groups:
            results.extend(
                group.find_entries(title=title, username=username, url=url, tags=tags)
            )
        return results


def _find_path_in_groups(
    target: uuid_module.UUID, groups: list[Group]
) -> list[uuid_module.UUID] | None:
    for group in groups:
        if group.uuid == target:
            return [group.uuid]
        for entry in group.entries:
            if entry.uuid == target:
                return [group.uuid, entry.uuid]
        subpath = _find_path_in_groups(target, group.subgroups)
        if subpath is not None:
            return [group.uuid, *subpath]
    return None


def _replace_entry(entry: Entry, groups: list[Group]) -> bool:
    for group in groups:
        for i, candidate in enumerate(group.entries):
            if candidate.uuid == entry.uuid:
                group.entries[i] = entry
                return True
        if _replace_entry(entry, group.subgroups):
            return True
    return False
