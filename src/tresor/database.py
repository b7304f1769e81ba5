"""High-level Database API for KDBX 3.1 files.

This module provides the main interface for working with KeePass databases:
- Loading, decrypting and parsing KDBX 3.1 files step by step
- Verifying the header hash embedded in the document
- Navigating by UUID paths and searching entries
- Undoable edits
- Saving with freshly randomized seeds

A Database moves through the states EMPTY -> LOADED -> DECRYPTED -> PARSED.
Navigation, edits and saving require PARSED.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
import uuid as uuid_module
from collections.abc import Iterator, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Any

from .exceptions import CorruptedDataError, InvalidStateError
from .models import Document, Entry, Group, Item, Meta, Root, XmlBool
from .models.document import PathStep
from .parsing import CompressionType, Kdbx3Reader, Kdbx3Writer, KdbxHeader, KdbxVersion
from .parsing.payload import build_document, parse_document
from .security import (
    DEFAULT_TRANSFORM_ROUNDS,
    InnerRandomStreamType,
    SecureBytes,
    constant_time_compare,
    create_protected_stream,
    derive_composite_key,
)
from .undo import Action, UndoManager

logger = logging.getLogger(__name__)

# KeePass' recycle bin icon
RECYCLE_BIN_ICON = 43


class DatabaseState(Enum):
    """Lifecycle state of a Database."""

    EMPTY = "empty"
    LOADED = "loaded"
    DECRYPTED = "decrypted"
    PARSED = "parsed"

    def __str__(self) -> str:
        return self.value


class Database:
    """High-level interface for KDBX 3.1 databases.

    The lifecycle can be driven step by step, which lets a caller retry a
    wrong password without reloading the file:

        db = Database()
        db.load("passwords.kdbx")
        db.decrypt("secret")
        db.parse()
        assert db.verify_header()

    or in one call:

        db = Database.open("passwords.kdbx", password="secret")
        path = db.find_path(some_uuid)
        entry = db.get_item(path)
        db.save()

    Only the composite key (a double SHA-256 of the password) is kept after
    decrypt(); save() re-derives the master key from it under new seeds.
    """

    def __init__(self) -> None:
        self._state = DatabaseState.EMPTY
        self._reader: Kdbx3Reader | None = None
        self._header: KdbxHeader | None = None
        self._xml_data: bytes | None = None
        self._document: Document | None = None
        self._composite_key: SecureBytes | None = None
        self._filepath: Path | None = None
        self._undo: UndoManager[Document] = UndoManager()

    def __enter__(self) -> Database:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager, zeroizing credentials."""
        self.zeroize_credentials()

    def zeroize_credentials(self) -> None:
        """Explicitly zeroize the stored composite key.

        After this the database can still be navigated but not saved until
        set_password() is called.
        """
        if self._composite_key is not None:
            self._composite_key.zeroize()
            self._composite_key = None

    # --- Properties ---

    @property
    def state(self) -> DatabaseState:
        return self._state

    @property
    def header(self) -> KdbxHeader | None:
        """The current outer header (None before load)."""
        return self._header

    @property
    def version(self) -> KdbxVersion | None:
        return self._header.version if self._header is not None else None

    @property
    def filepath(self) -> Path | None:
        """Get the file path (if loaded from or saved to a file)."""
        return self._filepath

    @property
    def document(self) -> Document:
        """The parsed document.

        Raises:
            InvalidStateError: If the database isn't parsed
        """
        self._require(DatabaseState.PARSED, "access document")
        assert self._document is not None
        return self._document

    @property
    def meta(self) -> Meta:
        return self.document.meta

    @property
    def undo_manager(self) -> UndoManager[Document]:
        return self._undo

    def _require(self, state: DatabaseState, operation: str) -> None:
        if self._state != state:
            raise InvalidStateError(operation, self._state)

    def _set_state(self, state: DatabaseState) -> None:
        logger.debug("Database state %s -> %s", self._state, state)
        self._state = state

    # --- Lifecycle ---

    def load(self, filepath: str | Path) -> None:
        """Read a file and parse its outer header.

        Can be called in any state; on success the database is LOADED and
        any previous contents are dropped. On failure nothing changes.

        Raises:
            OSError: If the file can't be read
            FormatError: If the header is invalid
            BadLengthError: If the ciphertext isn't a whole number of blocks
        """
        filepath = Path(filepath)
        with filepath.open("rb") as f:
            data = f.read()
        self.load_bytes(data, filepath=filepath)

    def load_bytes(self, data: bytes, filepath: Path | None = None) -> None:
        """Like load(), from file contents already in memory."""
        reader = Kdbx3Reader(data)

        self.zeroize_credentials()
        self._reader = reader
        self._header = reader.header
        self._xml_data = None
        self._document = None
        self._undo.clear()
        self._filepath = filepath
        self._set_state(DatabaseState.LOADED)

    def decrypt(self, password: str) -> None:
        """Derive the master key and decrypt the payload.

        A failure leaves the database LOADED so another password can be
        tried.

        Raises:
            InvalidStateError: If the database isn't LOADED
            DecryptionError: If the password is wrong
            CorruptedDataError: If the payload fails an integrity check
        """
        self._require(DatabaseState.LOADED, "decrypt")
        assert self._reader is not None

        composite_key = derive_composite_key(password)
        try:
            payload = self._reader.decrypt(composite_key)
        except Exception:
            composite_key.zeroize()
            raise

        self.zeroize_credentials()
        self._composite_key = composite_key
        self._xml_data = payload.xml_data
        self._set_state(DatabaseState.DECRYPTED)

    def parse(self) -> None:
        """Parse the decrypted XML into a Document.

        Raises:
            InvalidStateError: If the database isn't DECRYPTED
            InvalidXmlError: If the XML is malformed
        """
        self._require(DatabaseState.DECRYPTED, "parse")
        assert self._header is not None and self._xml_data is not None

        stream = create_protected_stream(
            self._header.inner_random_stream, self._header.protected_stream_key
        )
        self._document = parse_document(self._xml_data, stream)
        self._xml_data = None
        self._undo.clear()
        self._set_state(DatabaseState.PARSED)

    def verify_header(self) -> bool:
        """Check the document's HeaderHash against the outer header.

        Returns:
            True if Meta/HeaderHash equals SHA-256 of the header bytes

        Raises:
            InvalidStateError: If the database isn't PARSED
            CorruptedDataError: If HeaderHash is absent or malformed
        """
        self._require(DatabaseState.PARSED, "verify header")
        assert self._header is not None and self._document is not None

        header_hash = self._document.meta.header_hash
        if header_hash is None:
            raise CorruptedDataError("missing header hash")
        try:
            expected = base64.b64decode(header_hash.strip(), validate=True)
        except binascii.Error as e:
            raise CorruptedDataError("malformed header hash") from e
        if len(expected) < 32:
            raise CorruptedDataError("malformed header hash")
        return constant_time_compare(self._header.hash, expected[:32])

    # --- Opening and creating ---

    @classmethod
    def open(cls, filepath: str | Path, password: str) -> Database:
        """Load, decrypt and parse a KDBX 3.1 file.

        Args:
            filepath: Path to the .kdbx file
            password: Database password

        Returns:
            Database in state PARSED
        """
        db = cls()
        db.load(filepath)
        db.decrypt(password)
        db.parse()
        return db

    @classmethod
    def open_bytes(
        cls,
        data: bytes,
        password: str,
        filepath: Path | None = None,
    ) -> Database:
        """Load, decrypt and parse KDBX 3.1 file contents.

        Args:
            data: KDBX file contents
            password: Database password
            filepath: Original file path (for save)

        Returns:
            Database in state PARSED
        """
        db = cls()
        db.load_bytes(data, filepath=filepath)
        db.decrypt(password)
        db.parse()
        return db

    @classmethod
    def create(
        cls,
        password: str,
        database_name: str = "Database",
        transform_rounds: int = DEFAULT_TRANSFORM_ROUNDS,
        compression: CompressionType = CompressionType.GZIP,
        filepath: str | Path | None = None,
    ) -> Database:
        """Create a new, empty database.

        The document has one top-level group named after the database,
        containing a recycle bin.

        Args:
            password: Database password
            database_name: Name for the database and its top-level group
            transform_rounds: AES rounds for the key schedule
            compression: Payload compression
            filepath: Default path for save()

        Returns:
            New Database in state PARSED
        """
        now = datetime.now(UTC).replace(microsecond=0)

        top = Group(name=database_name)
        recycle_bin = Group(
            name="Recycle Bin",
            icon_id=RECYCLE_BIN_ICON,
            is_expanded=XmlBool.of(False),
            enable_autotype=XmlBool.of(False),
            enable_searching=XmlBool.of(False),
        )
        top.add_subgroup(recycle_bin)

        meta = Meta(
            database_name=database_name,
            database_name_changed=now,
            database_description_changed=now,
            default_username_changed=now,
            master_key_changed=now,
            recycle_bin_uuid=recycle_bin.uuid,
            recycle_bin_changed=now,
            entry_templates_group_changed=now,
        )

        db = cls()
        db._header = KdbxHeader.create(
            transform_rounds=transform_rounds,
            compression=compression,
        )
        db._document = Document(meta=meta, root=Root(groups=[top]))
        db._composite_key = derive_composite_key(password)
        if filepath is not None:
            db._filepath = Path(filepath)
        db._set_state(DatabaseState.PARSED)
        return db

    def set_password(self, password: str) -> None:
        """Change the password used by the next save.

        Raises:
            InvalidStateError: If the database isn't PARSED
        """
        self._require(DatabaseState.PARSED, "set password")
        self.zeroize_credentials()
        self._composite_key = derive_composite_key(password)

    # --- Saving ---

    def to_bytes(self, randomize: bool = True) -> bytes:
        """Serialize the database to KDBX 3.1.

        With randomize (the default) every seed, the IV, the stream start
        bytes and the protected stream key are drawn fresh; transform rounds
        are kept. Meta/HeaderHash is rewritten to the hash of the header
        being written, and the database adopts that header so
        verify_header() keeps returning True.

        Args:
            randomize: Draw new seeds; False re-uses the current ones, which
                makes the output a pure function of the document

        Returns:
            KDBX file contents

        Raises:
            InvalidStateError: If the database isn't PARSED or has no
                credentials (after zeroize_credentials())
            BadLengthError: If a header field is too large
        """
        self._require(DatabaseState.PARSED, "save")
        assert self._header is not None and self._document is not None
        if self._composite_key is None:
            raise InvalidStateError("save without credentials", self._state)

        if randomize:
            header = self._header.randomized()
        else:
            header = replace(
                self._header,
                inner_random_stream=InnerRandomStreamType.SALSA20,
                comment=None,
            )
            header.raw_header = header.to_bytes()

        self._document.meta.header_hash = base64.b64encode(header.hash).decode("ascii")
        stream = create_protected_stream(header.inner_random_stream, header.protected_stream_key)
        xml_data = build_document(self._document, stream)

        data = Kdbx3Writer().encrypt(header, xml_data, self._composite_key)
        self._header = header
        return data

    def save(self, filepath: str | Path | None = None) -> None:
        """Save the database to a file.

        The file is written to a temporary sibling and renamed over the
        target, so a failed save never leaves a partial file behind.

        Args:
            filepath: Path to save to (uses the loaded path if not specified)

        Raises:
            ValueError: If no filepath is specified and none is known
            OSError: If writing fails
        """
        if filepath is not None:
            target = Path(filepath)
        elif self._filepath is not None:
            target = self._filepath
        else:
            raise ValueError("No filepath specified and database wasn't opened from file")

        data = self.to_bytes()
        logger.debug("Saving %d bytes to %s", len(data), target)

        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self._filepath = target
        logger.info("Saved database to %s", target)

    # --- Navigation and search ---

    def get_item(self, path: Sequence[PathStep]) -> Item:
        """Resolve a path of UUIDs to a Group or Entry.

        See Document.get_item.
        """
        return self.document.get_item(path)

    def find_path(self, uuid: PathStep) -> list[uuid_module.UUID] | None:
        """Find the path to the group or entry with this UUID."""
        return self.document.find_path(uuid)

    def get_binary(self, binary_id: int) -> bytes:
        """Get an attachment body by its ID in the binary pool."""
        return self.document.get_binary(binary_id)

    def get_attachment(self, entry: Entry, name: str) -> bytes | None:
        """Get an attachment of an entry by filename, None if absent."""
        for binary_ref in entry.binaries:
            if binary_ref.key == name:
                return self.get_binary(binary_ref.ref)
        return None

    def update_entry(self, entry: Entry) -> bool:
        """Replace the entry with the same UUID, without recording undo."""
        return self.document.update_entry(entry)

    def iter_entries(self) -> Iterator[Entry]:
        """Iterate over all entries in the database."""
        yield from self.document.iter_entries()

    def iter_groups(self) -> Iterator[Group]:
        """Iterate over all groups in the database."""
        yield from self.document.iter_groups()

    def find_entries(
        self,
        title: str | None = None,
        username: str | None = None,
        url: str | None = None,
        tags: list[str] | None = None,
    ) -> list[Entry]:
        """Find entries matching criteria.

        All criteria are combined with AND logic. None means "any value".

        Args:
            title: Match entries with this title
            username: Match entries with this username
            url: Match entries with this URL
            tags: Match entries with all these tags

        Returns:
            List of matching entries
        """
        return self.document.find_entries(title=title, username=username, url=url, tags=tags)

    # --- Undo ---

    def apply(self, action: Action[Document]) -> Any:
        """Execute an action on the document and record it for undo."""
        return self._undo.apply(self.document, action)

    def undo(self) -> Any:
        """Revert the last action.

        Raises:
            AtOldestChange: If there is nothing to undo
        """
        return self._undo.undo(self.document)

    def redo(self) -> Any:
        """Re-apply the last undone action.

        Raises:
            AtNewestChange: If there is nothing to redo
        """
        return self._undo.redo(self.document)

    def __str__(self) -> str:
        if self._state != DatabaseState.PARSED or self._document is None:
            return f"Database ({self._state})"
        entry_count = sum(1 for _ in self.iter_entries())
        group_count = sum(1 for _ in self.iter_groups())
        name = self._document.meta.database_name
        return f'Database: "{name}" ({entry_count} entries, {group_count} groups)'
