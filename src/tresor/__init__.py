"""tresor - read, edit and write KeePass KDBX 3.1 databases.

This library opens password-protected KDBX 3.1 files, exposes the decrypted
document as typed Python objects, records edits in an undo log and writes
the database back with freshly randomized seeds. Security-relevant details:
- Only the composite key is retained after decryption, in a zeroizable buffer
- Stream start bytes and header hashes are compared in constant time
- The inner XML is parsed with defusedxml

Example:
    from tresor import Database, UpdateEntryAction

    db = Database.open("vault.kdbx", password="secret")
    assert db.verify_header()
    entry = db.find_entries(title="Gmail")[0]

    edited = entry.copy()
    edited.username = "new-name"
    db.apply(UpdateEntryAction(edited, entry, description="Rename user"))
    db.save()
"""

__version__ = "0.1.0"

from .database import Database, DatabaseState
from .exceptions import (
    AtNewestChange,
    AtOldestChange,
    BadLengthError,
    BinaryNotFoundError,
    CorruptedDataError,
    CryptoError,
    DatabaseError,
    DecryptionError,
    FormatError,
    InvalidHeaderFieldError,
    InvalidPathError,
    InvalidSignatureError,
    InvalidStateError,
    InvalidXmlError,
    KdbxError,
    MissingHeaderFieldError,
    PathNotFoundError,
    UndoError,
    UnknownCipherError,
    UnsupportedStreamError,
    UnsupportedVersionError,
)
from .models import Document, Entry, Group, Meta, ProtectedValue, Times, XmlBool
from .security import AesKdfConfig, Cipher
from .undo import Action, UndoManager, UpdateEntryAction

__all__ = [
    # Core classes
    "Action",
    "AesKdfConfig",
    "Cipher",
    "Database",
    "DatabaseState",
    "Document",
    "Entry",
    "Group",
    "Meta",
    "ProtectedValue",
    "Times",
    "UndoManager",
    "UpdateEntryAction",
    "XmlBool",
    # Exceptions
    "KdbxError",
    "FormatError",
    "InvalidSignatureError",
    "UnsupportedVersionError",
    "MissingHeaderFieldError",
    "InvalidHeaderFieldError",
    "UnknownCipherError",
    "UnsupportedStreamError",
    "BadLengthError",
    "CryptoError",
    "DecryptionError",
    "CorruptedDataError",
    "InvalidXmlError",
    "DatabaseError",
    "InvalidStateError",
    "PathNotFoundError",
    "InvalidPathError",
    "BinaryNotFoundError",
    "UndoError",
    "AtOldestChange",
    "AtNewestChange",
]
