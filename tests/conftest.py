"""Shared fixtures for the tresor test suite."""

from pathlib import Path

import pytest

from tresor import Database
from tresor.models import uuid_from_b64

FIXTURES_DIR = Path(__file__).parent / "fixtures"
EXAMPLE_KDBX = FIXTURES_DIR / "example.kdbx"
EXAMPLE_XML = FIXTURES_DIR / "example_decrypted.xml"
EXAMPLE_PASSWORD = "foo"

# Protected stream key from example.kdbx
EXAMPLE_PROTECTED_STREAM_KEY = bytes.fromhex(
    "be3723cc9496ac62a51976df67314e68203140178c1aba143ce6c2441f1068f4"
)
EXAMPLE_HEADER_LENGTH = 222
EXAMPLE_HEADER_HASH = "wpNEane0okexcq5Gjcaw3dTlJp6fh4LINUxKLbW+qpE="

ROOT_GROUP_UUID = uuid_from_b64("M0Gbdz4OmEaVH1j8pqgWFA==")
ROOT_ENTRY_UUID = uuid_from_b64("A/ntiXf2VEW3qSstTnhbcA==")
SUB_GROUP_UUID = uuid_from_b64("TLnGe1+SlES04aiZ9Sk0Kg==")
NESTED_ENTRY_UUID = uuid_from_b64("NZY6u4bWoUqJaIvckl3mLA==")
RECYCLE_BIN_UUID = uuid_from_b64("rrneGT70Vka3wdwglo3oDQ==")
DELETED_UUID = uuid_from_b64("J1FUp3NO3ECuZtoZH54kHw==")

# Rounds small enough to keep the key schedule fast
FAST_ROUNDS = 10


@pytest.fixture
def example_bytes() -> bytes:
    return EXAMPLE_KDBX.read_bytes()


@pytest.fixture
def example_xml() -> bytes:
    return EXAMPLE_XML.read_bytes()


@pytest.fixture
def example_db() -> Database:
    """The example database, opened and parsed."""
    return Database.open(EXAMPLE_KDBX, password=EXAMPLE_PASSWORD)


@pytest.fixture
def example_copy(tmp_path: Path) -> Path:
    """A writable copy of example.kdbx."""
    target = tmp_path / "example.kdbx"
    target.write_bytes(EXAMPLE_KDBX.read_bytes())
    return target


@pytest.fixture
def new_db() -> Database:
    """A freshly created database with one entry in the top-level group."""
    db = Database.create(password="secret", database_name="Fresh", transform_rounds=FAST_ROUNDS)
    top = db.document.root.groups[0]
    top.create_entry(title="Mail", username="carol", password="s3cret")
    return db
