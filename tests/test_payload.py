"""Tests for the inner XML codec."""

import base64
from datetime import UTC, datetime, timedelta, timezone

import pytest
from conftest import (
    DELETED_UUID,
    EXAMPLE_HEADER_HASH,
    EXAMPLE_PROTECTED_STREAM_KEY,
    NESTED_ENTRY_UUID,
    RECYCLE_BIN_UUID,
    ROOT_ENTRY_UUID,
    ROOT_GROUP_UUID,
    SUB_GROUP_UUID,
)

from tresor.exceptions import InvalidXmlError
from tresor.models import Binary, Document, Entry, Group, Root, XmlBool
from tresor.parsing.payload import (
    build_document,
    decode_time,
    encode_time,
    parse_document,
)
from tresor.security import NullStream, Salsa20Stream


def _stream() -> Salsa20Stream:
    return Salsa20Stream.from_protected_stream_key(EXAMPLE_PROTECTED_STREAM_KEY)


def _minimal(root_body: str = "", meta_body: str = "") -> bytes:
    return (
        f"<KeePassFile><Meta>{meta_body}</Meta><Root>{root_body}</Root></KeePassFile>"
    ).encode()


@pytest.fixture
def document(example_xml: bytes) -> Document:
    return parse_document(example_xml, _stream())


class TestParseExample:
    """Tests for parsing the example document."""

    def test_meta(self, document: Document) -> None:
        meta = document.meta
        assert meta.generator == "KeePass"
        assert meta.header_hash == EXAMPLE_HEADER_HASH
        assert meta.database_name == "Example"
        assert meta.database_description == "Test database"
        assert meta.default_username == "alice"
        assert meta.database_name_changed == datetime(2023, 2, 12, 22, 4, 41, tzinfo=UTC)
        assert meta.history_max_size == 6291456
        assert meta.recycle_bin_enabled == XmlBool.of(True)
        assert meta.recycle_bin_uuid == RECYCLE_BIN_UUID
        assert meta.last_selected_group == ROOT_GROUP_UUID
        assert meta.memory_protection.protect_password == XmlBool.of(True)
        assert meta.memory_protection.protect_title == XmlBool.of(False)

    def test_binaries(self, document: Document) -> None:
        assert [b.id for b in document.meta.binaries] == [0, 1]
        assert document.meta.binaries[0].data == b""
        assert document.meta.binaries[1].data == b"This is an attachment\n"

    def test_custom_data(self, document: Document) -> None:
        [item] = document.meta.custom_data
        assert (item.key, item.value) == ("plugin.setting", "42")

    def test_tree_shape(self, document: Document) -> None:
        [top] = document.root.groups
        assert top.uuid == ROOT_GROUP_UUID
        assert top.name == "Example"
        assert [e.uuid for e in top.entries] == [ROOT_ENTRY_UUID]
        assert [g.uuid for g in top.subgroups] == [SUB_GROUP_UUID, RECYCLE_BIN_UUID]
        assert [e.uuid for e in top.subgroups[0].entries] == [NESTED_ENTRY_UUID]

    def test_protected_values_in_document_order(self, document: Document) -> None:
        """Test that each protected value unmasks at its own stream offset."""
        [top] = document.root.groups
        entry = top.entries[0]
        assert entry.get("Password").text == "Password"
        assert entry.get("Password").protected
        assert entry.history[0].get("Password").text == "OldPassword"
        assert top.subgroups[0].entries[0].get("Password").text == "hunter2"

    def test_unprotected_strings(self, document: Document) -> None:
        entry = document.root.groups[0].entries[0]
        assert entry.title == "Root Entry"
        assert entry.username == "alice"
        assert entry.url == "https://example.com"
        assert entry.notes == "Some notes"
        assert not entry.get("Title").protected
        assert entry.keys == ["Notes", "Password", "Title", "URL", "UserName"]

    def test_entry_details(self, document: Document) -> None:
        entry = document.root.groups[0].entries[0]
        assert entry.tags == ["work", "email"]
        assert entry.times.usage_count == 1
        assert [(b.key, b.ref) for b in entry.binaries] == [("attachment.txt", 1)]
        assert entry.autotype.enabled == XmlBool.of(True)
        assert entry.autotype.default_sequence is None
        [association] = entry.autotype.associations
        assert association.window == "Example Login*"
        assert association.keystroke_sequence == "{USERNAME}{TAB}{PASSWORD}{ENTER}"

    def test_history(self, document: Document) -> None:
        entry = document.root.groups[0].entries[0]
        [old] = entry.history
        assert old.uuid == entry.uuid
        assert old.title == "Root Entry"
        assert old.history == []

    def test_group_flags(self, document: Document) -> None:
        top = document.root.groups[0]
        recycle_bin = top.subgroups[1]
        assert top.is_expanded == XmlBool.of(True)
        assert top.enable_autotype == XmlBool()
        assert recycle_bin.enable_autotype == XmlBool.of(False)
        assert recycle_bin.icon_id == 43

    def test_expiry(self, document: Document) -> None:
        nested = document.root.groups[0].subgroups[0].entries[0]
        assert nested.times.expires == XmlBool.of(True)
        assert nested.times.expiry_time == datetime(2030, 1, 1, tzinfo=UTC)
        assert nested.autotype.default_sequence == "{PASSWORD}{ENTER}"

    def test_deleted_objects(self, document: Document) -> None:
        [deleted] = document.root.deleted_objects
        assert deleted.uuid == DELETED_UUID
        assert deleted.deletion_time == datetime(2023, 2, 12, 22, 6, 16, tzinfo=UTC)

    def test_wrong_stream_garbles_values(self, example_xml: bytes) -> None:
        """Test that a stream at the wrong offset yields different plaintext."""
        stream = _stream()
        stream.transform(b"x")
        try:
            document = parse_document(example_xml, stream)
        except InvalidXmlError:
            return
        assert document.root.groups[0].entries[0].password != "Password"


class TestBuild:
    """Tests for build_document."""

    def test_roundtrip(self, document: Document) -> None:
        rebuilt = parse_document(build_document(document, _stream()), _stream())
        assert rebuilt == document

    def test_masks_in_document_order(self, document: Document) -> None:
        xml = build_document(document, _stream()).decode("utf-8")
        assert "02E+MJE3Az0=" in xml
        assert "y/IFMrvkGRfnOfo=" in xml
        assert "I7TWJ7s9gw==" in xml

    def test_order_changes_masks(self, document: Document) -> None:
        """Test that moving an entry earlier changes every later mask."""
        top = document.root.groups[0]
        nested = top.subgroups[0].entries.pop()
        top.entries.insert(0, nested)

        xml = build_document(document, _stream()).decode("utf-8")
        assert "63UjN4MqQw==" in xml
        assert "CeXtEhW15Q4=" in xml
        assert "L+QvziqyyySxPdU=" in xml
        assert "02E+MJE3Az0=" not in xml

    def test_declaration_and_root(self, document: Document) -> None:
        xml = build_document(document, _stream())
        assert xml.startswith(b"<?xml version='1.0' encoding='utf-8'?>")
        assert b"<KeePassFile>" in xml

    def test_header_hash_omitted_when_absent(self) -> None:
        xml = build_document(Document(), NullStream())
        assert b"HeaderHash" not in xml

    def test_history_omitted_when_empty(self) -> None:
        group = Group(name="g")
        group.create_entry(title="t")
        xml = build_document(Document(root=Root(groups=[group])), NullStream())
        assert b"<History" not in xml

    def test_entries_before_subgroups(self) -> None:
        group = Group(name="parent")
        group.create_subgroup("child")
        group.create_entry(title="leaf")
        xml = build_document(Document(root=Root(groups=[group])), NullStream()).decode()
        assert xml.index("<Entry>") < xml.index("<Name>child</Name>")

    def test_protected_binary(self) -> None:
        """Test that a protected attachment consumes the stream before strings."""
        group = Group(name="g")
        entry = group.create_entry(title="t", password="hunter2")
        document = Document(root=Root(groups=[group]))
        document.meta.binaries.append(Binary(id=0, data=b"secret file", protected=True))

        xml = build_document(document, _stream())
        assert base64.b64encode(b"secret file") not in xml

        rebuilt = parse_document(xml, _stream())
        assert rebuilt.meta.binaries[0].data == b"secret file"
        assert rebuilt.root.groups[0].entries[0].password == entry.password

    def test_null_stream_stores_plain_base64(self) -> None:
        group = Group(name="g")
        group.create_entry(password="hunter2")
        xml = build_document(Document(root=Root(groups=[group])), NullStream())
        assert base64.b64encode(b"hunter2") in xml

    def test_tags_joined_with_semicolon(self) -> None:
        group = Group(name="g")
        group.create_entry(title="t", tags=["a", "b"])
        xml = build_document(Document(root=Root(groups=[group])), NullStream())
        assert b"<Tags>a;b</Tags>" in xml

    def test_control_characters_replaced(self) -> None:
        """Test that characters XML 1.0 forbids still give a parseable document."""
        group = Group(name="bell\x07group")
        group.create_entry(title="t", notes="line\x01ctl\x0cfeed", password="pw\x00")
        document = Document(root=Root(groups=[group]))
        document.meta.database_name = "db\x1f"

        rebuilt = parse_document(build_document(document, _stream()), _stream())
        assert rebuilt.meta.database_name == "db\ufffd"
        assert rebuilt.root.groups[0].name == "bell\ufffdgroup"
        [entry] = rebuilt.root.groups[0].entries
        assert entry.notes == "line\ufffdctl\ufffdfeed"
        assert entry.password == "pw\x00"

    def test_allowed_whitespace_kept(self) -> None:
        group = Group(name="g")
        group.create_entry(notes="a\tb\nc")
        xml = build_document(Document(root=Root(groups=[group])), NullStream())
        rebuilt = parse_document(xml, NullStream())
        assert rebuilt.root.groups[0].entries[0].notes == "a\tb\nc"


class TestParseErrors:
    """Tests for malformed inner XML."""

    def test_not_xml(self) -> None:
        with pytest.raises(InvalidXmlError, match="malformed XML"):
            parse_document(b"<KeePassFile><Meta>", NullStream())

    def test_wrong_root(self) -> None:
        with pytest.raises(InvalidXmlError, match="unexpected root element"):
            parse_document(b"<Database/>", NullStream())

    def test_missing_meta(self) -> None:
        with pytest.raises(InvalidXmlError, match="missing Meta"):
            parse_document(b"<KeePassFile><Root/></KeePassFile>", NullStream())

    def test_missing_root(self) -> None:
        with pytest.raises(InvalidXmlError, match="missing Root"):
            parse_document(b"<KeePassFile><Meta/></KeePassFile>", NullStream())

    def test_entity_expansion_rejected(self) -> None:
        xml = (
            b'<?xml version="1.0"?><!DOCTYPE lol [<!ENTITY lol "lol">]>'
            b"<KeePassFile><Meta><Generator>&lol;</Generator></Meta><Root/></KeePassFile>"
        )
        with pytest.raises(InvalidXmlError):
            parse_document(xml, NullStream())

    def test_empty_bool(self) -> None:
        xml = _minimal("<Group><IsExpanded></IsExpanded></Group>")
        with pytest.raises(InvalidXmlError, match="invalid boolean"):
            parse_document(xml, NullStream())

    def test_bad_bool(self) -> None:
        xml = _minimal(meta_body="<RecycleBinEnabled>yes</RecycleBinEnabled>")
        with pytest.raises(InvalidXmlError, match="invalid boolean"):
            parse_document(xml, NullStream())

    def test_bad_integer(self) -> None:
        xml = _minimal(meta_body="<HistoryMaxItems>ten</HistoryMaxItems>")
        with pytest.raises(InvalidXmlError, match="HistoryMaxItems"):
            parse_document(xml, NullStream())

    def test_bad_uuid(self) -> None:
        xml = _minimal("<Group><UUID>not-a-uuid</UUID></Group>")
        with pytest.raises(InvalidXmlError, match="UUID"):
            parse_document(xml, NullStream())

    def test_bad_protected_base64(self) -> None:
        xml = _minimal(
            "<Group><Entry><String><Key>Password</Key>"
            '<Value Protected="True">@@@</Value></String></Entry></Group>'
        )
        with pytest.raises(InvalidXmlError, match="base64"):
            parse_document(xml, _stream())

    def test_binary_ref_without_value(self) -> None:
        xml = _minimal("<Group><Entry><Binary><Key>a.txt</Key></Binary></Entry></Group>")
        with pytest.raises(InvalidXmlError, match="no Value"):
            parse_document(xml, NullStream())


class TestParseLenient:
    """Tests for input accepted beyond what KeePass writes."""

    def test_protected_attribute_case(self) -> None:
        value = base64.b64encode(b"secret").decode()
        xml = _minimal(
            "<Group><Entry><String><Key>Password</Key>"
            f'<Value Protected="true">{value}</Value></String></Entry></Group>'
        )
        document = parse_document(xml, NullStream())
        assert document.root.groups[0].entries[0].password == "secret"

    def test_missing_elements_use_defaults(self) -> None:
        document = parse_document(_minimal("<Group><Name>only</Name></Group>"), NullStream())
        [group] = document.root.groups
        assert group.name == "only"
        assert group.entries == []
        assert group.times.creation_time is None

    def test_unknown_elements_ignored(self) -> None:
        xml = _minimal("<Group><Name>g</Name><FutureField>1</FutureField></Group>")
        assert parse_document(xml, NullStream()).root.groups[0].name == "g"

    def test_comma_separated_tags(self) -> None:
        xml = _minimal("<Group><Entry><Tags>a, b;c</Tags></Entry></Group>")
        assert parse_document(xml, NullStream()).root.groups[0].entries[0].tags == ["a", "b", "c"]

    def test_unprotected_empty_value(self) -> None:
        xml = _minimal("<Group><Entry><String><Key>Notes</Key><Value/></String></Entry></Group>")
        entry = parse_document(xml, NullStream()).root.groups[0].entries[0]
        assert entry.notes == ""
        assert isinstance(entry, Entry)


class TestTimes:
    """Tests for timestamp helpers."""

    def test_decode_utc(self) -> None:
        assert decode_time("2023-02-12T22:06:16Z") == datetime(2023, 2, 12, 22, 6, 16, tzinfo=UTC)

    def test_decode_offset(self) -> None:
        result = decode_time("2023-02-12T23:06:16+01:00")
        assert result == datetime(2023, 2, 12, 22, 6, 16, tzinfo=UTC)
        assert result is not None and result.utcoffset() == timedelta(0)

    def test_decode_empty(self) -> None:
        assert decode_time("") is None
        assert decode_time(None) is None

    def test_decode_invalid(self) -> None:
        with pytest.raises(InvalidXmlError, match="timestamp"):
            decode_time("yesterday")

    def test_encode(self) -> None:
        assert encode_time(datetime(2023, 2, 12, 22, 6, 16, tzinfo=UTC)) == "2023-02-12T22:06:16Z"

    def test_encode_converts_to_utc(self) -> None:
        value = datetime(2023, 2, 12, 23, 6, 16, tzinfo=timezone(timedelta(hours=1)))
        assert encode_time(value) == "2023-02-12T22:06:16Z"

    def test_encode_small_year(self) -> None:
        assert encode_time(datetime(5, 1, 1, tzinfo=UTC)) == "0005-01-01T00:00:00Z"
