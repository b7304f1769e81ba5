"""XML codec for the decrypted KDBX 3.1 payload.

Maps the inner `KeePassFile` document to and from the models in
tresor.models. Four rules go beyond a plain structural mapping:

- Booleans are tri-state (`True`, `False`, `null`), see XmlBool.
- A `Value` with `Protected="True"` holds base64 of the plaintext XOR-ed
  with the inner random stream. The stream is one sequence shared by every
  protected value in the file, so the reader and writer visit elements
  strictly in document order and carry the stream with them.
- `History` is written only when an entry has history.
- Characters XML 1.0 forbids are written as U+FFFD, so every saved
  document parses again.

Parsing uses defusedxml so entity-expansion and external-entity tricks in
a decrypted payload are rejected as malformed XML.
"""

from __future__ import annotations

import base64
import binascii
import re
import uuid as uuid_module
from datetime import UTC, datetime
from typing import cast
from xml.etree.ElementTree import Element, ParseError, SubElement, tostring

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DefusedET

from tresor.exceptions import InvalidXmlError
from tresor.models import (
    Association,
    AutoType,
    Binary,
    BinaryRef,
    CustomDataItem,
    CustomIcon,
    DeletedObject,
    Document,
    Entry,
    Group,
    MemoryProtection,
    Meta,
    ProtectedValue,
    Root,
    StringField,
    Times,
    XmlBool,
)
from tresor.models.document import NULL_UUID, uuid_from_b64, uuid_to_b64
from tresor.security.stream import ProtectedStream

# RFC 3339, whole seconds, always UTC
TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Code points XML 1.0 cannot carry, written as U+FFFD
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


# --- Value helpers ---


def read_bool(elem: Element) -> XmlBool:
    """Read a tri-state boolean element.

    Raises:
        InvalidXmlError: If the text isn't true, false or null
    """
    return XmlBool.from_text(elem.text)


def _is_true(attr: str | None) -> bool:
    return attr is not None and attr.lower() == "true"


def _b64decode(text: str | None, what: str) -> bytes:
    try:
        return base64.b64decode((text or "").strip(), validate=True)
    except binascii.Error as e:
        raise InvalidXmlError(f"invalid base64 in {what}") from e


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_value(elem: Element, stream: ProtectedStream) -> ProtectedValue:
    """Read a `Value` element, unmasking it if it is protected.

    Protected values advance the stream by their length.

    Raises:
        InvalidXmlError: If a protected value isn't valid base64 or UTF-8
    """
    if not _is_true(elem.get("Protected")):
        return ProtectedValue(elem.text or "", protected=False)

    plaintext = stream.transform(_b64decode(elem.text, "protected value"))
    try:
        return ProtectedValue(plaintext.decode("utf-8"), protected=True)
    except UnicodeDecodeError as e:
        raise InvalidXmlError("protected value is not valid UTF-8") from e


def encode_value(value: ProtectedValue, stream: ProtectedStream, tag: str = "Value") -> Element:
    """Build a `Value` element, masking it if it is protected."""
    elem = Element(tag)
    if value.protected:
        elem.set("Protected", "True")
        elem.text = _b64encode(stream.transform(value.text.encode("utf-8")))
    else:
        elem.text = value.text
    return elem


def decode_time(text: str | None) -> datetime | None:
    """Parse an XML timestamp to an aware UTC datetime.

    Returns:
        None for an empty element

    Raises:
        InvalidXmlError: If the text isn't an ISO 8601 timestamp
    """
    text = (text or "").strip()
    if not text:
        return None
    try:
        value = datetime.strptime(text, TIME_FORMAT)
    except ValueError:
        try:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidXmlError(f"invalid timestamp: {text!r}") from e
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def encode_time(value: datetime) -> str:
    """Format a datetime as `YYYY-MM-DDTHH:MM:SSZ` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    else:
        value = value.astimezone(UTC)
    # strftime doesn't zero-pad years below 1000 on every platform
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}Z"
    )


def _text(elem: Element) -> str:
    return elem.text or ""


def _int(elem: Element) -> int:
    try:
        return int(_text(elem).strip())
    except ValueError as e:
        raise InvalidXmlError(f"invalid integer in {elem.tag}: {elem.text!r}") from e


def _uuid(elem: Element) -> uuid_module.UUID:
    text = _text(elem).strip()
    if not text:
        return NULL_UUID
    try:
        return uuid_from_b64(text)
    except ValueError as e:
        raise InvalidXmlError(f"invalid UUID in {elem.tag}") from e


def _split_tags(text: str) -> list[str]:
    return [t.strip() for t in text.replace(",", ";").split(";") if t.strip()]


# --- Reading ---


class _DocumentReader:
    """Walks a KeePassFile tree in document order, unmasking as it goes."""

    def __init__(self, stream: ProtectedStream) -> None:
        self._stream = stream

    def read(self, xml_data: bytes) -> Document:
        try:
            root = DefusedET.fromstring(xml_data)
        except (ParseError, DefusedXmlException) as e:
            raise InvalidXmlError(f"malformed XML: {e}") from e

        if root.tag != "KeePassFile":
            raise InvalidXmlError(f"unexpected root element: {root.tag}")

        meta: Meta | None = None
        doc_root: Root | None = None
        for child in root:
            if child.tag == "Meta":
                meta = self._read_meta(child)
            elif child.tag == "Root":
                doc_root = self._read_root(child)

        if meta is None:
            raise InvalidXmlError("missing Meta element")
        if doc_root is None:
            raise InvalidXmlError("missing Root element")
        return Document(meta=meta, root=doc_root)

    def _read_meta(self, elem: Element) -> Meta:
        meta = Meta()
        for child in elem:
            tag = child.tag
            if tag == "Generator":
                meta.generator = _text(child)
            elif tag == "HeaderHash":
                meta.header_hash = _text(child)
            elif tag == "DatabaseName":
                meta.database_name = _text(child)
            elif tag == "DatabaseNameChanged":
                meta.database_name_changed = decode_time(child.text)
            elif tag == "DatabaseDescription":
                meta.database_description = _text(child)
            elif tag == "DatabaseDescriptionChanged":
                meta.database_description_changed = decode_time(child.text)
            elif tag == "DefaultUserName":
                meta.default_username = _text(child)
            elif tag == "DefaultUserNameChanged":
                meta.default_username_changed = decode_time(child.text)
            elif tag == "MaintenanceHistoryDays":
                meta.maintenance_history_days = _int(child)
            elif tag == "Color":
                meta.color = _text(child)
            elif tag == "MasterKeyChanged":
                meta.master_key_changed = decode_time(child.text)
            elif tag == "MasterKeyChangeRec":
                meta.master_key_change_rec = _int(child)
            elif tag == "MasterKeyChangeForce":
                meta.master_key_change_force = _int(child)
            elif tag == "MemoryProtection":
                meta.memory_protection = self._read_memory_protection(child)
            elif tag == "CustomIcons":
                meta.custom_icons = [
                    self._read_custom_icon(icon) for icon in child if icon.tag == "Icon"
                ]
            elif tag == "RecycleBinEnabled":
                meta.recycle_bin_enabled = read_bool(child)
            elif tag == "RecycleBinUUID":
                meta.recycle_bin_uuid = _uuid(child)
            elif tag == "RecycleBinChanged":
                meta.recycle_bin_changed = decode_time(child.text)
            elif tag == "EntryTemplatesGroup":
                meta.entry_templates_group = _uuid(child)
            elif tag == "EntryTemplatesGroupChanged":
                meta.entry_templates_group_changed = decode_time(child.text)
            elif tag == "HistoryMaxItems":
                meta.history_max_items = _int(child)
            elif tag == "HistoryMaxSize":
                meta.history_max_size = _int(child)
            elif tag == "LastSelectedGroup":
                meta.last_selected_group = _uuid(child)
            elif tag == "LastTopVisibleGroup":
                meta.last_top_visible_group = _uuid(child)
            elif tag == "Binaries":
                meta.binaries = [
                    self._read_binary(binary) for binary in child if binary.tag == "Binary"
                ]
            elif tag == "CustomData":
                meta.custom_data = [
                    self._read_custom_data_item(item) for item in child if item.tag == "Item"
                ]
        return meta

    def _read_memory_protection(self, elem: Element) -> MemoryProtection:
        protection = MemoryProtection()
        for child in elem:
            if child.tag == "ProtectTitle":
                protection.protect_title = read_bool(child)
            elif child.tag == "ProtectUserName":
                protection.protect_username = read_bool(child)
            elif child.tag == "ProtectPassword":
                protection.protect_password = read_bool(child)
            elif child.tag == "ProtectURL":
                protection.protect_url = read_bool(child)
            elif child.tag == "ProtectNotes":
                protection.protect_notes = read_bool(child)
        return protection

    def _read_custom_icon(self, elem: Element) -> CustomIcon:
        icon = CustomIcon(uuid=NULL_UUID, data=b"")
        for child in elem:
            if child.tag == "UUID":
                icon.uuid = _uuid(child)
            elif child.tag == "Data":
                icon.data = _b64decode(child.text, "custom icon")
        return icon

    def _read_binary(self, elem: Element) -> Binary:
        id_attr = elem.get("ID")
        try:
            binary_id = int(id_attr or "")
        except ValueError as e:
            raise InvalidXmlError(f"invalid binary ID: {id_attr!r}") from e
        data = _b64decode(elem.text, f"binary {binary_id}")
        protected = _is_true(elem.get("Protected"))
        if protected:
            data = self._stream.transform(data)
        return Binary(
            id=binary_id,
            data=data,
            compressed=_is_true(elem.get("Compressed")),
            protected=protected,
        )

    def _read_custom_data_item(self, elem: Element) -> CustomDataItem:
        item = CustomDataItem(key="", value="")
        for child in elem:
            if child.tag == "Key":
                item.key = _text(child)
            elif child.tag == "Value":
                item.value = _text(child)
        return item

    def _read_root(self, elem: Element) -> Root:
        root = Root()
        for child in elem:
            if child.tag == "Group":
                root.groups.append(self._read_group(child))
            elif child.tag == "DeletedObjects":
                root.deleted_objects = [
                    self._read_deleted_object(obj)
                    for obj in child
                    if obj.tag == "DeletedObject"
                ]
        return root

    def _read_deleted_object(self, elem: Element) -> DeletedObject:
        obj = DeletedObject(uuid=NULL_UUID)
        for child in elem:
            if child.tag == "UUID":
                obj.uuid = _uuid(child)
            elif child.tag == "DeletionTime":
                obj.deletion_time = decode_time(child.text)
        return obj

    def _read_group(self, elem: Element) -> Group:
        group = Group(uuid=NULL_UUID, times=Times.empty())
        for child in elem:
            tag = child.tag
            if tag == "UUID":
                group.uuid = _uuid(child)
            elif tag == "Name":
                group.name = _text(child)
            elif tag == "Notes":
                group.notes = _text(child)
            elif tag == "IconID":
                group.icon_id = _int(child)
            elif tag == "CustomIconUUID":
                group.custom_icon_uuid = _uuid(child)
            elif tag == "Times":
                group.times = self._read_times(child)
            elif tag == "IsExpanded":
                group.is_expanded = read_bool(child)
            elif tag == "DefaultAutoTypeSequence":
                group.default_autotype_sequence = _text(child)
            elif tag == "EnableAutoType":
                group.enable_autotype = read_bool(child)
            elif tag == "EnableSearching":
                group.enable_searching = read_bool(child)
            elif tag == "LastTopVisibleEntry":
                group.last_top_visible_entry = _uuid(child)
            elif tag == "Entry":
                group.entries.append(self._read_entry(child))
            elif tag == "Group":
                group.subgroups.append(self._read_group(child))
        return group

    def _read_entry(self, elem: Element) -> Entry:
        entry = Entry(uuid=NULL_UUID, times=Times.empty())
        for child in elem:
            tag = child.tag
            if tag == "UUID":
                entry.uuid = _uuid(child)
            elif tag == "IconID":
                entry.icon_id = _int(child)
            elif tag == "CustomIconUUID":
                entry.custom_icon_uuid = _uuid(child)
            elif tag == "ForegroundColor":
                entry.foreground_color = _text(child)
            elif tag == "BackgroundColor":
                entry.background_color = _text(child)
            elif tag == "OverrideURL":
                entry.override_url = _text(child)
            elif tag == "Tags":
                entry.tags = _split_tags(_text(child))
            elif tag == "Times":
                entry.times = self._read_times(child)
            elif tag == "String":
                entry.strings.append(self._read_string(child))
            elif tag == "Binary":
                entry.binaries.append(self._read_binary_ref(child))
            elif tag == "AutoType":
                entry.autotype = self._read_autotype(child)
            elif tag == "History":
                entry.history = [
                    self._read_entry(old) for old in child if old.tag == "Entry"
                ]
        return entry

    def _read_string(self, elem: Element) -> StringField:
        string_field = StringField(key="")
        for child in elem:
            if child.tag == "Key":
                string_field.key = _text(child)
            elif child.tag == "Value":
                string_field.value = decode_value(child, self._stream)
        return string_field

    def _read_binary_ref(self, elem: Element) -> BinaryRef:
        key = ""
        ref: int | None = None
        for child in elem:
            if child.tag == "Key":
                key = _text(child)
            elif child.tag == "Value":
                ref_attr = child.get("Ref")
                try:
                    ref = int(ref_attr or "")
                except ValueError as e:
                    raise InvalidXmlError(f"invalid binary Ref: {ref_attr!r}") from e
        if ref is None:
            raise InvalidXmlError(f"binary reference {key!r} has no Value")
        return BinaryRef(key=key, ref=ref)

    def _read_autotype(self, elem: Element) -> AutoType:
        autotype = AutoType()
        for child in elem:
            if child.tag == "Enabled":
                autotype.enabled = read_bool(child)
            elif child.tag == "DataTransferObfuscation":
                autotype.data_transfer_obfuscation = _int(child)
            elif child.tag == "DefaultSequence":
                autotype.default_sequence = _text(child)
            elif child.tag == "Association":
                association = Association()
                for part in child:
                    if part.tag == "Window":
                        association.window = _text(part)
                    elif part.tag == "KeystrokeSequence":
                        association.keystroke_sequence = _text(part)
                autotype.associations.append(association)
        return autotype

    def _read_times(self, elem: Element) -> Times:
        times = Times.empty()
        for child in elem:
            tag = child.tag
            if tag == "CreationTime":
                times.creation_time = decode_time(child.text)
            elif tag == "LastModificationTime":
                times.last_modification_time = decode_time(child.text)
            elif tag == "LastAccessTime":
                times.last_access_time = decode_time(child.text)
            elif tag == "ExpiryTime":
                times.expiry_time = decode_time(child.text)
            elif tag == "Expires":
                times.expires = read_bool(child)
            elif tag == "UsageCount":
                times.usage_count = _int(child)
            elif tag == "LocationChanged":
                times.location_changed = decode_time(child.text)
        return times


# --- Writing ---


def xml_safe(text: str) -> str:
    """Replace characters XML 1.0 forbids with U+FFFD."""
    return _XML_ILLEGAL.sub("\ufffd", text)


def _replace_illegal_chars(root: Element) -> None:
    for node in root.iter():
        if node.text:
            node.text = xml_safe(node.text)
        for key, value in node.attrib.items():
            node.set(key, xml_safe(value))


class _DocumentWriter:
    """Builds a KeePassFile tree in document order, masking as it goes."""

    def __init__(self, stream: ProtectedStream) -> None:
        self._stream = stream

    def write(self, document: Document) -> bytes:
        root = Element("KeePassFile")
        self._build_meta(SubElement(root, "Meta"), document.meta)
        self._build_root(SubElement(root, "Root"), document.root)
        _replace_illegal_chars(root)
        return cast(bytes, tostring(root, encoding="utf-8", xml_declaration=True))

    def _build_meta(self, elem: Element, meta: Meta) -> None:
        SubElement(elem, "Generator").text = meta.generator
        if meta.header_hash is not None:
            SubElement(elem, "HeaderHash").text = meta.header_hash
        SubElement(elem, "DatabaseName").text = meta.database_name
        self._time(elem, "DatabaseNameChanged", meta.database_name_changed)
        SubElement(elem, "DatabaseDescription").text = meta.database_description
        self._time(elem, "DatabaseDescriptionChanged", meta.database_description_changed)
        SubElement(elem, "DefaultUserName").text = meta.default_username
        self._time(elem, "DefaultUserNameChanged", meta.default_username_changed)
        SubElement(elem, "MaintenanceHistoryDays").text = str(meta.maintenance_history_days)
        SubElement(elem, "Color").text = meta.color
        self._time(elem, "MasterKeyChanged", meta.master_key_changed)
        SubElement(elem, "MasterKeyChangeRec").text = str(meta.master_key_change_rec)
        SubElement(elem, "MasterKeyChangeForce").text = str(meta.master_key_change_force)

        mp = SubElement(elem, "MemoryProtection")
        protection = meta.memory_protection
        SubElement(mp, "ProtectTitle").text = protection.protect_title.to_text()
        SubElement(mp, "ProtectUserName").text = protection.protect_username.to_text()
        SubElement(mp, "ProtectPassword").text = protection.protect_password.to_text()
        SubElement(mp, "ProtectURL").text = protection.protect_url.to_text()
        SubElement(mp, "ProtectNotes").text = protection.protect_notes.to_text()

        if meta.custom_icons:
            icons = SubElement(elem, "CustomIcons")
            for icon in meta.custom_icons:
                icon_elem = SubElement(icons, "Icon")
                SubElement(icon_elem, "UUID").text = uuid_to_b64(icon.uuid)
                SubElement(icon_elem, "Data").text = _b64encode(icon.data)

        SubElement(elem, "RecycleBinEnabled").text = meta.recycle_bin_enabled.to_text()
        SubElement(elem, "RecycleBinUUID").text = uuid_to_b64(meta.recycle_bin_uuid)
        self._time(elem, "RecycleBinChanged", meta.recycle_bin_changed)
        SubElement(elem, "EntryTemplatesGroup").text = uuid_to_b64(meta.entry_templates_group)
        self._time(elem, "EntryTemplatesGroupChanged", meta.entry_templates_group_changed)
        SubElement(elem, "HistoryMaxItems").text = str(meta.history_max_items)
        SubElement(elem, "HistoryMaxSize").text = str(meta.history_max_size)
        SubElement(elem, "LastSelectedGroup").text = uuid_to_b64(meta.last_selected_group)
        SubElement(elem, "LastTopVisibleGroup").text = uuid_to_b64(meta.last_top_visible_group)

        binaries = SubElement(elem, "Binaries")
        for binary in meta.binaries:
            binary_elem = SubElement(binaries, "Binary")
            binary_elem.set("ID", str(binary.id))
            data = binary.data
            if binary.protected:
                binary_elem.set("Protected", "True")
                data = self._stream.transform(data)
            if binary.compressed:
                binary_elem.set("Compressed", "True")
            binary_elem.text = _b64encode(data)

        custom_data = SubElement(elem, "CustomData")
        for item in meta.custom_data:
            item_elem = SubElement(custom_data, "Item")
            SubElement(item_elem, "Key").text = item.key
            SubElement(item_elem, "Value").text = item.value

    def _build_root(self, elem: Element, root: Root) -> None:
        for group in root.groups:
            self._build_group(elem, group)
        deleted = SubElement(elem, "DeletedObjects")
        for obj in root.deleted_objects:
            obj_elem = SubElement(deleted, "DeletedObject")
            SubElement(obj_elem, "UUID").text = uuid_to_b64(obj.uuid)
            self._time(obj_elem, "DeletionTime", obj.deletion_time)

    def _build_group(self, parent: Element, group: Group) -> None:
        elem = SubElement(parent, "Group")
        SubElement(elem, "UUID").text = uuid_to_b64(group.uuid)
        SubElement(elem, "Name").text = group.name
        SubElement(elem, "Notes").text = group.notes
        SubElement(elem, "IconID").text = str(group.icon_id)
        if group.custom_icon_uuid is not None:
            SubElement(elem, "CustomIconUUID").text = uuid_to_b64(group.custom_icon_uuid)
        self._build_times(elem, group.times)
        SubElement(elem, "IsExpanded").text = group.is_expanded.to_text()
        SubElement(elem, "DefaultAutoTypeSequence").text = group.default_autotype_sequence
        SubElement(elem, "EnableAutoType").text = group.enable_autotype.to_text()
        SubElement(elem, "EnableSearching").text = group.enable_searching.to_text()
        SubElement(elem, "LastTopVisibleEntry").text = uuid_to_b64(group.last_top_visible_entry)

        for entry in group.entries:
            self._build_entry(elem, entry)
        for subgroup in group.subgroups:
            self._build_group(elem, subgroup)

    def _build_entry(self, parent: Element, entry: Entry) -> None:
        elem = SubElement(parent, "Entry")
        SubElement(elem, "UUID").text = uuid_to_b64(entry.uuid)
        SubElement(elem, "IconID").text = str(entry.icon_id)
        if entry.custom_icon_uuid is not None:
            SubElement(elem, "CustomIconUUID").text = uuid_to_b64(entry.custom_icon_uuid)
        SubElement(elem, "ForegroundColor").text = entry.foreground_color
        SubElement(elem, "BackgroundColor").text = entry.background_color
        SubElement(elem, "OverrideURL").text = entry.override_url
        SubElement(elem, "Tags").text = ";".join(entry.tags)
        self._build_times(elem, entry.times)

        for string_field in entry.strings:
            string_elem = SubElement(elem, "String")
            SubElement(string_elem, "Key").text = string_field.key
            string_elem.append(encode_value(string_field.value, self._stream))

        for binary_ref in entry.binaries:
            binary_elem = SubElement(elem, "Binary")
            SubElement(binary_elem, "Key").text = binary_ref.key
            SubElement(binary_elem, "Value").set("Ref", str(binary_ref.ref))

        autotype = entry.autotype
        at_elem = SubElement(elem, "AutoType")
        SubElement(at_elem, "Enabled").text = autotype.enabled.to_text()
        SubElement(at_elem, "DataTransferObfuscation").text = str(
            autotype.data_transfer_obfuscation
        )
        if autotype.default_sequence is not None:
            SubElement(at_elem, "DefaultSequence").text = autotype.default_sequence
        for association in autotype.associations:
            assoc_elem = SubElement(at_elem, "Association")
            SubElement(assoc_elem, "Window").text = association.window
            SubElement(assoc_elem, "KeystrokeSequence").text = association.keystroke_sequence

        if entry.history:
            history_elem = SubElement(elem, "History")
            for old in entry.history:
                self._build_entry(history_elem, old)

    def _build_times(self, parent: Element, times: Times) -> None:
        elem = SubElement(parent, "Times")
        self._time(elem, "CreationTime", times.creation_time)
        self._time(elem, "LastModificationTime", times.last_modification_time)
        self._time(elem, "LastAccessTime", times.last_access_time)
        self._time(elem, "ExpiryTime", times.expiry_time)
        SubElement(elem, "Expires").text = times.expires.to_text()
        SubElement(elem, "UsageCount").text = str(times.usage_count)
        self._time(elem, "LocationChanged", times.location_changed)

    @staticmethod
    def _time(parent: Element, tag: str, value: datetime | None) -> None:
        if value is not None:
            SubElement(parent, tag).text = encode_time(value)


def parse_document(xml_data: bytes, stream: ProtectedStream) -> Document:
    """Parse inner XML into a Document.

    Args:
        xml_data: UTF-8 XML payload
        stream: Fresh inner random stream for this payload

    Returns:
        Parsed Document

    Raises:
        InvalidXmlError: If the XML or any typed value is malformed
    """
    return _DocumentReader(stream).read(xml_data)


def build_document(document: Document, stream: ProtectedStream) -> bytes:
    """Serialize a Document to inner XML.

    Args:
        document: Document to serialize
        stream: Fresh inner random stream for this payload

    Returns:
        UTF-8 XML payload with declaration
    """
    return _DocumentWriter(stream).write(document)
