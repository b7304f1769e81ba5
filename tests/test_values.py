"""Tests for XmlBool, ProtectedValue and Times."""

from datetime import UTC, datetime, timedelta

import pytest

from tresor.exceptions import InvalidXmlError
from tresor.models import ProtectedValue, Times, XmlBool


class TestXmlBool:
    """Tests for the tri-state boolean."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("True", XmlBool(is_set=True, value=True)),
            ("true", XmlBool(is_set=True, value=True)),
            ("TRUE", XmlBool(is_set=True, value=True)),
            ("False", XmlBool(is_set=True, value=False)),
            ("fAlSe", XmlBool(is_set=True, value=False)),
            ("null", XmlBool()),
            ("NULL", XmlBool()),
        ],
    )
    def test_from_text(self, text: str, expected: XmlBool) -> None:
        assert XmlBool.from_text(text) == expected

    @pytest.mark.parametrize("text", ["", None, "yes", "1", "nul"])
    def test_from_text_invalid(self, text: str | None) -> None:
        with pytest.raises(InvalidXmlError, match="invalid boolean"):
            XmlBool.from_text(text)

    def test_to_text(self) -> None:
        assert XmlBool.of(True).to_text() == "True"
        assert XmlBool.of(False).to_text() == "False"
        assert XmlBool.of(None).to_text() == "null"

    def test_as_optional(self) -> None:
        assert XmlBool.of(True).as_optional() is True
        assert XmlBool.of(False).as_optional() is False
        assert XmlBool().as_optional() is None

    def test_truthiness(self) -> None:
        assert XmlBool.of(True)
        assert not XmlBool.of(False)
        assert not XmlBool()

    def test_unset_ignores_value(self) -> None:
        """Test that an unset flag always writes null."""
        assert XmlBool(is_set=False, value=True).to_text() == "null"


class TestProtectedValue:
    """Tests for ProtectedValue."""

    def test_defaults(self) -> None:
        value = ProtectedValue()
        assert value.text == ""
        assert not value.protected

    def test_str(self) -> None:
        assert str(ProtectedValue("hunter2", protected=True)) == "hunter2"


class TestTimes:
    """Tests for Times."""

    def test_create_new(self) -> None:
        times = Times.create_new()
        assert times.creation_time is not None
        assert times.creation_time.tzinfo is UTC
        assert times.creation_time.microsecond == 0
        assert times.creation_time == times.last_modification_time
        assert not times.expires

    def test_empty(self) -> None:
        times = Times.empty()
        assert times.creation_time is None
        assert times.expiry_time is None
        assert not times.expires.is_set

    def test_expired(self) -> None:
        past = datetime.now(UTC) - timedelta(days=1)
        times = Times.create_new(expires=True, expiry_time=past)
        assert times.expired

    def test_not_expired_without_flag(self) -> None:
        past = datetime.now(UTC) - timedelta(days=1)
        times = Times.create_new(expires=False, expiry_time=past)
        assert not times.expired

    def test_not_expired_in_future(self) -> None:
        future = datetime.now(UTC) + timedelta(days=1)
        assert not Times.create_new(expires=True, expiry_time=future).expired

    def test_touch(self) -> None:
        old = datetime(2020, 1, 1, tzinfo=UTC)
        times = Times(last_access_time=old, last_modification_time=old)
        times.touch()
        assert times.last_access_time is not None and times.last_access_time > old
        assert times.last_modification_time == old

        times.touch(modify=True)
        assert times.last_modification_time is not None and times.last_modification_time > old

    def test_update_location(self) -> None:
        old = datetime(2020, 1, 1, tzinfo=UTC)
        times = Times(location_changed=old)
        times.update_location()
        assert times.location_changed is not None and times.location_changed > old
