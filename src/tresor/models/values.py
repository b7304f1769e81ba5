"""Typed wrappers for tri-state booleans and protected strings."""

from __future__ import annotations

from dataclasses import dataclass

from tresor.exceptions import InvalidXmlError


@dataclass(frozen=True, slots=True)
class XmlBool:
    """A boolean that may also be unset.

    KeePass writes `null` for an unset flag (for example a group that
    inherits its auto-type setting from its parent).

    Attributes:
        is_set: Whether a value is present
        value: The value, meaningful only when is_set is true
    """

    is_set: bool = False
    value: bool = False

    @classmethod
    def of(cls, value: bool | None) -> XmlBool:
        """Wrap a Python bool, with None meaning unset."""
        if value is None:
            return cls()
        return cls(is_set=True, value=value)

    @classmethod
    def from_text(cls, text: str | None) -> XmlBool:
        """Parse element text.

        `true`, `false` and `null` are accepted in any case.

        Raises:
            InvalidXmlError: For any other text, including an empty element
        """
        lowered = (text or "").strip().lower()
        if lowered == "true":
            return cls(is_set=True, value=True)
        if lowered == "false":
            return cls(is_set=True, value=False)
        if lowered == "null":
            return cls()
        raise InvalidXmlError(f"invalid boolean: {text!r}")

    def to_text(self) -> str:
        if not self.is_set:
            return "null"
        return "True" if self.value else "False"

    def as_optional(self) -> bool | None:
        return self.value if self.is_set else None

    def __bool__(self) -> bool:
        return self.is_set and self.value


@dataclass(slots=True)
class ProtectedValue:
    """A string value with its in-file protection flag.

    When protected is true the value is stored in the file XOR-ed with the
    inner random stream and base64-encoded.

    Attributes:
        text: Plaintext value
        protected: Whether the value is masked on disk
    """

    text: str = ""
    protected: bool = False

    def __str__(self) -> str:
        return self.text
