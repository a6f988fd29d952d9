"""Phone number canonicalisation and matching.

Stored numbers carry the country code ("+6591234567") while the
attendance feed reports bare local numbers ("91234567"). Both are
expanded into a set of equivalent forms and two numbers match when
their sets intersect. Matching compares whole digit strings, never
substrings.
"""
from __future__ import annotations

DEFAULT_COUNTRY_CODE = "65"
DEFAULT_LOCAL_LENGTH = 8


class PhoneNormalizer:
    """Expands phone strings into comparable canonical forms."""

    def __init__(
        self,
        country_code: str = DEFAULT_COUNTRY_CODE,
        local_length: int = DEFAULT_LOCAL_LENGTH,
    ):
        self.country_code = country_code
        self.local_length = local_length

    @staticmethod
    def digits(raw: str | None) -> str:
        """Strip everything except digits."""
        if raw is None:
            return ""
        return "".join(c for c in str(raw) if c.isdigit())

    def local_part(self, raw: str | None) -> str:
        """Bare local number, or the full digit string if not recognisable."""
        d = self.digits(raw)
        if self._is_prefixed(d):
            return d[len(self.country_code):]
        return d

    def canonical(self, raw: str | None) -> str:
        """Storage form: '+' + country code + local number."""
        d = self.digits(raw)
        if not d:
            return ""
        if len(d) == self.local_length:
            return f"+{self.country_code}{d}"
        return f"+{d}"

    def normalize(self, raw: str | None) -> set[str]:
        """Every plausible representation of a phone string.

        Args:
            raw: Phone number in any format

        Returns:
            Set of equivalent forms (empty when there are no digits)
        """
        d = self.digits(raw)
        if not d:
            return set()

        forms = {d}
        if len(d) == self.local_length:
            forms.add(f"{self.country_code}{d}")
            forms.add(f"+{self.country_code}{d}")
        elif self._is_prefixed(d):
            forms.add(d[len(self.country_code):])
            forms.add(f"+{d}")
        else:
            forms.add(f"+{d}")
        return forms

    def matches(self, left: str | None, right: str | None) -> bool:
        """True when two phone strings denote the same number."""
        return bool(self.normalize(left) & self.normalize(right))

    def _is_prefixed(self, d: str) -> bool:
        return (
            len(d) == self.local_length + len(self.country_code)
            and d.startswith(self.country_code)
        )


_default = PhoneNormalizer()


def normalize_phone(raw: str | None) -> set[str]:
    """Normalize with the default country settings."""
    return _default.normalize(raw)


def phones_match(left: str | None, right: str | None) -> bool:
    """Match with the default country settings."""
    return _default.matches(left, right)
