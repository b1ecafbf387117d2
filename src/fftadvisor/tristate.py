"""
Three-valued flags for transform properties.

a caller can leave any transform property unspecified by passing BOTH;
every consumer must then explore both concrete values.
"""

from enum import Enum
from typing import Tuple, Union


class Tristate(Enum):
    """True / false / either."""
    TRUE = 'true'
    FALSE = 'false'
    BOTH = 'both'

    @classmethod
    def from_value(cls, value: Union['Tristate', bool, str, None]) -> 'Tristate':
        """
        Coerce a caller-supplied value into a Tristate.

        Args:
            value: a Tristate, a bool, None (meaning BOTH) or one of the
                   strings 'true', 'false', 'both' (case-insensitive)

        Returns:
            The matching Tristate member
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.BOTH
        if isinstance(value, bool):
            return cls.TRUE if value else cls.FALSE
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"Cannot interpret {value!r} as a tri-state flag")


def is_(value: Tristate) -> bool:
    """Whether the flag may be true."""
    return value is not Tristate.FALSE


def is_not(value: Tristate) -> bool:
    """Whether the flag may be false."""
    return value is not Tristate.TRUE


def expand(value: Union[Tristate, bool]) -> Tuple[bool, ...]:
    """
    Resolve a flag into the concrete values it stands for.

    plain booleans are passed through as a single branch.
    """
    if isinstance(value, bool):
        return (value,)
    if value is Tristate.BOTH:
        return (True, False)
    return (value is Tristate.TRUE,)
