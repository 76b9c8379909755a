"""Sets of annotation flags recorded for one issue on one exam paper."""

from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .errors import ConsistencyError, FlagError

TYPE_FLAGS: Tuple[str, ...] = ('a', 'A', 'X')
DEFAULT_VALID_FLAGS = "saAXiIrReEfFbtpPwWhHd"


@dataclass(frozen=True)
class FlagRuleset:
    """The allowed flag alphabet and answer type markers.

    The order of valid_flags is also the display order of flags.
    """
    valid_flags: str = DEFAULT_VALID_FLAGS
    type_flags: Tuple[str, ...] = TYPE_FLAGS
    _order: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(
            self, '_order', {c: i for i, c in enumerate(self.valid_flags)}
        )

    def sort_flags(self, flags) -> List[str]:
        """Sort flags in alphabet order; unknown flags go last."""
        return sorted(flags, key=lambda f: (self._order.get(f, len(self._order)), f))

    def is_valid(self, flag: str) -> bool:
        return flag in self._order


DEFAULT_RULESET = FlagRuleset()


def check_valid_flags(flag_set: 'FlagSet') -> None:
    """Every flag must come from the ruleset alphabet."""
    extra = [f for f in flag_set.flags if not flag_set.ruleset.is_valid(f)]
    if extra:
        raise FlagError(f"For {flag_set!r}, unknown flags {', '.join(sorted(extra))}")


def check_has_type(flag_set: 'FlagSet') -> None:
    """Exactly one answer type marker must be present."""
    types = [t for t in flag_set.ruleset.type_flags if t in flag_set.flags]
    if len(types) == 1:
        return
    if not types:
        raise FlagError(f"For {flag_set!r}, no type flag")
    raise FlagError(f"For {flag_set!r}, multiple types {', '.join(types)}")


def check_exclusive_flags(flag_set: 'FlagSet') -> None:
    """A flag may not appear in both its lower- and uppercase form."""
    dups = [f for f in flag_set.flags
            if f != f.swapcase() and f.swapcase() in flag_set.flags]
    if dups:
        raise FlagError(
            f"For {flag_set!r}, mutually exclusive flags {', '.join(sorted(dups))}"
        )


Validation = Callable[['FlagSet'], None]

DEFAULT_VALIDATIONS: Tuple[Validation, ...] = (
    check_valid_flags,
    check_has_type,
    check_exclusive_flags,
)


class FlagSet:
    """The flags annotated for one issue on one exam paper.

    A set never holds both cases of a letter: adding an uppercase flag drops
    its lowercase form, and a lowercase flag is ignored once the uppercase
    form is present.
    """

    def __init__(self, exam_id, issue: str,
                 ruleset: FlagRuleset = DEFAULT_RULESET,
                 validations: Optional[Sequence[Validation]] = None):
        self.exam_id = exam_id
        self.issue = issue
        self.ruleset = ruleset
        self.validations: Tuple[Validation, ...] = tuple(
            DEFAULT_VALIDATIONS if validations is None else validations
        )
        self._flags = set()
        self._type = None
        self.considered = False

    @property
    def flags(self) -> frozenset:
        return frozenset(self._flags)

    def __repr__(self):
        return f"<FlagSet {self.exam_id}/{self.issue} {self}>"

    def __str__(self):
        return ''.join(self.ruleset.sort_flags(self._flags))

    def __eq__(self, other):
        if not isinstance(other, FlagSet):
            return NotImplemented
        return (self.exam_id, self.issue, self._flags) == \
            (other.exam_id, other.issue, other._flags)

    __hash__ = None

    def __contains__(self, flag: str) -> bool:
        return flag in self._flags

    def __iter__(self) -> Iterator[str]:
        return iter(self.ruleset.sort_flags(self._flags))

    def __len__(self):
        return len(self._flags)

    def include(self, flag: str) -> bool:
        return flag in self._flags

    def add(self, flag_text: str) -> None:
        """Add each character of flag_text as a flag."""
        for flag in flag_text:
            upper, lower = flag.upper(), flag.lower()
            if upper in self._flags:
                continue
            self._flags.add(flag)
            if flag == upper and lower != upper:
                self._flags.discard(lower)
        self._type = None

    def run_tests(self) -> None:
        """Run every registered validation, in order."""
        for validation in self.validations:
            validation(self)

    @property
    def type(self) -> Optional[str]:
        """The answer type marker in this set."""
        if self._type is None:
            self._type = next(
                (t for t in self.ruleset.type_flags if t in self._flags), None
            )
        return self._type

    def consider(self) -> None:
        """Mark this set as used by scoring. A set may only be used once."""
        if self.considered:
            raise ConsistencyError(f"Flags for {self.exam_id}/{self.issue} scored twice")
        self.considered = True

    def copy_empty(self) -> 'FlagSet':
        """Return a new, empty set for the same exam and issue."""
        return FlagSet(self.exam_id, self.issue, self.ruleset, self.validations)
