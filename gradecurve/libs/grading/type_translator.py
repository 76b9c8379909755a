"""Translation of flag sets between answer types.

Answers can be translated between the a and A types by table lookup, and from
the X type (an answer decomposed into sub-issues) to A, and through A to a. No
translation to X is possible; such an exam must be regraded by hand.

To translate from X to A, the sub-issues' flags are collected and a series of
rules is applied to them, each rule consuming the flags it looks at. The new
flags are added to any flags already on the top-level issue. Every sub-issue
flag must be consumed by some rule.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set

from .errors import ConsistencyError, ConversionError
from .flag_set import FlagSet
from .models import TABLE_RE, TranslationConfig

LOG = logging.getLogger(__name__)


def parse_table(table_str: Optional[str]) -> Dict[str, str]:
    """Parse a "[old]->[new]" table into a flag substitution map."""
    m = TABLE_RE.match((table_str or '').strip())
    if table_str is None or not m or len(m.group(1)) != len(m.group(2)):
        raise ConversionError(f"Invalid conversion table {table_str!r}")
    return dict(zip(m.group(1), m.group(2)))


class TypeTranslator:
    """Converts flag sets to the answer type a scoring template expects."""

    def __init__(self, config: Optional[TranslationConfig] = None):
        self.config = config or TranslationConfig()
        self.last_explanation = ''

    def convert(self, flag_set: FlagSet, exp_type: str,
                sub_flags: Sequence[FlagSet] = ()) -> FlagSet:
        """Convert flag_set to exp_type.

        The original set is returned if it already has the expected type.
        sub_flags are the flag sets of the issue's sub-issues, needed only when
        converting from X; they are marked considered as they are consumed.
        """
        self.last_explanation = ''
        if flag_set.type == exp_type:
            return flag_set
        conversion = f"{flag_set.type}=>{exp_type}"
        steps = [str(flag_set), conversion]
        if conversion == 'a=>A':
            res = self.convert_by_table(flag_set, exp_type, self.config.a_to_A, steps)
        elif conversion == 'A=>a':
            res = self.convert_by_table(flag_set, exp_type, self.config.A_to_a, steps)
        elif conversion == 'X=>A':
            res = self.convert_X(flag_set, sub_flags, steps)
        elif conversion == 'X=>a':
            set_A = self.convert_X(flag_set, sub_flags, steps)
            steps.append('A=>a')
            res = self.convert_by_table(set_A, exp_type, self.config.A_to_a, steps)
        else:
            raise ConversionError(
                f"Cannot convert {conversion} for {flag_set!r}; do it manually"
            )
        steps.append(f"={res}")
        self.last_explanation = ' '.join(steps)
        return res

    def convert_by_table(self, flag_set: FlagSet, exp_type: str,
                         table_str: Optional[str], steps: List[str]) -> FlagSet:
        table = parse_table(table_str)
        new_set = flag_set.copy_empty()
        new_set.add(exp_type)
        for flag in flag_set:
            if flag == flag_set.type:
                continue
            if flag in table:
                steps.append(f"{flag}->{table[flag]}")
                flag = table[flag]
            new_set.add(flag)
        return new_set

    def convert_X(self, flag_set: FlagSet, sub_flags: Sequence[FlagSet],
                  steps: List[str]) -> FlagSet:
        for sub in sub_flags:
            sub.consider()

        new_set = flag_set.copy_empty()
        new_set.add('A')
        for flag in flag_set:
            if flag != flag_set.type:
                new_set.add(flag)

        sets = [set(sub.flags) for sub in sub_flags]
        steps.append(f"sub:{','.join(''.join(sorted(s)) for s in sets)}")

        self.run_X_all_or_half(sets, new_set, steps)
        self.run_X_any_or_two(sets, new_set, steps)
        self.run_X_any(sets, new_set, steps)
        self.run_X_discard(sets)

        leftover = ''.join(''.join(sorted(s)) for s in sets)
        if leftover:
            raise ConsistencyError(
                f"In X=>A conversion of {flag_set.exam_id}/{flag_set.issue}, "
                f"unused flags {leftover}"
            )
        return new_set

    def run_X_all_or_half(self, sets: List[Set[str]], new_set: FlagSet,
                          steps: List[str]) -> None:
        """All sub-issues flagged: uppercase; at least half: as given.

        With no sub-issues every flag counts as present on all of them.
        """
        for flag in self.config.X_all_or_half:
            both = {flag, flag.upper()}
            num = sum(1 for s in sets if s & both)
            if num == len(sets):
                steps.append(f"100%{flag}->{flag.upper()}")
                new_set.add(flag.upper())
            elif num >= 0.5 * len(sets):
                steps.append(f"50%{flag}->{flag}")
                new_set.add(flag)
            for s in sets:
                s -= both

    def run_X_any_or_two(self, sets: List[Set[str]], new_set: FlagSet,
                         steps: List[str]) -> None:
        """Any uppercase or two of either case: uppercase; one: as given."""
        for flag in self.config.X_any_or_two:
            ucflag = flag.upper()
            both = {flag, ucflag}
            if any(ucflag in s for s in sets):
                steps.append(f"1{ucflag}->{ucflag}")
                new_set.add(ucflag)
            else:
                num = sum(1 for s in sets if s & both)
                if num > 1:
                    steps.append(f"2{flag}->{ucflag}")
                    new_set.add(ucflag)
                elif num == 1:
                    steps.append(f"1{flag}->{flag}")
                    new_set.add(flag)
            for s in sets:
                s -= both

    def run_X_any(self, sets: List[Set[str]], new_set: FlagSet,
                  steps: List[str]) -> None:
        """Any uppercase: uppercase; otherwise any as given: as given."""
        for flag in self.config.X_any:
            ucflag = flag.upper()
            if any(ucflag in s for s in sets):
                steps.append(f"1{ucflag}->{ucflag}")
                new_set.add(ucflag)
            elif any(flag in s for s in sets):
                steps.append(f"1{flag}->{flag}")
                new_set.add(flag)
            for s in sets:
                s -= {flag, ucflag}

    def run_X_discard(self, sets: List[Set[str]]) -> None:
        for flag in ['a', 'X', *self.config.X_discard]:
            for s in sets:
                s -= {flag, flag.upper()}
