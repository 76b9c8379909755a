"""Scoring templates: rules turning an issue's flags into points."""

import re
from typing import Dict, Mapping, Optional, Union

from .errors import TemplateError
from .flag_set import TYPE_FLAGS, FlagSet

FLAG_VALUE_RE = re.compile(r'\s*([+-]?\d+)\Z')


class ScoringTemplate:
    """A named rule set mapping flags to a bounded point award.

    The spec string is a comma-separated list of items:

        @<type>     required answer type (a, A or X)
        +<n>        maximum points awarded
        -<n>        maximum points deducted
        <<name>     inherit type, maximums and flag values from another template
        <flags> n   points for each of the flags (negative values deduct)

    For example "@a, +5, -2, bc 2, d -1".
    """

    def __init__(self, name: str, spec: str,
                 templates: Optional[Mapping[str, 'ScoringTemplate']] = None):
        self.name = name
        self.spec = spec
        self.type: Optional[str] = None
        self.max: Optional[int] = None
        self.max_sub: Optional[int] = None
        self.flag_vals: Dict[str, int] = {}
        self.last_explanation = ''
        templates = templates or {}

        for item in re.split(r',\s*', spec.strip()):
            if not item:
                raise TemplateError(f"Empty item in template {name}")
            first, rest = item[0], item[1:].strip()
            if first == '@':
                self.type = rest
            elif first == '+':
                self.max = self._parse_count(rest)
            elif first == '-':
                self.max_sub = self._parse_count(rest)
            elif first == '<':
                self._copy_template(rest, templates)
            else:
                m = FLAG_VALUE_RE.search(item)
                if not m or m.start() == 0:
                    raise TemplateError(f"Invalid item in {name}: {item}")
                for flag in item[:m.start()]:
                    self.flag_vals[flag] = int(m.group(1))

        if self.type is None:
            raise TemplateError(f"No type for template {name}")
        if self.type not in TYPE_FLAGS:
            raise TemplateError(f"Invalid type for template {name}")
        if self.max is None:
            raise TemplateError(f"No max points for template {name}")

    def __repr__(self):
        return f"<ScoringTemplate {self.name}: {self.spec}>"

    def _parse_count(self, text: str) -> int:
        if not re.fullmatch(r'\d+', text):
            raise TemplateError(f"Invalid number in {self.name}: {text}")
        return int(text)

    def _copy_template(self, source_name: str, templates):
        source = templates.get(source_name)
        if source is None:
            raise TemplateError(f"No template {source_name} to inherit from")
        self.type = source.type
        self.max = source.max
        self.max_sub = source.max_sub
        self.flag_vals = dict(source.flag_vals)

    def score_one_flag(self, flag: str, note: Optional[list] = None) -> int:
        """Points for a single flag; type markers score zero."""
        if flag in TYPE_FLAGS:
            if flag != self.type:
                raise TemplateError(
                    f"Template {self.name} uses type {self.type} but got {flag}"
                )
            return 0
        if flag not in self.flag_vals:
            raise TemplateError(f"Template {self.name} has no score for flag {flag}")
        val = self.flag_vals[flag]
        if note is not None:
            note.append(f"{flag}{val:+d}")
        return val

    def score(self, flags: Union[FlagSet, str], note: Optional[list] = None) -> int:
        """Score a flag set (or a string of flags).

        The explanation of each step is kept in last_explanation and, when a
        note list is given, appended to it.
        """
        if self.max == 0:
            self.last_explanation = '0 pts'
            if note is not None:
                note.append(self.last_explanation)
            return 0

        flag_str = str(flags)
        steps = [flag_str]
        add, sub = 0, 0
        for flag in flag_str:
            res = self.score_one_flag(flag, steps)
            if res > 0:
                add += res
            else:
                sub -= res

        if self.max_sub is not None and sub > self.max_sub:
            steps.append(f"-{sub}=>-{self.max_sub}")
            sub = self.max_sub

        if sub > 0:
            steps.append(f"{add}-{sub}=>{add - sub}")
            add -= sub

        if add > self.max:
            steps.append(f"{add}=>{self.max}")
            add = self.max

        if add < 0:
            steps.append(f"{add}=>0")
            add = 0

        steps.append(f"={add}")
        self.last_explanation = ' '.join(steps)
        if note is not None:
            note.append(self.last_explanation)
        return add
