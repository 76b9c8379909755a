"""Quality templates: whole-paper scores from counts of flags."""

import re
from fractions import Fraction
from typing import Dict, Optional

from .errors import TemplateError
from .flag_set import FlagSet

QUALITY_VALUE_RE = re.compile(r'\s*([+-]?\d+)(?:/(\d+))?\Z')


def _as_number(value: Fraction):
    return int(value) if value.denominator == 1 else float(value)


class QualityTemplate:
    """Counts flags across a whole exam paper and scores the counts.

    The spec string uses "+<n>" for the maximum award, "-<n>" for the maximum
    deduction (zero unless given) and "<flags> <n>[/<d>]" for the points each
    occurrence of a flag is worth, e.g. "+5, -2, w 1/2, W -1".
    """

    def __init__(self, name: str, spec: str):
        self.name = name
        self.spec = spec
        self.max: Optional[int] = None
        self.max_sub = 0
        self.flag_vals: Dict[str, Fraction] = {}
        self.counts: Dict[str, int] = {}
        self.last_explanation = ''

        for item in re.split(r',\s*', spec.strip()):
            first, rest = item[:1], item[1:].strip()
            if first == '+' and rest.isdigit():
                self.max = int(rest)
            elif first == '-' and rest.isdigit():
                self.max_sub = int(rest)
            else:
                m = QUALITY_VALUE_RE.search(item)
                if not m or m.start() == 0:
                    raise TemplateError(f"Invalid item in quality template {name}: {item}")
                denom = int(m.group(2) or 1)
                if denom == 0:
                    raise TemplateError(f"Zero denominator in quality template {name}")
                for flag in item[:m.start()]:
                    self.flag_vals[flag] = Fraction(int(m.group(1)), denom)
        if self.max is None:
            raise TemplateError(f"No max points for template {name}")
        self.reset()

    def __repr__(self):
        return f"<QualityTemplate {self.name}: {self.spec}>"

    def reset(self) -> None:
        self.counts = {flag: 0 for flag in self.flag_vals}

    def update(self, flag_set: FlagSet) -> None:
        """Count the relevant flags of one flag set."""
        for flag in flag_set.flags:
            if flag in self.counts:
                self.counts[flag] += 1

    def score(self):
        steps = []
        add, sub = Fraction(0), Fraction(0)
        for flag, value in self.flag_vals.items():
            res = self.counts[flag] * value
            steps.append(f"{self.counts[flag]}{flag}=>{res}")
            if res >= 0:
                add += res
            else:
                sub -= res

        if sub > self.max_sub:
            steps.append(f"-{sub}=>-{self.max_sub}")
            sub = Fraction(self.max_sub)

        if sub > 0:
            steps.append(f"{add}-{sub}=>{add - sub}")
            add -= sub

        if add > self.max:
            steps.append(f"{add}=>{self.max}")
            add = Fraction(self.max)

        if add < 0:
            steps.append(f"{add}=>0")
            add = Fraction(0)

        steps.append(f"={add}")
        self.last_explanation = ' '.join(steps)
        return _as_number(add)
