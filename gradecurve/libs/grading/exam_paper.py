"""A student's annotated examination paper."""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import AnnotationError
from .flag_set import DEFAULT_RULESET, FlagRuleset, FlagSet
from .score_data import ScoreData

LOG = logging.getLogger(__name__)

DEFAULT_MARKER = '%'


def annotation_pattern(marker: str = DEFAULT_MARKER) -> re.Pattern:
    """Regex for lines like "% issue-name: flags, optional comment"."""
    m = re.escape(marker)
    return re.compile(rf'^{m}+\s+(\S+):\s+(\w+)(?:, .*)?$')


class ExamPaper:
    """The flag sets annotated on one exam, plus the scores computed from them."""

    def __init__(self, exam_id, ruleset: FlagRuleset = DEFAULT_RULESET):
        self.exam_id = exam_id
        self.ruleset = ruleset
        self._issues: Dict[str, FlagSet] = {}
        self.score_data = ScoreData(exam_id)

    def __repr__(self):
        return f"<ExamPaper {self.exam_id}>"

    def add(self, issue: str, flags: str) -> FlagSet:
        """Add flags for an issue identified on this exam paper."""
        if not isinstance(issue, str):
            raise TypeError("Issue name must be a str")
        if issue not in self._issues:
            self._issues[issue] = FlagSet(self.exam_id, issue, self.ruleset)
        self._issues[issue].add(flags)
        return self._issues[issue]

    def parse_lines(self, lines: Iterable[str], marker: str = DEFAULT_MARKER,
                    filename: Optional[str] = None) -> None:
        """Read annotation lines, then validate every flag set.

        Only lines starting with the marker are considered. A marked line that
        contains a colon but does not match the annotation format is an error.
        """
        pattern = annotation_pattern(marker)
        for line_no, line in enumerate(lines, start=1):
            line = line.rstrip('\r\n')
            if not line.startswith(marker):
                continue
            m = pattern.match(line)
            if m:
                self.add(m.group(1), m.group(2))
            elif ':' in line:
                raise AnnotationError(f"Invalid line {line!r}", filename, line_no)
        self.run_tests()

    def read_file(self, filename, marker: str = DEFAULT_MARKER) -> None:
        """Parse annotations from an exam file."""
        path = Path(filename)
        with open(path, 'r', encoding='utf-8') as f:
            self.parse_lines(f, marker=marker, filename=str(path))
        LOG.debug("Read %d issues from %s", len(self._issues), path)

    def __iter__(self) -> Iterator[FlagSet]:
        return iter(list(self._issues.values()))

    def __len__(self):
        return len(self._issues)

    def __getitem__(self, issue: str) -> Optional[FlagSet]:
        if not isinstance(issue, str):
            raise TypeError("Issue name must be a str")
        return self._issues.get(issue)

    def all_issues(self) -> List[str]:
        return list(self._issues)

    def run_tests(self) -> None:
        for flag_set in self._issues.values():
            flag_set.run_tests()

    def subissues(self, issue: str) -> List[str]:
        """Names of all sub-issues (issue.something) of the given issue."""
        dotted = f"{issue}."
        return [s for s in self._issues if s.startswith(dotted)]

    def subflags(self, issue: str) -> List[FlagSet]:
        return [self._issues[s] for s in self.subissues(issue)]

    def unconsidered(self) -> List[FlagSet]:
        return [fs for fs in self._issues.values() if not fs.considered]

    def reset_scoring(self) -> None:
        """Forget previous scoring so the paper can be scored again."""
        for flag_set in self._issues.values():
            flag_set.considered = False
        self.score_data.clear()
