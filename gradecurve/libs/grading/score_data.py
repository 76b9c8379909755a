"""Score records for a single exam paper."""

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Union

LOG = logging.getLogger(__name__)


class ScoreKind(str, Enum):
    ISSUE = 'issue'
    QUESTION = 'question'
    TOTAL = 'total'


@dataclass(frozen=True)
class ScoreKey:
    """Identifies one score on a paper: an issue, a question or the total."""
    kind: ScoreKind
    name: str

    @classmethod
    def issue(cls, name: str) -> 'ScoreKey':
        return score_key(ScoreKind.ISSUE, name)

    @classmethod
    def question(cls, name: str) -> 'ScoreKey':
        return score_key(ScoreKind.QUESTION, name)

    @classmethod
    def total(cls) -> 'ScoreKey':
        return score_key(ScoreKind.TOTAL)

    def __str__(self):
        return f"{self.kind.value}:{self.name}"


def score_key(kind: Union[ScoreKind, str], name: Optional[str] = None) -> ScoreKey:
    """Build a normalized ScoreKey.

    The kind may be given as a ScoreKind or its string value. Issue and
    question keys need a name; the total key is always named "total".
    """
    try:
        kind = ScoreKind(kind)
    except ValueError:
        raise ValueError(f"Invalid score kind {kind!r}") from None
    if kind is ScoreKind.TOTAL:
        return ScoreKey(kind, 'total')
    if not name or not isinstance(name, str):
        raise ValueError(f"A {kind.value} score needs a name")
    return ScoreKey(kind, name)


@dataclass(frozen=True)
class ScoreEntry:
    points: float
    note: str = ''
    extra: bool = False
    question: Optional[str] = None


class ScoreData:
    """Scores computed for one exam paper, keyed by ScoreKey."""

    def __init__(self, exam_id):
        self.exam_id = exam_id
        self._entries: Dict[ScoreKey, ScoreEntry] = {}
        self.flagged = False

    def __repr__(self):
        return f"<ScoreData {self.exam_id}>"

    def add_score(self, key: ScoreKey, points, note: str = '', extra: bool = False,
                  question: Optional[str] = None):
        """Record a score. Overwriting an existing score is flagged, not fatal."""
        if key in self._entries:
            LOG.warning("Overwriting score for %s/%s", self.exam_id, key)
            self.flagged = True
        self._entries[key] = ScoreEntry(points, note, extra, question)
        return points

    def has(self, key: ScoreKey) -> bool:
        return key in self._entries

    def score_for(self, key: ScoreKey):
        entry = self._entries.get(key)
        return entry.points if entry else 0

    def note_for(self, key: ScoreKey) -> Optional[str]:
        entry = self._entries.get(key)
        return entry.note if entry else None

    def data_for(self, key: ScoreKey) -> Optional[ScoreEntry]:
        entry = self._entries.get(key)
        return replace(entry) if entry else None

    @property
    def total(self):
        return self.score_for(ScoreKey.total())

    def question_scores(self) -> Dict[str, float]:
        return {
            key.name: entry.points for key, entry in self._entries.items()
            if key.kind is ScoreKind.QUESTION
        }

    def issue_scores(self) -> Dict[str, float]:
        return {
            key.name: entry.points for key, entry in self._entries.items()
            if key.kind is ScoreKind.ISSUE
        }

    def score_matching(self, question_re: str, issue_re: str):
        """Sum issue points whose question and issue names match the patterns."""
        qpat, ipat = re.compile(question_re), re.compile(issue_re)
        tot = 0
        for key, entry in self._entries.items():
            if key.kind is not ScoreKind.ISSUE:
                continue
            if qpat.search(entry.question or '') and ipat.search(key.name):
                tot += entry.points
        return tot

    def clear(self) -> None:
        self._entries.clear()
        self.flagged = False
