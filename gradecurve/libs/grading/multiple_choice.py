"""The multiple choice component of an exam.

Responses come from a table with a header row naming identifier columns
("Student Name", "ID Number" or "Exam ID") and question columns ("Q <n>"). A
row whose identifier is "Key" holds the answer key, unless a separate answer
key table with "Question" and "Answer" columns is given. Files ending in .csv
are comma-delimited; all others are tab-delimited.
"""

import csv
import logging
import math
import re
import statistics
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from .errors import MultipleChoiceError
from .models import MultipleChoiceConfig

LOG = logging.getLogger(__name__)

ID_HEADERS = ('student_name', 'id_number', 'exam_id')
IGNORED_HEADERS = ('%', 'score', '#_correct', 'blank_count')
QUESTION_RE = re.compile(r'\Aq_\d+\Z')

# Fraction of the cohort at each end compared by the discrimination index
DISCRIMINATION_FRACTION = 0.27
DEFAULT_MIN_COHORT = 4


def clean_header(head: str) -> str:
    """Normalize a header or question name, e.g. "Q 3" to "q_3"."""
    return head.strip().lower().replace(' ', '_')


def read_table(filename: Union[str, Path]) -> Iterator[List[str]]:
    """Yield the stripped cells of each row of a table file."""
    path = Path(filename)
    delimiter = ',' if path.suffix.lower() == '.csv' else '\t'
    with open(path, 'r', encoding='utf-8', newline='') as f:
        for row in csv.reader(f, delimiter=delimiter):
            if row:
                yield [cell.strip() for cell in row]


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


@dataclass
class ItemStatistics:
    """Statistics for one multiple choice question."""
    frac_correct: float
    point_biserial: float
    discrimination_index: Optional[float]
    answer_count: Dict[str, int]
    correct: str


@dataclass
class MultipleChoiceStatistics:
    questions: Dict[str, ItemStatistics]
    summary: Dict[str, List[str]] = field(default_factory=dict)


class MultipleChoice:
    """An answer key and the responses of each exam to it."""

    def __init__(self, key: Mapping[str, str], responses: Mapping[str, Mapping[str, str]],
                 points_per_question=1, adjustments: Optional[Mapping[str, float]] = None):
        if not key:
            raise MultipleChoiceError("No answer key for multiple choice questions")
        self.key = dict(key)
        self.responses = {exam_id: dict(answers) for exam_id, answers in responses.items()}
        self.points_per_question = points_per_question
        self.adjustments = {
            clean_header(q): adj for q, adj in (adjustments or {}).items()
        }

    def __repr__(self):
        return f"<MultipleChoice {len(self.key)} questions, {len(self.responses)} responses>"

    @classmethod
    def from_config(cls, config: MultipleChoiceConfig,
                    base_dir: Union[str, Path] = '.') -> 'MultipleChoice':
        base_dir = Path(base_dir)
        key_rows = (
            read_table(base_dir / config.answer_key)
            if config.answer_key is not None else None
        )
        return cls.from_rows(
            read_table(base_dir / config.file),
            key_rows=key_rows,
            points_per_question=config.points_per_question,
            adjustments=config.adjustments,
        )

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[str]],
                  key_rows: Optional[Iterable[Sequence[str]]] = None,
                  points_per_question=1,
                  adjustments: Optional[Mapping[str, float]] = None) -> 'MultipleChoice':
        """Build from table rows: a header row, then one row per exam."""
        key, responses = parse_responses(rows)
        if key_rows is not None:
            key = parse_answer_key(key_rows)
        return cls(key or {}, responses, points_per_question, adjustments)

    def questions(self) -> List[str]:
        return list(self.key)

    def question_value(self, qnum: str):
        return self.adjustments.get(qnum, 1) * self.points_per_question

    def answers_for(self, exam_id) -> Dict[str, str]:
        answers = self.responses.get(str(exam_id))
        if answers is None:
            raise MultipleChoiceError(f"No multiple choice answers for exam ID {exam_id}")
        return answers

    def score_for(self, exam_id, pattern: Optional[str] = None):
        """Points earned by an exam, optionally only on questions matching pattern."""
        answers = self.answers_for(exam_id)
        return sum(
            self.question_value(qnum)
            for qnum, correct in self.key.items()
            if (pattern is None or re.search(pattern, qnum)) and answers.get(qnum) == correct
        )

    def max_score(self, pattern: Optional[str] = None):
        return sum(
            self.question_value(qnum) for qnum in self.key
            if pattern is None or re.search(pattern, qnum)
        )

    def num_correct(self, qnum: str, exam_ids: Iterable) -> int:
        """How many of the given exams answered a question correctly."""
        qnum = clean_header(qnum)
        correct = self.key.get(qnum)
        if correct is None:
            raise MultipleChoiceError(f"No question {qnum} in answer key")
        return sum(1 for exam_id in exam_ids if self.answers_for(exam_id).get(qnum) == correct)

    def statistics(self, scores: Optional[Mapping] = None,
                   min_cohort: int = DEFAULT_MIN_COHORT) -> MultipleChoiceStatistics:
        """Item statistics for each question against a score per exam.

        If no scores are given, the multiple choice scores alone are used. The
        discrimination index compares the top and bottom 27% of the cohort; it
        is left as None when the cohort is smaller than min_cohort.
        """
        if scores is None:
            scores = {exam_id: self.score_for(exam_id) for exam_id in self.responses}
        if not scores:
            raise MultipleChoiceError("No scores for multiple choice statistics")

        n = len(scores)
        sd = statistics.pstdev(scores.values()) if n > 1 else 0.0
        count_27pct = _round_half_up(n * DISCRIMINATION_FRACTION)
        use_discrimination = n >= min_cohort and count_27pct >= 1
        if not use_discrimination:
            LOG.warning("Cohort of %d is too small for a discrimination index", n)

        res = {}
        for qnum, correct in self.key.items():
            data = sorted(
                ((score, 1 if self.answers_for(exam_id).get(qnum) == correct else 0)
                 for exam_id, score in scores.items()),
                key=lambda item: item[0],
            )
            right = [score for score, resp in data if resp]
            wrong = [score for score, resp in data if not resp]
            if right and wrong and sd > 0:
                pb = ((statistics.fmean(right) - statistics.fmean(wrong)) / sd
                      * math.sqrt(len(right) * len(wrong)) / n)
            else:
                pb = 0.0

            disc = None
            if use_discrimination:
                top = [resp for _, resp in data[-count_27pct:]]
                bottom = [resp for _, resp in data[:count_27pct]]
                disc = round(statistics.fmean(top) - statistics.fmean(bottom), 3)

            answers = Counter(self.answers_for(exam_id).get(qnum, '') for exam_id in scores)
            res[qnum] = ItemStatistics(
                frac_correct=round(statistics.fmean(resp for _, resp in data), 3),
                point_biserial=round(pb, 3),
                discrimination_index=disc,
                answer_count=dict(sorted(answers.items())),
                correct=correct,
            )
        return MultipleChoiceStatistics(res, summarize_statistics(res))


def summarize_statistics(question_stats: Mapping[str, ItemStatistics]) -> Dict[str, List[str]]:
    """Sort questions into easy, hard and poorly correlated buckets."""
    res = {'easy': [], 'hard_low_corr': [], 'low_corr': [], 'hard': []}
    for qnum, qstat in question_stats.items():
        if qstat.frac_correct >= 0.8:
            res['easy'].append(qnum)
        elif qstat.frac_correct < 0.4 and qstat.point_biserial < 0.2:
            res['hard_low_corr'].append(qnum)
        elif qstat.point_biserial < 0.2:
            res['low_corr'].append(qnum)
        elif qstat.frac_correct < 0.4:
            res['hard'].append(qnum)
    return res


def parse_responses(rows: Iterable[Sequence[str]]):
    """Parse a response table into (answer key or None, responses by exam ID)."""
    key = None
    responses: Dict[str, Dict[str, str]] = {}
    name_pos: List[int] = []
    question_pos: Dict[int, str] = {}
    header_seen = False
    for row in rows:
        if not header_seen:
            for i, head in enumerate(row):
                head = clean_header(head)
                if head in ID_HEADERS:
                    name_pos.append(i)
                elif QUESTION_RE.match(head):
                    question_pos[i] = head
                elif head not in IGNORED_HEADERS:
                    raise MultipleChoiceError(f"Unknown header {head} in multiple choice table")
            if not name_pos:
                raise MultipleChoiceError("Multiple choice table has no identifier column")
            header_seen = True
            continue

        name = next((row[i] for i in name_pos if i < len(row) and row[i]), None)
        if name is None:
            raise MultipleChoiceError("No name found in multiple choice row")
        answers = {q: (row[i] if i < len(row) else '') for i, q in question_pos.items()}
        if name.lower() == 'key':
            key = answers
        else:
            responses[name] = answers
    return key, responses


def parse_answer_key(rows: Iterable[Sequence[str]]) -> Dict[str, str]:
    """Parse a separate answer key table with Question and Answer columns."""
    key: Dict[str, str] = {}
    qcol = acol = None
    for row in rows:
        if qcol is None:
            try:
                qcol, acol = list(row).index('Question'), list(row).index('Answer')
            except ValueError:
                raise MultipleChoiceError(
                    "Answer key lacks a header with Question and Answer"
                ) from None
            continue
        qnum = f"q_{row[qcol]}"
        if not QUESTION_RE.match(qnum):
            raise MultipleChoiceError(f"Invalid number {qnum} in answer key")
        key[qnum] = row[acol]
    return key
