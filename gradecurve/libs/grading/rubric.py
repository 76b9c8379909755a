"""Rubrics: the questions and issues an exam is scored against.

A Rubric is a collection of Questions, each built of Issues. An Issue is
scored from the flag set annotated for it on an exam paper, using a scoring
template (translating the flag set to the template's answer type first, if
needed). Issues without a template are scored by hand and contribute nothing
automatically. Quality templates and the multiple choice component are scored
as additional pseudo-questions.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Union

from .curve import CurveSpecification
from .errors import ConsistencyError, InputError, IssueError
from .exam_paper import ExamPaper
from .flag_set import FlagSet
from .models import (MULTIPLE_CHOICE, IssueConfig, QuestionReport, RubricConfig,
                     ScoreReport)
from .multiple_choice import MultipleChoice
from .quality_template import QualityTemplate
from .score_data import ScoreEntry, ScoreKey
from .scoring_template import ScoringTemplate
from .type_translator import TypeTranslator

LOG = logging.getLogger(__name__)


class Issue:
    """One awardable unit of points within a question."""

    def __init__(self, name: str, question: str, config: IssueConfig,
                 template: Optional[ScoringTemplate] = None):
        self.name = name
        self.question = question
        self.config = config
        self.template = template
        self.extra = config.extra
        self.group: Optional['IssueGroup'] = None
        self.sub_issues: Optional[List[str]] = (
            [f"{name}.{s}" for s in config.sub] if config.sub is not None else None
        )

    def __repr__(self):
        return f"<Issue {self.question}/{self.name}>"

    @property
    def manual(self) -> bool:
        """Whether the issue is scored by hand rather than from flags."""
        return self.template is None

    @property
    def max(self):
        if self.template is not None:
            return self.template.max
        if self.config.max is not None:
            return self.config.max
        return sum(self.config.points.values())

    @property
    def type(self) -> Optional[str]:
        return self.template.type if self.template is not None else None

    def score(self, flags: Union[FlagSet, str], note: Optional[list] = None):
        return self.template.score(flags, note)


class IssueGroup:
    """Issues of one question that share a combined maximum award."""

    def __init__(self, name: str):
        self.name = name
        self.issues: List[Issue] = []
        self.max = None

    def __repr__(self):
        return f"<IssueGroup {self.name} max={self.max}>"

    def add(self, issue: Issue) -> None:
        self.issues.append(issue)
        if self.max is None:
            self.max = issue.max

    def apply_cap(self, issue: Issue, score, score_data, note: list):
        """Clip score so the group's total stays within its maximum.

        Only issues scored so far count toward the total, so the result depends
        on the order in which the group's issues are scored.
        """
        if score_data.has(ScoreKey.issue(issue.name)):
            raise ConsistencyError(f"Attempting to rescore issue {issue.name}")
        tot_points = sum(score_data.score_for(ScoreKey.issue(i.name)) for i in self.issues)
        if tot_points > self.max:
            raise ConsistencyError(f"Cap exceeded for issue group {self.name}")
        if tot_points + score > self.max:
            score = self.max - tot_points
            note.append(f"{self.name} group cap ({tot_points} so far) => {score}")
        return score


class Weights:
    """Per-question weights; questions not given a weight have weight 1."""

    def __init__(self, question_names, weights: Optional[Mapping[str, float]] = None):
        self._names = list(question_names)
        self._weights: Dict[str, float] = {}
        for qname, weight in (weights or {}).items():
            self[qname] = weight

    def for_question(self, qname: str):
        if qname not in self._names:
            raise InputError(f"No question {qname} in rubric")
        return self._weights.get(qname, 1)

    def __setitem__(self, qname: str, weight) -> None:
        if qname not in self._names:
            raise InputError(f"Unknown question {qname}")
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            raise InputError(f"Invalid weight {weight!r}")
        self._weights[qname] = weight

    def __getitem__(self, qname: str):
        return self.for_question(qname)

    def as_dict(self) -> Dict[str, float]:
        return {qname: self.for_question(qname) for qname in self._names}


class Question:
    """A named collection of issues."""

    def __init__(self, name: str, weights: Weights):
        self.name = name
        self._weights = weights
        self.issues: Dict[str, Issue] = {}
        self.groups: Dict[str, IssueGroup] = {}

    def __repr__(self):
        return f"<Question {self.name}>"

    def __iter__(self) -> Iterator[Issue]:
        return iter(list(self.issues.values()))

    def __getitem__(self, issue: str) -> Optional[Issue]:
        return self.issues.get(issue)

    def add_issue(self, issue: Issue, group_name: Optional[str] = None) -> None:
        self.issues[issue.name] = issue
        if group_name is not None:
            group = self.groups.setdefault(group_name, IssueGroup(group_name))
            group.add(issue)
            issue.group = group

    @property
    def weight(self):
        return self._weights.for_question(self.name)

    @property
    def total_points(self):
        """Points available excluding extra credit, before weighting."""
        indiv = sum(
            issue.max for issue in self.issues.values()
            if not (issue.extra or issue.group)
        )
        return indiv + sum(group.max for group in self.groups.values())

    def summary(self) -> dict:
        res = {
            name: f"{issue.max}{' (extra)' if issue.extra else ''}"
            for name, issue in self.issues.items()
            if issue.max > 0 and not issue.group
        }
        for name, group in self.groups.items():
            res[name] = {
                'group-max': group.max,
                'issues': [i.name for i in group.issues],
            }
        return res


class Rubric:
    """A grading rubric for an exam, built from a RubricConfig."""

    def __init__(self, config: RubricConfig, base_dir: Union[str, Path] = '.'):
        self.config = config
        self.base_dir = Path(base_dir)

        # Built in declaration order so a template can inherit from any
        # template declared before it.
        self.templates: Dict[str, ScoringTemplate] = {}
        for name, spec in config.templates.items():
            self.templates[name] = ScoringTemplate(name, spec, self.templates)

        self.quality: Dict[str, QualityTemplate] = {
            name: QualityTemplate(name, spec) for name, spec in config.quality.items()
        }
        self.translator = TypeTranslator(config.translations)
        self.multiple_choice: Optional[MultipleChoice] = (
            MultipleChoice.from_config(config.multiple_choice, self.base_dir)
            if config.multiple_choice is not None else None
        )
        self.curve: Optional[CurveSpecification] = (
            CurveSpecification(config.curve) if config.curve is not None else None
        )
        self.weights = Weights(self._all_question_names(), config.weights)

        self.questions: Dict[str, Question] = {}
        self._issues: Dict[str, Issue] = {}
        for qname, issues in config.questions.items():
            question = Question(qname, self.weights)
            for iname, issue_config in issues.items():
                template = (
                    self.templates[issue_config.template]
                    if issue_config.template is not None else None
                )
                issue = Issue(iname, qname, issue_config, template)
                question.add_issue(issue, issue_config.group)
                self._issues[iname] = issue
            self.questions[qname] = question
        LOG.debug("Built rubric with %d questions and %d issues",
                  len(self.questions), len(self._issues))

    def __repr__(self):
        return f"<Rubric {', '.join(self.questions)}>"

    def __iter__(self) -> Iterator[Question]:
        return iter(list(self.questions.values()))

    def _all_question_names(self) -> List[str]:
        names = list(self.config.questions) + list(self.config.quality)
        if self.config.multiple_choice is not None:
            names.append(MULTIPLE_CHOICE)
        return names

    def question_names(self) -> List[str]:
        """Question names, followed by the quality and multiple choice pseudo-questions."""
        return self._all_question_names()

    def issue(self, name: str) -> Optional[Issue]:
        return self._issues.get(name)

    def issues(self) -> List[Issue]:
        return list(self._issues.values())

    def pseudo_max(self, name: str):
        """Unweighted maximum of a quality or multiple choice pseudo-question."""
        if name in self.quality:
            return self.quality[name].max
        if name == MULTIPLE_CHOICE and self.multiple_choice is not None:
            return self.multiple_choice.max_score()
        raise InputError(f"No pseudo-question {name} in rubric")

    def question_max(self, name: str):
        """Weighted maximum points for a question or pseudo-question."""
        question = self.questions.get(name)
        if question is not None:
            return question.total_points * question.weight
        return self.pseudo_max(name) * self.weights.for_question(name)

    @property
    def max_points(self):
        """Maximum weighted points for the whole exam, excluding extra credit."""
        return sum(self.question_max(name) for name in self.question_names())

    def summary(self) -> dict:
        res = {name: q.summary() for name, q in self.questions.items()}
        for name in self.question_names():
            if name not in self.questions:
                res[name] = f"{self.pseudo_max(name)}"
        return {
            'questions': res,
            'weights': self.weights.as_dict(),
            'max_points': self.max_points,
        }

    def _parent_issue(self, name: str) -> Optional[Issue]:
        head, sep, _ = name.partition('.')
        return self._issues.get(head) if sep else None

    def check_exam(self, paper: ExamPaper) -> None:
        """Check that an exam paper's issues line up with this rubric.

        Every annotated issue must be a rubric issue or a sub-issue of one, and
        an issue answered with the X type must have exactly its declared
        sub-issues annotated.
        """
        for flag_set in paper:
            name = flag_set.issue
            issue = self._issues.get(name)
            if issue is None:
                if self._parent_issue(name) is None:
                    raise IssueError(paper.exam_id, name, reason="no such issue in rubric")
                continue
            if flag_set.type != 'X' or issue.sub_issues is None:
                continue
            expected = set(issue.sub_issues)
            present = set(paper.subissues(name))
            if expected != present:
                raise IssueError(
                    paper.exam_id, name,
                    reason="X answer does not match the expected sub-issues",
                    missing=expected - present,
                    extraneous=present - expected,
                )

    def score_issue(self, issue: Issue, paper: ExamPaper):
        """Score one issue of a paper, recording the result in its score data."""
        key = ScoreKey.issue(issue.name)
        data = paper.score_data
        flag_set = paper[issue.name]
        if issue.manual:
            if flag_set is not None:
                flag_set.consider()
            return data.add_score(key, 0, 'manual', issue.extra, issue.question)
        if flag_set is None:
            return data.add_score(key, 0, 'not found', issue.extra, issue.question)

        note = []
        converted = self.translator.convert(
            flag_set, issue.type, paper.subflags(issue.name)
        )
        if converted is not flag_set:
            note.append(self.translator.last_explanation)
        flag_set.consider()
        points = issue.score(converted, note)
        if issue.group is not None:
            points = issue.group.apply_cap(issue, points, data, note)
        return data.add_score(key, points, '\n'.join(note), issue.extra, issue.question)

    def score_exam(self, paper: ExamPaper):
        """Score every issue and question of a paper; return the total."""
        self.check_exam(paper)
        for template in self.quality.values():
            template.reset()
        data = paper.score_data

        for question in self.questions.values():
            base, extra = 0, 0
            for issue in question:
                points = self.score_issue(issue, paper)
                if issue.extra:
                    extra += points
                else:
                    base += points
            total = question.total_points
            award = min(base + extra, total) * question.weight
            data.add_score(
                ScoreKey.question(question.name), award,
                f"min({base}+{extra}, {total}) x {question.weight}",
            )

        unused = paper.unconsidered()
        if unused:
            raise ConsistencyError(
                f"Exam {paper.exam_id}: unused issues "
                f"{', '.join(fs.issue for fs in unused)}"
            )

        for name, template in self.quality.items():
            for flag_set in paper:
                template.update(flag_set)
            points = template.score() * self.weights.for_question(name)
            data.add_score(ScoreKey.question(name), points, template.last_explanation)

        if self.multiple_choice is not None:
            points = self.multiple_choice.score_for(paper.exam_id)
            data.add_score(
                ScoreKey.question(MULTIPLE_CHOICE),
                points * self.weights.for_question(MULTIPLE_CHOICE),
                f"{points} multiple choice points",
            )

        total = sum(data.question_scores().values())
        data.add_score(ScoreKey.total(), total)
        return total

    def score_report(self, paper: ExamPaper) -> ScoreReport:
        """Per-question breakdown of a paper's score, scoring it if needed."""
        data = paper.score_data
        if not data.has(ScoreKey.total()):
            self.score_exam(paper)

        questions = {}
        for qname, question in self.questions.items():
            weight = question.weight
            base = extra = 0
            for issue in question:
                points = data.score_for(ScoreKey.issue(issue.name))
                if issue.extra:
                    extra += points
                else:
                    base += points
            questions[qname] = QuestionReport(
                base=base * weight,
                total=question.total_points * weight,
                extra=extra * weight,
                award=data.score_for(ScoreKey.question(qname)),
            )
        for name in self.question_names():
            if name in self.questions:
                continue
            award = data.score_for(ScoreKey.question(name))
            questions[name] = QuestionReport(
                base=award, total=self.question_max(name), award=award,
            )
        return ScoreReport(
            exam_id=str(paper.exam_id),
            questions=questions,
            total=data.total,
            max_score=self.max_points,
        )

    def explain(self, paper: ExamPaper) -> Dict[str, Dict[str, ScoreEntry]]:
        """Questions mapped to their issues' score entries, scoring if needed."""
        data = paper.score_data
        if not data.has(ScoreKey.total()):
            self.score_exam(paper)
        return {
            qname: {
                issue.name: data.data_for(ScoreKey.issue(issue.name))
                for issue in question
            }
            for qname, question in self.questions.items()
        }
