"""Cohort statistics over a set of scored exam papers."""

import logging
import re
import statistics
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from .curve import Curve, CurveSpecification
from .errors import CurveError, InputError
from .exam_paper import ExamPaper
from .rubric import Rubric
from .score_data import ScoreKey

LOG = logging.getLogger(__name__)

TOTAL = 'TOTAL'


def _mean(values: List[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def _stdev(values: List[float]) -> float:
    """Sample standard deviation; zero for fewer than two values."""
    return statistics.stdev(values) if len(values) > 1 else 0.0


@dataclass
class ScoreSummary:
    mean: float
    sd: float


@dataclass
class QuestionStats:
    """Cohort statistics for one question. Points are weighted."""
    points: float
    weight: float
    mean: float
    sd: float
    wt_mean: float
    wt_sd: float
    sd_pct: float = 0.0


@dataclass
class ExamStat:
    """One exam's points on a question, and their distance from the mean in SDs."""
    points: float
    max: float
    diff: float


@dataclass
class Ranking:
    exam_id: str
    score: float
    rank: int


@dataclass
class Borderline:
    exam_id: str
    score: float
    grade: str
    possible: str


@dataclass
class QuestionOutlier:
    exam_id: str
    hi_q: str
    hi_sd: float
    lo_q: str
    lo_sd: float


@dataclass
class IssueCorrelation:
    question: str
    issue: str
    points: float
    r: float


@dataclass
class WeightChange:
    exam_id: str
    orig_score: float
    orig_rank: int
    new_score: float
    new_rank: int

    @property
    def change(self) -> int:
        return self.orig_rank - self.new_rank


class ExamAnalyzer:
    """Scores a set of exam papers against a rubric and analyzes the results."""

    def __init__(self, rubric: Rubric, exam_papers: Iterable[ExamPaper]):
        self.rubric = rubric
        self.exam_papers: Dict[str, ExamPaper] = {ep.exam_id: ep for ep in exam_papers}
        self._scored = False
        self._overall_stats: Optional[ScoreSummary] = None
        self._question_stats: Optional[Dict[str, QuestionStats]] = None
        self._curve_spec: Optional[CurveSpecification] = None

    def __repr__(self):
        return f"<ExamAnalyzer {len(self.exam_papers)} exams>"

    def __len__(self):
        return len(self.exam_papers)

    def score(self) -> None:
        """Score every exam paper; does nothing if already scored."""
        if self._scored:
            return
        for exam_paper in self.exam_papers.values():
            self.rubric.score_exam(exam_paper)
        self._scored = True
        LOG.info("Scored %d exam papers", len(self.exam_papers))

    def __iter__(self) -> Iterator[ExamPaper]:
        """Exam papers, from highest total to lowest once scored."""
        papers = list(self.exam_papers.values())
        if self._scored:
            papers.sort(key=lambda ep: ep.score_data.total, reverse=True)
        return iter(papers)

    def paper(self, exam_id) -> ExamPaper:
        exam_paper = self.exam_papers.get(exam_id)
        if exam_paper is None:
            raise InputError(f"Unknown exam ID {exam_id}")
        return exam_paper

    def totals(self) -> Dict[str, float]:
        self.score()
        return {exam_id: ep.score_data.total for exam_id, ep in self.exam_papers.items()}

    @property
    def overall_stats(self) -> ScoreSummary:
        if self._overall_stats is None:
            all_scores = list(self.totals().values())
            self._overall_stats = ScoreSummary(_mean(all_scores), _stdev(all_scores))
        return self._overall_stats

    def rankings(self) -> List[Ranking]:
        """Exams by descending total; tied exams share the higher rank."""
        self.score()
        res = []
        last_score, last_rank = None, None
        for idx, ep in enumerate(self):
            score = ep.score_data.total
            if score != last_score:
                last_score, last_rank = score, idx + 1
            res.append(Ranking(ep.exam_id, score, last_rank))
        return res

    def question_stats(self) -> Dict[str, QuestionStats]:
        """Statistics for each question and pseudo-question.

        Recorded question scores are weighted; mean and sd give the unweighted
        figures, wt_mean and wt_sd the weighted ones. sd_pct is each question's
        share of the summed weighted standard deviations.
        """
        if self._question_stats is not None:
            return self._question_stats
        self.score()
        res = {}
        for name in self.rubric.question_names():
            weight = self.rubric.weights.for_question(name)
            wt_scores = [
                ep.score_data.score_for(ScoreKey.question(name))
                for ep in self.exam_papers.values()
            ]
            scores = [s / weight for s in wt_scores] if weight else [0.0] * len(wt_scores)
            res[name] = QuestionStats(
                points=self.rubric.question_max(name),
                weight=weight,
                mean=_mean(scores),
                sd=_stdev(scores),
                wt_mean=_mean(wt_scores),
                wt_sd=_stdev(wt_scores),
            )
        sd_sum = sum(stat.wt_sd for stat in res.values())
        for stat in res.values():
            stat.sd_pct = stat.wt_sd * 100.0 / sd_sum if sd_sum else 0.0
        self._question_stats = res
        return res

    def stats_for(self, exam_id) -> Dict[str, ExamStat]:
        """An exam's points per question, plus TOTAL, with z-score deviations."""
        exam_paper = self.paper(exam_id)
        res = {}
        for name, stat in self.question_stats().items():
            score = exam_paper.score_data.score_for(ScoreKey.question(name))
            diff = (score - stat.wt_mean) / stat.wt_sd if stat.wt_sd else 0.0
            res[name] = ExamStat(score, stat.points, diff)
        total = exam_paper.score_data.total
        overall = self.overall_stats
        res[TOTAL] = ExamStat(
            total, self.rubric.max_points,
            (total - overall.mean) / overall.sd if overall.sd else 0.0,
        )
        return res

    def scores_for_pattern(self, pattern: Optional[str] = None) -> Dict[str, float]:
        """Per-exam sums of the scores selected by "<question re>/<issue re>".

        With no issue part, whole question scores are summed. An empty pattern
        selects the exam totals.
        """
        self.score()
        if not pattern or pattern == '/':
            return self.totals()

        qpattern, sep, ipattern = pattern.partition('/')
        if sep and ipattern:
            return {
                exam_id: ep.score_data.score_matching(qpattern, ipattern)
                for exam_id, ep in self.exam_papers.items()
            }
        qre = re.compile(qpattern)
        keys = [
            ScoreKey.question(name)
            for name in self.rubric.question_names() if qre.search(name)
        ]
        return {
            exam_id: sum(ep.score_data.score_for(key) for key in keys)
            for exam_id, ep in self.exam_papers.items()
        }

    def issue_correlations(self, pattern: Optional[str] = None) -> List[IssueCorrelation]:
        """Pearson r of every scored issue against the baseline pattern's scores.

        Issues that are extra credit, worth nothing or scored identically on
        every exam are omitted.
        """
        baseline = self.scores_for_pattern(pattern)
        exam_ids = list(self.exam_papers)
        res = []
        for question in self.rubric:
            for issue in sorted(question, key=lambda i: i.max, reverse=True):
                if issue.extra or issue.max == 0:
                    continue
                issue_scores = [
                    self.exam_papers[e].score_data.score_for(ScoreKey.issue(issue.name))
                    for e in exam_ids
                ]
                try:
                    r = statistics.correlation([baseline[e] for e in exam_ids], issue_scores)
                except statistics.StatisticsError:
                    LOG.debug("No correlation for issue %s", issue.name)
                    continue
                res.append(IssueCorrelation(question.name, issue.name, issue.max, round(r, 3)))
        return res

    @property
    def curve_spec(self) -> CurveSpecification:
        """A curve specification from the rubric, filled with the current exam totals."""
        if self._curve_spec is None:
            if self.rubric.curve is None:
                raise CurveError("Cannot compute curves without a curve specification")
            spec = CurveSpecification(self.rubric.curve.config)
            spec.scores = self.totals()
            self._curve_spec = spec
        return self._curve_spec

    @property
    def curve(self) -> Curve:
        """The actual curve given in the rubric."""
        if not self.curve_spec.actual:
            raise CurveError("No actual curve given in the rubric curve specification")
        return self.curve_spec.actual_curve

    def opt_curve(self) -> Optional[Curve]:
        """The actual curve if the rubric gives one, otherwise None."""
        if self.rubric.curve is None or not self.rubric.curve.actual:
            return None
        return self.curve

    def borderline(self, dev: float = 0.005) -> List[Borderline]:
        """Exams whose grade would change with a fractional score change of dev."""
        if dev <= 0 or dev > 0.1:
            raise InputError("Deviation must be a small positive fraction")
        curve = self.curve
        res = []
        for ep in self:
            score = ep.score_data.total
            pt_dev = dev * score
            cur = curve.grade_for(score)
            hi = curve.grade_for(score + pt_dev)
            if hi != cur:
                res.append(Borderline(ep.exam_id, score, cur, hi))
                continue
            # Below the lowest cutoff there is no grade to fall to.
            if score - pt_dev >= min(curve.cutoffs.values()):
                lo = curve.grade_for(score - pt_dev)
                if lo != cur:
                    res.append(Borderline(ep.exam_id, score, cur, lo))
        return res

    def question_outliers(self, threshold: float = 2) -> List[QuestionOutlier]:
        """Exams whose best and worst questions differ by more than threshold SDs.

        Quality scores are left out of the comparison.
        """
        res = []
        for ep in self:
            estats = {
                name: stat for name, stat in self.stats_for(ep.exam_id).items()
                if name not in self.rubric.quality
            }
            lo_q = min(estats, key=lambda name: estats[name].diff)
            hi_q = max(estats, key=lambda name: estats[name].diff)
            if estats[hi_q].diff - estats[lo_q].diff > threshold:
                res.append(QuestionOutlier(
                    ep.exam_id, hi_q, estats[hi_q].diff, lo_q, estats[lo_q].diff
                ))
        return res

    def try_weight(self, question: str, weight: float) -> List[WeightChange]:
        """Reweight a question, rescore every exam and compare rankings.

        The new weight stays in effect on the rubric afterwards.
        """
        orig = self.rankings()
        self.rubric.weights[question] = weight
        for ep in self.exam_papers.values():
            ep.reset_scoring()
        self._scored = False
        self._overall_stats = None
        self._question_stats = None
        self._curve_spec = None
        new = {r.exam_id: r for r in self.rankings()}
        return [
            WeightChange(r.exam_id, r.score, r.rank,
                         new[r.exam_id].score, new[r.exam_id].rank)
            for r in orig
        ]
