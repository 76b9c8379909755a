"""Letter-grade curves and the search for good ones.

A Curve is a set of raw scores plus a cutoff map associating letter grades
with minimum raw scores. A CurveSpecification holds the targets for a class
curve and, once given the raw scores, can enumerate every admissible curve
and measure how well each meets the targets. The measures are:

- mean: whether the GPA mean is within range and close to the target mean
- dist: how far the grade counts are from a normal distribution around the
  target mean and standard deviation
- cluster: how well separated the scores of different grades are, using a
  Davies-Bouldin style index

Lower is better for all three; their sum ranks candidate curves.
"""

import heapq
import itertools
import logging
import math
import statistics
from dataclasses import dataclass
from functools import cached_property
from statistics import NormalDist
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import CurveError
from .models import GPA_MAP, CurveConfig

LOG = logging.getLogger(__name__)

# Penalty for a curve whose GPA mean falls outside the permitted range
OUT_OF_RANGE_PENALTY = 100.0
# Penalty for a curve awarding a single grade, whose clustering is unmeasurable
SINGLE_GRADE_PENALTY = 1.0


def grades_through(min_grade: str) -> List[str]:
    """All letter grades from the highest down to min_grade."""
    grades = list(GPA_MAP)
    if min_grade not in GPA_MAP:
        raise CurveError(f"Unknown letter grade {min_grade}")
    return grades[:grades.index(min_grade) + 1]


def cutoff_values(scores: Mapping) -> list:
    """Distinct scores from highest to lowest, led by an unreachable cutoff.

    A grade whose cutoff is the unreachable value is awarded to nobody.
    """
    if not scores:
        raise CurveError("Cannot compute cutoffs without score data")
    svals = sorted(set(scores.values()), reverse=True)
    return [svals[0] + 1] + svals


def cutoff_count(scores: Mapping, grades: Sequence[str]) -> int:
    """Number of cutoff maps enumerate_cutoffs will produce."""
    mcount = len(grades) - 1
    return math.comb(len(cutoff_values(scores)) + mcount - 1, mcount)


def enumerate_cutoffs(scores: Mapping, grades: Sequence[str]) -> Iterator[Dict[str, float]]:
    """Lazily yield every cutoff map for the given scores and grades.

    Every grade but the last takes one of the cutoff values, in non-increasing
    order (adjacent grades may share a cutoff); the last grade's cutoff is the
    lowest score. Think of the cutoff values as an ordered list into which each
    grade is inserted to mark its cutoff. Inserting after the lowest score is
    the same as inserting before it, so there are len(svals) + len(mgrades) - 1
    insertion slots, and choosing slots for the grades is a combination.
    """
    if not grades:
        raise CurveError("No grades to assign")
    svals = cutoff_values(scores)
    mgrades = list(grades[:-1])
    slots = range(len(svals) + len(mgrades) - 1)
    for pos in itertools.combinations(slots, len(mgrades)):
        # Each grade already inserted occupies one slot ahead of the next, so
        # the i-th chosen slot maps to score index pos[i] - i.
        cutoffs = {g: svals[p - i] for i, (g, p) in enumerate(zip(mgrades, pos))}
        cutoffs[grades[-1]] = svals[-1]
        yield cutoffs


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


@dataclass(frozen=True)
class GradeStats:
    """Raw score statistics for the exams receiving one letter grade."""
    count: int
    max: float
    min: float
    mean: float
    range: float
    spread: float  # mean absolute deviation from the mean


class Curve:
    """An immutable assignment of cutoffs to grades over a set of scores."""

    def __init__(self, scores: Mapping, cutoffs: Mapping[str, float],
                 metrics: Optional[Mapping[str, float]] = None):
        unknown = [g for g in cutoffs if g not in GPA_MAP]
        if unknown:
            raise CurveError(f"Unknown letter grades {', '.join(unknown)}")
        self._scores = dict(sorted(scores.items(), key=lambda kv: kv[1], reverse=True))
        self._cutoffs = {g: cutoffs[g] for g in GPA_MAP if g in cutoffs}
        values = list(self._cutoffs.values())
        if values != sorted(values, reverse=True):
            raise CurveError(f"Invalid grade map {self._cutoffs}")
        self._metrics = dict(metrics or {})

    def __repr__(self):
        cutoffs = ', '.join(f"{g}: {c}" for g, c in self._cutoffs.items())
        return f"<Curve {{{cutoffs}}} metric={self.metric:.4f}>"

    @property
    def scores(self) -> Dict:
        return dict(self._scores)

    @property
    def cutoffs(self) -> Dict[str, float]:
        return dict(self._cutoffs)

    @property
    def metrics(self) -> Dict[str, float]:
        return dict(self._metrics)

    @property
    def metric(self) -> float:
        return sum(self._metrics.values())

    def with_metrics(self, metrics: Mapping[str, float]) -> 'Curve':
        return Curve(self._scores, self._cutoffs, metrics)

    def grade_for(self, score) -> str:
        """The highest grade whose cutoff the score meets."""
        for grade, cutoff in self._cutoffs.items():
            if score >= cutoff:
                return grade
        raise CurveError(f"Ungradable score {score}")

    def grades(self) -> Dict:
        """Exam IDs mapped to letter grades."""
        return {exam_id: self.grade_for(s) for exam_id, s in self._scores.items()}

    def gpas(self) -> Dict:
        return {exam_id: GPA_MAP[g] for exam_id, g in self.grades().items()}

    @property
    def mean_gpa(self) -> float:
        return statistics.fmean(self.gpas().values())

    @property
    def stddev_gpa(self) -> float:
        gpas = list(self.gpas().values())
        return statistics.stdev(gpas) if len(gpas) > 1 else 0.0

    @cached_property
    def stats(self) -> Dict[str, Optional[GradeStats]]:
        """Per-grade statistics; None for grades nobody received."""
        grade_scores = {g: [] for g in self._cutoffs}
        for score in self._scores.values():
            grade_scores[self.grade_for(score)].append(score)
        res = {}
        for grade, scores in grade_scores.items():
            if not scores:
                res[grade] = None
                continue
            mean = statistics.fmean(scores)
            res[grade] = GradeStats(
                count=len(scores),
                max=max(scores),
                min=min(scores),
                mean=mean,
                range=max(scores) - min(scores),
                spread=statistics.fmean(abs(s - mean) for s in scores),
            )
        return res


class CurveSpecification:
    """Targets for a class curve, plus the raw scores to be curved."""

    def __init__(self, config: CurveConfig):
        self.config = config
        self.grades = grades_through(config.min_grade)
        self._scores = None
        self._ideal = None
        self.actual_curve: Optional[Curve] = None

    @property
    def actual(self) -> Optional[Dict[str, float]]:
        return self.config.actual

    @property
    def scores(self) -> Dict:
        if self._scores is None:
            raise CurveError("Cannot compute curves without score data")
        return self._scores

    @scores.setter
    def scores(self, scores: Mapping) -> None:
        """Set the raw scores; allowed once. Measures the actual curve, if any."""
        if self._scores is not None:
            raise CurveError("Scores were already given to this curve specification")
        if not scores:
            raise CurveError("Cannot curve an empty set of scores")
        self._scores = dict(scores)
        if self.config.actual:
            self.actual_curve = self.measure(Curve(self._scores, self.config.actual))

    @property
    def n(self) -> int:
        return len(self.scores)

    def gpa_cutoffs(self) -> Dict[str, Tuple[Optional[float], Optional[float]]]:
        """Grades mapped to (high, low) GPA boundaries.

        Each boundary is halfway between the grade's GPA and its neighbor's.
        The top grade has no high boundary and the bottom grade no low one.
        """
        gpas = [GPA_MAP[g] for g in self.grades]
        res = {}
        for i, grade in enumerate(self.grades):
            hi = (gpas[i - 1] + gpas[i]) / 2 if i > 0 else None
            lo = (gpas[i + 1] + gpas[i]) / 2 if i + 1 < len(gpas) else None
            res[grade] = (hi, lo)
        return res

    def _normal(self) -> NormalDist:
        return NormalDist(self.config.target_mean, self.config.target_sd)

    def ideal_distribution(self) -> Dict[str, float]:
        """Expected number of each grade under the target normal distribution."""
        if self._ideal is None:
            z = self._normal()
            n = self.n
            self._ideal = {
                grade: ((z.cdf(hi) if hi is not None else 1.0)
                        - (z.cdf(lo) if lo is not None else 0.0)) * n
                for grade, (hi, lo) in self.gpa_cutoffs().items()
            }
        return self._ideal

    def normal_curve(self) -> Curve:
        """A curve placing cutoffs where the target normal distribution would."""
        z = self._normal()
        svals = sorted(self.scores.values())
        n = len(svals)
        cutoffs = {}
        for grade, (hi, lo) in self.gpa_cutoffs().items():
            if lo is None:
                cutoffs[grade] = svals[0]
                continue
            # The CDF at the grade's low GPA boundary is the fraction of
            # scores that should fall below the grade.
            pos = _round_half_up(z.cdf(lo) * n)
            cutoffs[grade] = svals[pos] if pos < n else svals[-1] + 1
        return self.measure(Curve(self.scores, cutoffs))

    def candidate_cutoffs(self) -> Iterator[Dict[str, float]]:
        return enumerate_cutoffs(self.scores, self.grades)

    def candidate_count(self) -> int:
        return cutoff_count(self.scores, self.grades)

    def each(self) -> Iterator[Curve]:
        """Lazily yield every candidate curve, measured."""
        for cutoffs in self.candidate_cutoffs():
            yield self.measure(Curve(self.scores, cutoffs))

    def __iter__(self) -> Iterator[Curve]:
        return self.each()

    def best(self, count: int = 10) -> List[Curve]:
        """The count best candidate curves, searching all candidates."""
        LOG.info("Searching %d candidate curves", self.candidate_count())
        return heapq.nsmallest(count, self.each(), key=lambda c: c.metric)

    def measure(self, curve: Curve) -> Curve:
        """Return a copy of curve carrying its quality metrics."""
        return curve.with_metrics({
            'mean': self.measure_gpa_range(curve),
            'dist': self.measure_distribution(curve),
            'cluster': self.measure_clustering(curve),
        })

    def measure_gpa_range(self, curve: Curve) -> float:
        """Distance of the GPA mean from the target, relative to the range."""
        c = self.config
        gpa_mean = curve.mean_gpa
        if gpa_mean > c.max_mean or gpa_mean < c.min_mean:
            return OUT_OF_RANGE_PENALTY
        return abs(c.target_mean - gpa_mean) / (c.max_mean - c.min_mean)

    def measure_distribution(self, curve: Curve) -> float:
        """Root of summed squared differences from the ideal grade counts,
        divided by the class size."""
        ideal = self.ideal_distribution()
        stats = curve.stats
        sq = 0.0
        for grade, ideal_num in ideal.items():
            data = stats.get(grade)
            sq += (ideal_num - (data.count if data else 0)) ** 2
        return math.sqrt(sq) / sum(ideal.values())

    def measure_clustering(self, curve: Curve) -> float:
        """Davies-Bouldin index over the awarded grades."""
        s = [data for data in curve.stats.values() if data is not None]
        if len(s) <= 1:
            return SINGLE_GRADE_PENALTY
        return statistics.fmean(
            max(
                (i_data.spread + j_data.spread) / abs(i_data.mean - j_data.mean)
                for j, j_data in enumerate(s) if j != i
            )
            for i, i_data in enumerate(s)
        )
