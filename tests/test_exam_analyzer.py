"""Tests for cohort statistics over scored exams."""

import math

import pytest

from gradecurve.libs.grading.errors import CurveError, InputError
from gradecurve.libs.grading.exam_analyzer import TOTAL, ExamAnalyzer
from gradecurve.libs.grading.exam_paper import ExamPaper
from gradecurve.libs.grading.models import RubricConfig
from gradecurve.libs.grading.rubric import Rubric

ANNOTATIONS = {
    '1': {'issue1': 'abc', 'issue2': 'abc'},
    '2': {'issue1': 'ac', 'issue2': 'a'},
    '3': {'issue1': 'ab', 'issue2': 'abc'},
    '4': {'issue1': 'a', 'issue2': 'abc'},
}

CURVE = {
    'min_mean': 1.0,
    'max_mean': 3.5,
    'target_mean': 2.5,
    'target_sd': 1.0,
    'min_grade': 'C',
}


def make_analyzer(curve=None):
    config = {
        'templates': {'q1': '@a, +3, b 1, c 2', 'q2': '@a, +2, b 1, c 1'},
        'questions': {'Q1': {'issue1': 'q1'}, 'Q2': {'issue2': 'q2'}},
    }
    if curve is not None:
        config['curve'] = curve
    rubric = Rubric(RubricConfig.model_validate(config))
    papers = []
    for exam_id, issues in ANNOTATIONS.items():
        paper = ExamPaper(exam_id)
        for issue, flags in issues.items():
            paper.add(issue, flags)
        papers.append(paper)
    return ExamAnalyzer(rubric, papers)


@pytest.fixture
def analyzer():
    return make_analyzer()


def test_totals(analyzer):
    """Test scoring every paper."""
    assert analyzer.totals() == {'1': 5, '2': 2, '3': 3, '4': 2}
    assert len(analyzer) == 4


def test_score_is_idempotent(analyzer):
    """Test that scoring twice does not rescore."""
    analyzer.score()
    analyzer.score()
    assert analyzer.paper('1').score_data.total == 5


def test_iteration_order(analyzer):
    """Test that scored papers iterate from highest total."""
    analyzer.score()
    assert [ep.exam_id for ep in analyzer] == ['1', '3', '2', '4']


def test_rankings(analyzer):
    """Test that ties share a rank."""
    ranks = [(r.exam_id, r.rank) for r in analyzer.rankings()]
    assert ranks == [('1', 1), ('3', 2), ('2', 3), ('4', 3)]


def test_overall_stats(analyzer):
    """Test the cohort mean and sample standard deviation."""
    stats = analyzer.overall_stats
    assert stats.mean == 3
    assert stats.sd == pytest.approx(math.sqrt(2))


def test_question_stats(analyzer):
    """Test per-question statistics."""
    stats = analyzer.question_stats()
    assert stats['Q1'].points == 3
    assert stats['Q1'].mean == 1.5
    assert stats['Q1'].sd == pytest.approx(math.sqrt(5 / 3))
    assert stats['Q2'].sd == pytest.approx(1.0)
    assert stats['Q1'].sd_pct + stats['Q2'].sd_pct == pytest.approx(100)


def test_stats_for(analyzer):
    """Test an exam's deviations from the cohort."""
    stats = analyzer.stats_for('1')
    assert stats['Q1'].points == 3
    assert stats['Q1'].diff == pytest.approx(1.5 / math.sqrt(5 / 3))
    assert stats[TOTAL].points == 5
    assert stats[TOTAL].max == 5
    assert stats[TOTAL].diff == pytest.approx(2 / math.sqrt(2))


def test_unknown_exam(analyzer):
    """Test asking for an exam that was not loaded."""
    with pytest.raises(InputError):
        analyzer.stats_for('9')


def test_scores_for_pattern(analyzer):
    """Test selecting scores by question and issue."""
    assert analyzer.scores_for_pattern('Q1') == {'1': 3, '2': 2, '3': 1, '4': 0}
    assert analyzer.scores_for_pattern('Q/issue2') == {'1': 2, '2': 0, '3': 2, '4': 2}
    assert analyzer.scores_for_pattern('Q1/issue2') == {'1': 0, '2': 0, '3': 0, '4': 0}
    assert analyzer.scores_for_pattern('/issue') == analyzer.totals()
    assert analyzer.scores_for_pattern('') == analyzer.totals()


def test_issue_correlations(analyzer):
    """Test correlating issues with exam totals."""
    corr = analyzer.issue_correlations()
    assert [(c.question, c.issue) for c in corr] == [('Q1', 'issue1'), ('Q2', 'issue2')]
    assert all(-1 <= c.r <= 1 for c in corr)


def test_question_outliers(analyzer):
    """Test finding exams with uneven question performance."""
    outliers = analyzer.question_outliers(threshold=1.8)
    assert [o.exam_id for o in outliers] == ['2']
    assert outliers[0].hi_q == 'Q1'
    assert outliers[0].lo_q == 'Q2'


def test_try_weight(analyzer):
    """Test reweighting a question and comparing ranks."""
    changes = {c.exam_id: c for c in analyzer.try_weight('Q2', 2)}
    assert changes['3'].new_score == 5
    assert changes['2'].orig_rank == 3
    assert changes['2'].new_rank == 4
    assert changes['2'].change == -1
    assert changes['4'].change == 0
    assert analyzer.rubric.weights['Q2'] == 2
    assert analyzer.totals()['1'] == 7


def test_try_weight_unknown_question(analyzer):
    """Test reweighting a question the rubric lacks."""
    with pytest.raises(InputError):
        analyzer.try_weight('Q9', 2)


class TestCurves:
    """Tests for curves over exam totals."""

    def test_no_curve_specification(self, analyzer):
        """Test that curves need a specification in the rubric."""
        with pytest.raises(CurveError):
            analyzer.curve_spec
        assert analyzer.opt_curve() is None

    def test_no_actual_curve(self):
        """Test asking for the actual curve when none is given."""
        analyzer = make_analyzer(CURVE)
        assert analyzer.curve_spec.n == 4
        with pytest.raises(CurveError):
            analyzer.curve

    def test_actual_curve(self):
        """Test grading exams by the actual curve."""
        analyzer = make_analyzer(dict(CURVE, actual={'A': 5, 'B': 3, 'C': 0}))
        assert analyzer.curve.grades() == {'1': 'A', '3': 'B', '2': 'C', '4': 'C'}
        assert analyzer.opt_curve() is analyzer.curve

    def test_curve_follows_new_weight(self):
        """Test that curves are rebuilt from the totals after reweighting."""
        analyzer = make_analyzer(dict(CURVE, actual={'A': 5, 'B': 3, 'C': 0}))
        assert analyzer.curve.grades()['3'] == 'B'
        analyzer.try_weight('Q2', 2)
        assert analyzer.curve_spec.scores == {'1': 7, '2': 2, '3': 5, '4': 4}
        assert analyzer.curve.grades() == {'1': 'A', '3': 'A', '4': 'B', '2': 'C'}

    def test_rubric_curve_left_unscored(self):
        """Test that analyzers over one rubric each get their own curve scores."""
        first = make_analyzer(CURVE)
        assert first.curve_spec.n == 4
        second = ExamAnalyzer(first.rubric, make_analyzer().exam_papers.values())
        assert second.curve_spec.n == 4
        assert second.curve_spec is not first.curve_spec

    def test_borderline(self):
        """Test finding exams near a cutoff."""
        analyzer = make_analyzer(dict(CURVE, actual={'A': 5, 'B': 3, 'C': 0}))
        borderline = analyzer.borderline(0.1)
        assert [(b.exam_id, b.grade, b.possible) for b in borderline] == [
            ('1', 'A', 'B'),
            ('3', 'B', 'C'),
        ]

    def test_borderline_deviation(self):
        """Test that the deviation must be a small fraction."""
        analyzer = make_analyzer(dict(CURVE, actual={'A': 5, 'B': 3, 'C': 0}))
        with pytest.raises(InputError):
            analyzer.borderline(0.2)
        with pytest.raises(InputError):
            analyzer.borderline(0)

    def test_best_curves(self):
        """Test searching curves over the exam totals."""
        analyzer = make_analyzer(CURVE)
        best = analyzer.curve_spec.best(2)
        assert len(best) == 2
        assert best[0].metric <= best[1].metric
