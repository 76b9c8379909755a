"""Tests for the multiple choice component."""

import logging

import pytest

from gradecurve.libs.grading.errors import MultipleChoiceError
from gradecurve.libs.grading.models import MultipleChoiceConfig
from gradecurve.libs.grading.multiple_choice import (
    MultipleChoice,
    clean_header,
    parse_answer_key,
    parse_responses,
)

HEADER = ['Exam ID', 'Q 1', 'Q 2', 'Q 3']
ROWS = [
    HEADER,
    ['Key', 'A', 'B', 'C'],
    ['1', 'A', 'B', 'C'],
    ['2', 'A', 'B', 'D'],
    ['3', 'A', 'D', 'D'],
    ['4', 'D', 'D', 'D'],
]


@pytest.fixture
def mc():
    return MultipleChoice.from_rows(ROWS)


def test_clean_header():
    """Test normalizing question headers."""
    assert clean_header(" Q 3 ") == 'q_3'
    assert clean_header("Student Name") == 'student_name'


def test_parse_responses():
    """Test separating the key row from the responses."""
    key, responses = parse_responses(ROWS)
    assert key == {'q_1': 'A', 'q_2': 'B', 'q_3': 'C'}
    assert responses['3'] == {'q_1': 'A', 'q_2': 'D', 'q_3': 'D'}


def test_parse_responses_ignored_columns():
    """Test that summary columns are skipped and short rows padded."""
    rows = [['Student Name', 'ID Number', 'Score', 'Q 1', 'Q 2'], ['', '17', '1', 'A']]
    key, responses = parse_responses(rows)
    assert key is None
    assert responses == {'17': {'q_1': 'A', 'q_2': ''}}


def test_bad_header():
    """Test that unknown columns are rejected."""
    with pytest.raises(MultipleChoiceError, match="Unknown header color"):
        parse_responses([['Exam ID', 'Color']])


def test_no_key():
    """Test that an answer key is required."""
    with pytest.raises(MultipleChoiceError, match="No answer key"):
        MultipleChoice.from_rows(ROWS[:1] + ROWS[2:])


def test_score_for(mc):
    """Test scoring exams against the key."""
    assert [mc.score_for(e) for e in '1234'] == [3, 2, 1, 0]
    assert mc.score_for(2) == 2
    assert mc.score_for('1', 'q_[12]') == 2
    assert mc.max_score() == 3


def test_missing_exam(mc):
    """Test that every scored exam needs a response row."""
    with pytest.raises(MultipleChoiceError, match="exam ID 9"):
        mc.score_for('9')


def test_adjustments():
    """Test weighting individual questions."""
    mc = MultipleChoice.from_rows(ROWS, points_per_question=2, adjustments={'Q 3': 0.5})
    assert mc.question_value('q_3') == 1
    assert mc.score_for('1') == 5
    assert mc.max_score() == 5


def test_num_correct(mc):
    """Test counting correct answers for a question."""
    assert mc.num_correct('Q 2', ['1', '2', '3']) == 2
    with pytest.raises(MultipleChoiceError):
        mc.num_correct('Q 9', ['1'])


def test_separate_answer_key():
    """Test reading the key from its own table."""
    key_rows = [['Question', 'Answer'], ['1', 'A'], ['2', 'B'], ['3', 'D']]
    assert parse_answer_key(key_rows)['q_3'] == 'D'
    mc = MultipleChoice.from_rows(ROWS, key_rows=key_rows)
    assert mc.score_for('3') == 2


def test_answer_key_bad_header():
    """Test that the answer key needs Question and Answer columns."""
    with pytest.raises(MultipleChoiceError, match="Question and Answer"):
        parse_answer_key([['Q', 'A'], ['1', 'A']])


class TestFiles:
    """Tests for reading response tables from disk."""

    def test_csv(self, tmp_path):
        """Test that .csv files are comma-delimited."""
        (tmp_path / "mc.csv").write_text('\n'.join(','.join(row) for row in ROWS) + '\n')
        mc = MultipleChoice.from_config(MultipleChoiceConfig(file='mc.csv'), tmp_path)
        assert mc.score_for('1') == 3

    def test_tab_delimited(self, tmp_path):
        """Test that other files are tab-delimited."""
        (tmp_path / "mc.txt").write_text('\n'.join('\t'.join(row) for row in ROWS) + '\n')
        (tmp_path / "key.txt").write_text("Question\tAnswer\n1\tD\n2\tD\n3\tD\n")
        config = MultipleChoiceConfig(file='mc.txt', answer_key='key.txt')
        mc = MultipleChoice.from_config(config, tmp_path)
        assert mc.score_for('4') == 3


class TestStatistics:
    """Tests for item statistics."""

    def test_item_statistics(self, mc):
        """Test difficulty, point-biserial and discrimination."""
        stats = mc.statistics()
        q1 = stats.questions['q_1']
        assert q1.frac_correct == 0.75
        assert q1.point_biserial == 0.775
        assert q1.discrimination_index == 1.0
        assert q1.correct == 'A'
        assert stats.questions['q_2'].point_biserial == 0.894
        assert stats.questions['q_3'].answer_count == {'C': 1, 'D': 3}

    def test_summary(self, mc):
        """Test sorting questions into buckets."""
        summary = mc.statistics().summary
        assert summary == {'easy': [], 'hard_low_corr': [], 'low_corr': [], 'hard': ['q_3']}

    def test_small_cohort(self, mc, caplog):
        """Test that small cohorts get no discrimination index."""
        with caplog.at_level(logging.WARNING):
            stats = mc.statistics(min_cohort=5)
        assert stats.questions['q_1'].discrimination_index is None
        assert "too small" in caplog.text

    def test_external_scores(self, mc):
        """Test statistics against scores from the whole exam."""
        stats = mc.statistics({'1': 10, '2': 10, '3': 10, '4': 10})
        assert stats.questions['q_1'].point_biserial == 0
        assert stats.questions['q_1'].frac_correct == 0.75

    def test_no_scores(self):
        """Test that statistics need at least one exam."""
        mc = MultipleChoice.from_rows(ROWS[:2])
        with pytest.raises(MultipleChoiceError):
            mc.statistics()
