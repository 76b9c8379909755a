"""Tests for loading rubrics and exam papers from disk."""

import pytest
from pydantic import ValidationError

from gradecurve.libs.grading.errors import FlagError, InputError
from gradecurve.libs.grading.flag_set import DEFAULT_VALID_FLAGS, FlagRuleset
from gradecurve.libs.grading.loader import (
    exam_id_for,
    load_exam_papers,
    load_rubric,
    ruleset_from_config,
)

RUBRIC_YAML = """\
templates:
  full: "@a, +4, b 1, c 2"
questions:
  Q1:
    issue1: full
"""


def test_load_rubric(tmp_path):
    """Test building a rubric from YAML."""
    path = tmp_path / "rubric.yaml"
    path.write_text(RUBRIC_YAML)
    rubric = load_rubric(path)
    assert rubric.question_names() == ['Q1']
    assert rubric.base_dir == tmp_path


def test_load_rubric_merges_files(tmp_path):
    """Test that later rubric files override earlier ones."""
    base = tmp_path / "rubric.yaml"
    base.write_text(RUBRIC_YAML)
    extra = tmp_path / "weights.yaml"
    extra.write_text("weights:\n  Q1: 2\n")
    rubric = load_rubric(base, extra)
    assert rubric.max_points == 8


def test_load_rubric_missing(tmp_path):
    """Test that rubric files must exist."""
    with pytest.raises(InputError, match="No rubric file"):
        load_rubric(tmp_path / "missing.yaml")


def test_load_rubric_invalid(tmp_path):
    """Test that rubric structure is validated."""
    path = tmp_path / "rubric.yaml"
    path.write_text("questions:\n  Q1:\n    issue1: missing\n")
    with pytest.raises(ValidationError):
        load_rubric(path)


def test_exam_id_for():
    """Test taking the exam ID from a file name."""
    assert exam_id_for("scans/exam-0042-v2.tex") == '0042'
    with pytest.raises(InputError):
        exam_id_for("exam-final.tex")


def test_load_exam_papers(tmp_path):
    """Test reading exam files sorted by exam ID."""
    for exam_id in ('10', '9', '100'):
        (tmp_path / f"exam-{exam_id}.tex").write_text("% issue1: ab\n")
    (tmp_path / "notes.txt").write_text("% issue1: ab\n")
    papers = load_exam_papers("exam-*.tex", tmp_path)
    assert [p.exam_id for p in papers] == ['9', '10', '100']
    assert papers[0]['issue1'].flags == {'a', 'b'}


def test_load_exam_papers_absolute_pattern(tmp_path):
    """Test an absolute glob pattern."""
    (tmp_path / "exam-1.tex").write_text("% issue1: a\n")
    papers = load_exam_papers(str(tmp_path / "exam-*.tex"))
    assert len(papers) == 1


def test_duplicate_exam_ids(tmp_path):
    """Test that two files may not share an exam ID."""
    (tmp_path / "exam-1.tex").write_text("% issue1: a\n")
    (tmp_path / "exam-1-redo.tex").write_text("% issue1: a\n")
    with pytest.raises(InputError, match="Duplicate exam ID 1"):
        load_exam_papers("exam-*.tex", tmp_path)


def test_ruleset_from_config():
    """Test configuring the flag alphabet."""
    ruleset = ruleset_from_config({'grading': {'valid_flags': 'aAXz'}})
    assert ruleset == FlagRuleset(valid_flags='aAXz')
    assert ruleset_from_config({}).valid_flags == FlagRuleset().valid_flags


def test_unknown_flag_rejected(tmp_path):
    """Test that flags outside the alphabet fail when an exam is read."""
    (tmp_path / "exam-1.tex").write_text("% issue1: abc\n")
    with pytest.raises(FlagError, match="unknown flags c"):
        load_exam_papers("exam-*.tex", tmp_path)


def test_configured_alphabet(tmp_path):
    """Test reading exams with a flag alphabet taken from config."""
    (tmp_path / "exam-1.tex").write_text("% issue1: abc\n")
    ruleset = ruleset_from_config({'grading': {'valid_flags': DEFAULT_VALID_FLAGS + 'c'}})
    papers = load_exam_papers("exam-*.tex", tmp_path, ruleset=ruleset)
    assert papers[0]['issue1'].flags == {'a', 'b', 'c'}
