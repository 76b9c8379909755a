"""Exam scoring from annotated papers, and letter-grade curve search."""

from .curve import Curve, CurveSpecification, enumerate_cutoffs
from .errors import (
    AnnotationError,
    ConsistencyError,
    ConversionError,
    CurveError,
    FlagError,
    GradingError,
    InputError,
    IssueError,
    MultipleChoiceError,
    TemplateError,
)
from .exam_analyzer import ExamAnalyzer
from .exam_paper import ExamPaper
from .flag_set import FlagRuleset, FlagSet
from .loader import load_exam_papers, load_rubric
from .models import GPA_MAP, RubricConfig, ScoreReport
from .multiple_choice import MultipleChoice
from .quality_template import QualityTemplate
from .rubric import Issue, IssueGroup, Question, Rubric, Weights
from .score_data import ScoreData, ScoreKey, ScoreKind, score_key
from .scoring_template import ScoringTemplate
from .type_translator import TypeTranslator

__all__ = [
    'AnnotationError',
    'ConsistencyError',
    'ConversionError',
    'Curve',
    'CurveError',
    'CurveSpecification',
    'ExamAnalyzer',
    'ExamPaper',
    'FlagError',
    'FlagRuleset',
    'FlagSet',
    'GPA_MAP',
    'GradingError',
    'InputError',
    'Issue',
    'IssueError',
    'IssueGroup',
    'MultipleChoice',
    'MultipleChoiceError',
    'QualityTemplate',
    'Question',
    'Rubric',
    'RubricConfig',
    'ScoreData',
    'ScoreKey',
    'ScoreKind',
    'ScoreReport',
    'ScoringTemplate',
    'TemplateError',
    'TypeTranslator',
    'Weights',
    'enumerate_cutoffs',
    'load_exam_papers',
    'load_rubric',
    'score_key',
]
