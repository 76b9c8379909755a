"""Pydantic models for rubric configuration and score reports."""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Letter grades and their GPA values, highest first.
GPA_MAP: Dict[str, float] = {
    'A': 4.0,
    'A-': 3.7,
    'B+': 3.3,
    'B': 3.0,
    'B-': 2.7,
    'C+': 2.3,
    'C': 2.0,
    'C-': 1.7,
    'D': 1.0,
    'F': 0.0,
}

MULTIPLE_CHOICE = 'multiple_choice'

TABLE_RE = re.compile(r'\A(\w*)\s*->\s*(\w*)\Z')


class IssueConfig(BaseModel):
    """Point structure for one issue within a question."""
    template: Optional[str] = Field(default=None, description="Name of the scoring template")
    max: Optional[float] = Field(
        default=None,
        description="Maximum points for an issue that is not scored from flags"
    )
    points: Optional[Dict[str, float]] = Field(
        default=None,
        description="Sub-element names mapped to their maximum points"
    )
    extra: bool = Field(default=False, description="Whether the points are extra credit")
    sub: Optional[List[str]] = Field(
        default=None,
        description="Sub-issues expected when the issue is annotated with an X type"
    )
    group: Optional[str] = Field(
        default=None,
        description="Name of an issue group sharing a combined maximum"
    )

    @model_validator(mode='after')
    def check_points_source(self) -> 'IssueConfig':
        if self.template is not None and (self.max is not None or self.points):
            raise ValueError("Can't have both template and max/points")
        if self.template is None and self.max is None and not self.points:
            raise ValueError("Issue needs a template, max or points")
        return self


class TranslationConfig(BaseModel):
    """Rules for translating flag sets between answer types."""
    A_to_a: Optional[str] = Field(default=None, description='Table "[old] -> [new]" for A to a')
    a_to_A: Optional[str] = Field(default=None, description='Table "[old] -> [new]" for a to A')
    X_all_or_half: str = Field(default='', description="Flags converted by the all-or-half rule")
    X_any_or_two: str = Field(default='', description="Flags converted by the any-or-two rule")
    X_any: str = Field(default='', description="Flags converted by the any rule")
    X_discard: str = Field(default='', description="Flags discarded when converting from X")

    @field_validator('A_to_a', 'a_to_A')
    @classmethod
    def check_table(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        m = TABLE_RE.match(value.strip())
        if not m or len(m.group(1)) != len(m.group(2)):
            raise ValueError(f"Invalid conversion table {value!r}")
        return value


class MultipleChoiceConfig(BaseModel):
    """Location and scoring of the multiple choice component."""
    file: str = Field(description="Table of responses, with a Key row")
    answer_key: Optional[str] = Field(
        default=None,
        description="Separate answer key table with Question and Answer columns"
    )
    points_per_question: float = Field(default=1, description="Points per correct answer")
    adjustments: Dict[str, float] = Field(
        default_factory=dict,
        description='Per-question weight multipliers keyed by "Q <n>"'
    )


class CurveConfig(BaseModel):
    """Targets for computing a class curve."""
    min_mean: float = Field(description="The minimum permitted GPA mean")
    max_mean: float = Field(description="The maximum permitted GPA mean")
    target_mean: float = Field(description="The ideal GPA mean")
    target_sd: float = Field(gt=0, description="The ideal GPA standard deviation")
    min_grade: str = Field(description="The lowest letter grade awardable")
    actual: Optional[Dict[str, float]] = Field(
        default=None,
        description="Hand-chosen cutoffs mapping letter grades to minimum scores"
    )

    @field_validator('min_grade')
    @classmethod
    def check_min_grade(cls, value: str) -> str:
        if value not in GPA_MAP:
            raise ValueError(f"Unknown letter grade {value!r}")
        return value

    @model_validator(mode='after')
    def check_means(self) -> 'CurveConfig':
        if self.max_mean <= self.min_mean:
            raise ValueError("max_mean must exceed min_mean")
        if self.actual:
            unknown = [g for g in self.actual if g not in GPA_MAP]
            if unknown:
                raise ValueError(f"Unknown letter grades {', '.join(unknown)}")
        return self


def _expand_issue(value: Any) -> Any:
    if isinstance(value, str):
        return {'template': value}
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return {'max': value}
    return value


class RubricConfig(BaseModel):
    """Top-level rubric configuration, usually loaded from YAML."""
    meta: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")
    templates: Dict[str, str] = Field(default_factory=dict, description="Scoring templates by name")
    quality: Dict[str, str] = Field(
        default_factory=dict,
        description="Quality templates by name; each is scored as its own question"
    )
    translations: TranslationConfig = Field(default_factory=TranslationConfig)
    questions: Dict[str, Dict[str, IssueConfig]] = Field(
        description="Questions mapped to their issues"
    )
    multiple_choice: Optional[MultipleChoiceConfig] = None
    curve: Optional[CurveConfig] = None
    weights: Dict[str, float] = Field(default_factory=dict, description="Per-question weights")
    exam_glob: Optional[str] = Field(default=None, description="Glob for annotated exam files")

    @field_validator('questions', mode='before')
    @classmethod
    def expand_issue_shorthand(cls, questions: Any) -> Any:
        """A string issue names its template; a number gives its max."""
        if not isinstance(questions, dict):
            return questions
        return {
            qname: {iname: _expand_issue(v) for iname, v in (issues or {}).items()}
            if isinstance(issues, dict) or issues is None else issues
            for qname, issues in questions.items()
        }

    @model_validator(mode='after')
    def check_names(self) -> 'RubricConfig':
        seen = {}
        for qname, issues in self.questions.items():
            for iname, issue in issues.items():
                if iname in seen:
                    raise ValueError(
                        f"Issue {iname} appears in both {seen[iname]} and {qname}"
                    )
                seen[iname] = qname
                if issue.template is not None and issue.template not in self.templates:
                    raise ValueError(f"Issue {iname} uses unknown template {issue.template}")
        pseudo = list(self.quality)
        if self.multiple_choice is not None:
            pseudo.append(MULTIPLE_CHOICE)
        clashes = [name for name in pseudo if name in self.questions]
        if clashes:
            raise ValueError(f"Question names clash with scored components: {', '.join(clashes)}")
        unknown = [q for q in self.weights if q not in self.questions and q not in pseudo]
        if unknown:
            raise ValueError(f"Weights given for unknown questions: {', '.join(unknown)}")
        return self


class QuestionReport(BaseModel):
    """Points earned on one question of one exam."""
    base: float = Field(description="Mandatory points awarded, weighted")
    total: float = Field(description="Mandatory points available, weighted")
    extra: float = Field(default=0, description="Extra credit awarded, weighted")
    award: float = Field(description="min(base + extra, total)")


class ScoreReport(BaseModel):
    """Score breakdown for one exam paper."""
    exam_id: str
    questions: Dict[str, QuestionReport]
    total: float
    max_score: float

    def to_yaml_dict(self) -> dict:
        """Convert to dictionary suitable for YAML serialization."""
        return {
            'exam_id': self.exam_id,
            'questions': {
                name: q.model_dump() for name, q in self.questions.items()
            },
            'total': self.total,
            'max_score': self.max_score,
        }
