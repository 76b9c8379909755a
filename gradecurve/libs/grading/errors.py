"""Exception types raised while scoring exams and computing curves.

Input errors mean a rubric or exam file is malformed and must be fixed before
anything downstream is meaningful. Consistency errors are raised by checks run
after a bulk operation (scoring a paper, converting sub-issues) and usually
point at a rubric that does not account for the data it was given.
"""

from typing import Iterable, Optional


class GradingError(Exception):
    """Base class for all gradecurve errors."""


class InputError(GradingError, ValueError):
    """A structural problem with a rubric, exam file or answer table."""


class AnnotationError(InputError):
    """A malformed annotation line in an exam file."""

    def __init__(self, message: str, filename: Optional[str] = None,
                 line_no: Optional[int] = None):
        self.filename = filename
        self.line_no = line_no
        if filename is not None:
            where = f"{filename}:{line_no}" if line_no is not None else filename
            message = f"{where}: {message}"
        super().__init__(message)


class FlagError(InputError):
    """A flag set that fails validation."""


class TemplateError(InputError):
    """An invalid scoring or quality template, or a flag it cannot score."""


class ConversionError(InputError):
    """A flag set that cannot be converted to the requested answer type."""


class CurveError(InputError):
    """An invalid curve specification or cutoff map."""


class MultipleChoiceError(InputError):
    """A malformed multiple choice table or a missing response."""


class IssueError(InputError):
    """An exam paper whose issues do not line up with the rubric."""

    def __init__(self, exam_id, issue: str, reason: str = '',
                 missing: Iterable[str] = (), extraneous: Iterable[str] = ()):
        self.exam_id = exam_id
        self.issue = issue
        self.reason = reason
        self.missing = sorted(missing)
        self.extraneous = sorted(extraneous)
        parts = [reason] if reason else []
        if self.missing:
            parts.append(f"missing sub-issues {', '.join(self.missing)}")
        if self.extraneous:
            parts.append(f"extraneous sub-issues {', '.join(self.extraneous)}")
        super().__init__(f"{exam_id}/{issue}: {'; '.join(parts)}")


class ConsistencyError(GradingError):
    """A post-scoring consistency check failed."""
