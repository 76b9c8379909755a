"""Loading rubrics and annotated exam papers from disk."""

import glob
import logging
import os
import re
from pathlib import Path
from typing import List, Union

from gradecurve.libs.config_loader import ConfigType, get_config, load_configs

from .errors import InputError
from .exam_paper import DEFAULT_MARKER, ExamPaper
from .flag_set import DEFAULT_RULESET, DEFAULT_VALID_FLAGS, FlagRuleset
from .models import RubricConfig
from .rubric import Rubric

LOG = logging.getLogger(__name__)

EXAM_ID_RE = re.compile(r'\d+')


def load_rubric_config(*paths: Union[str, Path]) -> RubricConfig:
    """Merge rubric YAML files in order and validate the result."""
    return RubricConfig.model_validate(load_configs(*paths))


def load_rubric(*paths: Union[str, Path]) -> Rubric:
    """Build a Rubric from one or more YAML files, merged in order.

    Files the rubric refers to (such as the multiple choice table) are
    resolved relative to the directory of the first file.
    """
    if not paths:
        raise ValueError("No rubric files given")
    missing = [str(p) for p in paths if not Path(p).is_file()]
    if missing:
        raise InputError(f"No rubric file {', '.join(missing)}")
    config = load_rubric_config(*paths)
    return Rubric(config, base_dir=Path(paths[0]).parent)


def ruleset_from_config(config: ConfigType) -> FlagRuleset:
    valid_flags = get_config('grading.valid_flags', config, default=DEFAULT_VALID_FLAGS)
    return FlagRuleset(valid_flags=valid_flags)


def exam_id_for(path: Union[str, Path]) -> str:
    """The exam ID of a file: the first run of digits in its name."""
    m = EXAM_ID_RE.search(Path(path).name)
    if not m:
        raise InputError(f"No exam ID in file name {path}")
    return m.group(0)


def load_exam_papers(pattern: str, base_dir: Union[str, Path] = '.',
                     marker: str = DEFAULT_MARKER,
                     ruleset: FlagRuleset = DEFAULT_RULESET) -> List[ExamPaper]:
    """Read every exam file matching a glob pattern, sorted by exam ID."""
    papers = {}
    for name in sorted(glob.glob(os.path.join(str(base_dir), pattern))):
        path = Path(name)
        if not path.is_file():
            continue
        exam_id = exam_id_for(path)
        if exam_id in papers:
            raise InputError(f"Duplicate exam ID {exam_id} in {path}")
        paper = ExamPaper(exam_id, ruleset)
        paper.read_file(path, marker=marker)
        papers[exam_id] = paper
    LOG.info("Read %d exam papers matching %s", len(papers), pattern)
    return [papers[exam_id] for exam_id in sorted(papers, key=lambda e: (len(e), e))]
