#!/usr/bin/env python3
"""CLI for scoring annotated exam papers and choosing a letter-grade curve."""

import logging
import re
from collections import Counter, defaultdict
from functools import cached_property
from pathlib import Path
from typing import List, Optional

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gradecurve.libs.config_loader import ConfigType, get_config, load_default_configs
from gradecurve.libs.grading import ExamAnalyzer, GradingError, IssueError
from gradecurve.libs.grading.curve import Curve
from gradecurve.libs.grading.exam_paper import DEFAULT_MARKER
from gradecurve.libs.grading.loader import load_exam_papers, load_rubric, ruleset_from_config
from gradecurve.libs.grading.multiple_choice import DEFAULT_MIN_COHORT

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
LOG = logging.getLogger(__name__)

console = Console()

# Flags reported separately when summarizing a single issue
SPECIAL_FLAGS = 'sbthHwWpPd'


def fmt(value) -> str:
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else f"{value:.2f}"
    return str(value)


def configure_logging(config: ConfigType, verbose: bool = False) -> None:
    """Apply the configured level and format to the root logger."""
    root = logging.getLogger()
    root.setLevel(
        logging.DEBUG if verbose else get_config('logging.level', config, default='INFO')
    )
    log_format = get_config('logging.format', config, default=None)
    if log_format:
        formatter = logging.Formatter(log_format)
        for handler in root.handlers:
            handler.setFormatter(formatter)


class ExamSession:
    """Lazily loaded rubric, exam papers and analyzer for one invocation."""

    def __init__(self, config: ConfigType, rubric_files: List[str],
                 exam_glob: Optional[str]):
        self.config = config
        self.rubric_files = rubric_files
        self._exam_glob = exam_glob

    @cached_property
    def rubric(self):
        return load_rubric(*self.rubric_files)

    @property
    def exam_glob(self) -> str:
        return (
            self._exam_glob
            or self.rubric.config.exam_glob
            or get_config('grading.exam_glob', self.config, default='exam-*.tex')
        )

    @cached_property
    def exams(self):
        return load_exam_papers(
            self.exam_glob,
            marker=get_config('grading.annotation_marker', self.config, default=DEFAULT_MARKER),
            ruleset=ruleset_from_config(self.config),
        )

    @cached_property
    def analyzer(self) -> ExamAnalyzer:
        return ExamAnalyzer(self.rubric, self.exams)


class ExamScoresGroup(click.Group):
    """Reports grading errors without a traceback."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except (GradingError, ValidationError) as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            ctx.exit(1)


@click.group(cls=ExamScoresGroup)
@click.option(
    '--rubric',
    '-r',
    'rubric_files',
    multiple=True,
    type=click.Path(path_type=Path),
    help='Rubric YAML file; repeat to merge several files in order'
)
@click.option(
    '--exams',
    '-e',
    'exam_glob',
    default=None,
    help='Glob matching the annotated exam files'
)
@click.option('--verbose', '-v', is_flag=True, help='Show debugging output')
@click.pass_context
def main(ctx, rubric_files, exam_glob, verbose):
    """
    Score annotated exam papers against a rubric and choose a grade curve.

    Example:
        exam-scores -r rubric.yaml -e 'exam-*.tex' scores
    """
    try:
        config = load_default_configs()
    except ValueError:
        LOG.warning("No default configuration found; using built-in defaults")
        config = {}
    configure_logging(config, verbose)
    if not rubric_files:
        rubric_files = [get_config('grading.rubric_file', config, default='rubric.yaml')]
    ctx.obj = ExamSession(config, [str(f) for f in rubric_files], exam_glob)


# Marking papers

@main.command()
@click.pass_obj
def check(session: ExamSession):
    """Check exam papers against the rubric, including X sub-issues."""
    problems = 0
    for paper in session.exams:
        try:
            session.rubric.check_exam(paper)
        except IssueError as e:
            problems += 1
            console.print(f"[yellow]{escape(str(e))}[/yellow]")
    if problems:
        console.print(f"[red]{problems} exam(s) need attention[/red]")
    else:
        console.print(f"[green]All {len(session.exams)} exams match the rubric[/green]")


@main.command()
@click.argument('pattern', required=False)
@click.pass_obj
def issues(session: ExamSession, pattern):
    """Summarize issue annotations, optionally only those matching PATTERN."""
    by_issue = defaultdict(list)
    for paper in session.exams:
        for flag_set in paper:
            by_issue[flag_set.issue].append(flag_set)

    if pattern:
        if pattern in by_issue:
            by_issue = {pattern: by_issue[pattern]}
        else:
            regex = re.compile(pattern)
            by_issue = {i: fs for i, fs in by_issue.items() if regex.search(i)}

    num_exams = len(session.exams)
    if not by_issue:
        console.print("[yellow]No matching issues found[/yellow]")
    elif len(by_issue) == 1:
        issue, flag_sets = next(iter(by_issue.items()))
        summarize_one_issue(issue, flag_sets, num_exams)
    else:
        table = Table(title="Issue Annotations")
        table.add_column("Issue", style="cyan")
        table.add_column("Exams", justify="right")
        for issue, flag_sets in sorted(by_issue.items(), key=lambda kv: -len(kv[1])):
            table.add_row(issue, f"{len(flag_sets)}/{num_exams}")
        console.print(table)


def summarize_one_issue(issue, flag_sets, num_exams):
    types = Counter(fs.type for fs in flag_sets)
    console.print(f"[bold]{issue}[/bold]: {len(flag_sets)}/{num_exams} exams")
    console.print("  " + ", ".join(f"{t} {c}" for t, c in sorted(types.items())))
    console.print("  " + ", ".join(
        f"{f} {sum(1 for fs in flag_sets if f in fs)}" for f in SPECIAL_FLAGS
    ))
    by_length = defaultdict(set)
    for fs in flag_sets:
        stripped = ''.join(f for f in str(fs) if f not in SPECIAL_FLAGS)
        by_length[len(stripped)].add(stripped)
    for length in sorted(by_length, reverse=True):
        console.print(f"{length:3d}: {', '.join(sorted(by_length[length]))}")


@main.command()
@click.pass_obj
def progress(session: ExamSession):
    """Show how many exams remain to be annotated."""
    exams = session.exams
    if not exams:
        console.print("[yellow]No exam papers found[/yellow]")
        return
    ungraded = [paper for paper in exams if len(paper) == 0]
    console.print(f"{len(ungraded)}/{len(exams)} exams remaining to grade")
    console.print(f"{100 - 100.0 * len(ungraded) / len(exams):.1f}% complete")
    if ungraded:
        console.print(f"Next exam: {ungraded[0].exam_id}")


@main.command()
@click.pass_obj
def rubric(session: ExamSession):
    """Summarize the point structure of the rubric."""
    click.echo(yaml.safe_dump(session.rubric.summary(), sort_keys=False))


# Analyzing scores

@main.command()
@click.pass_obj
def scores(session: ExamSession):
    """Table of question scores and totals for every exam."""
    analyzer = session.analyzer
    analyzer.score()
    names = session.rubric.question_names()
    curve = analyzer.opt_curve()

    table = Table(title="Exam Scores")
    table.add_column("Exam", style="cyan")
    for name in names:
        table.add_column(name, justify="right")
    table.add_column("TOTAL", justify="right", style="bold")
    if curve:
        table.add_column("Grade", justify="center", style="green")

    for paper in analyzer:
        questions = paper.score_data.question_scores()
        row = [str(paper.exam_id)] + [fmt(questions.get(n, 0)) for n in names]
        row.append(fmt(paper.score_data.total))
        if curve:
            row.append(curve.grade_for(paper.score_data.total))
        table.add_row(*row)
    console.print(table)


@main.command()
@click.argument('exam_id')
@click.pass_obj
def exam(session: ExamSession, exam_id):
    """Full score report of all issues for one exam."""
    paper = session.analyzer.paper(exam_id)
    rubric = session.rubric
    report = rubric.score_report(paper)
    explanation = rubric.explain(paper)

    for qname, question in rubric.questions.items():
        qreport = report.questions[qname]
        console.print(f"[bold]{qname}[/bold]: {fmt(qreport.award)}/{fmt(qreport.total)}")
        missed, pointless = [], []
        for issue in question:
            data = explanation[qname][issue.name]
            if data.note == 'not found':
                if issue.max != 0:
                    missed.append(issue.name)
                continue
            if issue.max == 0:
                pointless.append(issue.name)
                continue
            extra = ' (extra)' if issue.extra else ''
            console.print(f"  {issue.name}: {fmt(data.points)}/{fmt(issue.max)}{extra}")
            for line in data.note.splitlines():
                console.print(f"    {escape(line)}")
        if missed:
            console.print(f"  Missed: {', '.join(missed)}")
        if pointless:
            console.print(f"  No points: {', '.join(pointless)}")

    for name, qreport in report.questions.items():
        if name not in rubric.questions:
            console.print(f"[bold]{name}[/bold]: {fmt(qreport.award)}/{fmt(qreport.total)}")
    console.print(f"\n[bold]TOTAL[/bold]: {fmt(report.total)}/{fmt(report.max_score)}")


@main.command()
@click.argument('exam_ids', nargs=-1)
@click.pass_obj
def stats(session: ExamSession, exam_ids):
    """Summary statistics per question, and for any given exams."""
    analyzer = session.analyzer
    table = Table(title="Question Statistics")
    for column in ("Question", "Points", "Weight", "Mean", "SD", "Wt Mean", "Wt SD", "SD %"):
        table.add_column(column, justify="left" if column == "Question" else "right")
    for name, stat in analyzer.question_stats().items():
        table.add_row(
            name, fmt(stat.points), fmt(stat.weight), f"{stat.mean:.2f}",
            f"{stat.sd:.2f}", f"{stat.wt_mean:.2f}", f"{stat.wt_sd:.2f}",
            f"{stat.sd_pct:.1f}",
        )
    overall = analyzer.overall_stats
    table.add_row(
        "TOTAL", fmt(session.rubric.max_points), "", f"{overall.mean:.2f}",
        f"{overall.sd:.2f}", "", "", "", style="bold",
    )
    console.print(table)

    for exam_id in exam_ids:
        console.print(f"\n[bold]Exam ID {exam_id}:[/bold]")
        for name, stat in analyzer.stats_for(exam_id).items():
            console.print(
                f"{name:>12}: {stat.points:7.1f}/{fmt(stat.max):>4} ({stat.diff:+5.2f} SD)"
            )


@main.command()
@click.argument('pattern', required=False)
@click.pass_obj
def mc(session: ExamSession, pattern):
    """Item statistics for the multiple choice questions.

    PATTERN selects the baseline scores for correlations.
    """
    choice = session.rubric.multiple_choice
    if choice is None:
        raise click.ClickException("No multiple choice specified on the exam rubric")
    scores = session.analyzer.scores_for_pattern(pattern)
    min_cohort = get_config('grading.min_mc_cohort', session.config, default=DEFAULT_MIN_COHORT)
    result = choice.statistics(scores, min_cohort=min_cohort)

    table = Table(title="Multiple Choice")
    for column in ("Question", "Correct", "% Correct", "Point Biserial", "Discrimination", "Answers"):
        table.add_column(column, justify="left" if column in ("Question", "Answers") else "right")
    for qnum, item in result.questions.items():
        answers = "  ".join(
            f"{a or '-'}{'*' if a == item.correct else ':'} {n}"
            for a, n in item.answer_count.items()
        )
        disc = '' if item.discrimination_index is None else f"{item.discrimination_index:.3f}"
        table.add_row(
            qnum, item.correct, f"{item.frac_correct * 100:.1f}",
            f"{item.point_biserial:.3f}", disc, answers,
        )
    console.print(table)
    for bucket, qnums in result.summary.items():
        console.print(f"{bucket}: {', '.join(qnums)}")


@main.command('one-mc')
@click.argument('exam_id')
@click.pass_obj
def one_mc(session: ExamSession, exam_id):
    """Multiple choice answers for one exam, with the class fraction correct."""
    choice = session.rubric.multiple_choice
    if choice is None:
        raise click.ClickException("No multiple choice specified on the exam rubric")
    answers = choice.answers_for(exam_id)
    exam_ids = list(choice.responses)

    table = Table(title=f"Multiple Choice for Exam {exam_id}")
    for column in ("Question", "Answer", "Correct", "% Class Correct"):
        table.add_column(column, justify="right" if column.startswith('%') else "left")
    for qnum, correct in choice.key.items():
        given = answers.get(qnum) or '-'
        table.add_row(
            qnum, given, '' if given == correct else correct,
            f"{100.0 * choice.num_correct(qnum, exam_ids) / len(exam_ids):.1f}",
        )
    console.print(table)
    console.print(f"Score: {fmt(choice.score_for(exam_id))}/{fmt(choice.max_score())}")


@main.command()
@click.argument('pattern', required=False)
@click.pass_obj
def correlate(session: ExamSession, pattern):
    """Correlation of each issue with the scores selected by PATTERN.

    PATTERN is "<question re>/<issue re>"; by default exam totals are used.
    """
    table = Table(title="Issue Correlations")
    for column in ("Question", "Issue", "Points", "r"):
        table.add_column(column, justify="right" if column in ("Points", "r") else "left")
    for c in session.analyzer.issue_correlations(pattern):
        table.add_row(c.question, c.issue, fmt(c.points), f"{c.r:.3f}")
    console.print(table)


# Letter grades

def show_curve_info(name: str, curve: Curve):
    cutoffs = ', '.join(f"{g}: {fmt(c)}" for g, c in curve.cutoffs.items())
    console.print(f"[bold]{name}[/bold]: {{ {cutoffs} }}")
    for grade, data in curve.stats.items():
        if data is None:
            continue
        console.print(f"  {grade:<2}: {fmt(data.min):>5} - {fmt(data.max):>5} (n = {data.count})")
    metrics = curve.metrics
    console.print(f"GPA mean:   {curve.mean_gpa:.3f}")
    console.print(f"GPA sd:     {curve.stddev_gpa:.3f}")
    console.print(f"Dist score: {metrics.get('dist', 0):.4f}")
    console.print(f"Grp score:  {metrics.get('cluster', 0):.4f}")
    console.print(f"GPA score:  {metrics.get('mean', 0):.4f}")


@main.command()
@click.pass_obj
def normal(session: ExamSession):
    """Curve placing cutoffs by the target normal distribution."""
    spec = session.analyzer.curve_spec
    show_curve_info("Normal curve", spec.normal_curve())
    console.print("Ideal grade distribution:")
    for grade, count in spec.ideal_distribution().items():
        console.print(f"  {grade:<2}: {count:5.2f}")


@main.command()
@click.pass_obj
def curve(session: ExamSession):
    """Apply the rubric's actual curve and list each exam's grade."""
    analyzer = session.analyzer
    actual = analyzer.curve
    show_curve_info("Curve", actual)

    table = Table(title="Grades")
    table.add_column("Exam", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Grade", justify="center", style="green")
    for paper in analyzer:
        total = paper.score_data.total
        table.add_row(str(paper.exam_id), fmt(total), actual.grade_for(total))
    console.print(table)


@main.command('auto-curve')
@click.option('--top', '-n', default=10, show_default=True, help='Number of curves to show')
@click.pass_obj
def auto_curve(session: ExamSession, top):
    """Search every candidate curve and show the best ones."""
    spec = session.analyzer.curve_spec
    console.print(f"Considering {spec.candidate_count()} candidate curves")
    best = spec.best(top)

    table = Table(title="Best Curves")
    table.add_column("#", justify="right")
    for grade in spec.grades:
        table.add_column(grade, justify="right")
    for column in ("GPA Mean", "Mean", "Dist", "Cluster", "Metric"):
        table.add_column(column, justify="right")
    for rank, candidate in enumerate(best, start=1):
        cutoffs = candidate.cutoffs
        metrics = candidate.metrics
        table.add_row(
            str(rank),
            *[fmt(cutoffs[g]) for g in spec.grades],
            f"{candidate.mean_gpa:.3f}",
            f"{metrics['mean']:.4f}",
            f"{metrics['dist']:.4f}",
            f"{metrics['cluster']:.4f}",
            f"{candidate.metric:.4f}",
        )
    console.print(table)


@main.command()
@click.option('--dev', default=0.005, show_default=True, type=float,
              help='Fractional score change that would alter the grade')
@click.pass_obj
def outliers(session: ExamSession, dev):
    """Exams near a grade border, and exams with uneven question performance."""
    analyzer = session.analyzer

    table = Table(title="Close to Grade Border")
    for column in ("Exam", "Score", "Grade", "Possible"):
        table.add_column(column)
    for b in analyzer.borderline(dev):
        table.add_row(str(b.exam_id), fmt(b.score), b.grade, b.possible)
    console.print(table)

    table = Table(title="Major Differences in Questions")
    for column in ("Exam", "High Question", "High SD", "Low Question", "Low SD"):
        table.add_column(column)
    for o in analyzer.question_outliers():
        table.add_row(str(o.exam_id), o.hi_q, f"{o.hi_sd:+.2f}", o.lo_q, f"{o.lo_sd:+.2f}")
    console.print(table)


@main.command('try-weight')
@click.argument('question')
@click.argument('weight', type=float)
@click.pass_obj
def try_weight(session: ExamSession, question, weight):
    """Show how reweighting QUESTION to WEIGHT changes the rankings."""
    changes = session.analyzer.try_weight(question, weight)
    table = Table(title=f"{question} reweighted to {fmt(weight)}")
    for column in ("Exam", "Score", "Rank", "New Score", "New Rank", "Change"):
        table.add_column(column, justify="left" if column == "Exam" else "right")
    for c in changes:
        table.add_row(
            str(c.exam_id), fmt(c.orig_score), str(c.orig_rank),
            fmt(c.new_score), str(c.new_rank), f"{c.change:+d}",
        )
    console.print(table)


if __name__ == '__main__':
    main()
