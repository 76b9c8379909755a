"""Command line tool for scoring annotated exams and choosing a grade curve."""
