"""Testes da classificação de linhas por palavras-chave."""

import pytest

from classifier import CLASSIFICATION_RULES, ClassificationRule, classify_line
from models import IssueKind


@pytest.mark.parametrize(
    "line, expected",
    [
        ("2024-01-01 10:00:00 ERROR disk full", IssueKind.ERROR),
        ("[error] something", IssueKind.ERROR),
        ("Job FAILED after retry", IssueKind.ERROR),
        ("fatal: cannot continue", IssueKind.ERROR),
        ("Access is denied.", IssueKind.ERROR),
        ("[WARN] low disk", IssueKind.WARNING),
        ("Unhandled Exception in module", IssueKind.WARNING),
        ("caution: slow", IssueKind.WARNING),
        ("[INFO] starting", IssueKind.INFO),
        ("Successfully completed", IssueKind.INFO),
        ("worker finished", IssueKind.INFO),
        ("just a line", None),
    ],
)
def test_classify_line(line, expected):
    assert classify_line(line) is expected


def test_blank_lines_are_ignored():
    assert classify_line("") is None
    assert classify_line("   \t ") is None


@pytest.mark.parametrize(
    "line",
    [
        "completed with error",
        "warning: step failed",
        "INFO exception raised, critical",
        "started ... finished ... fatal",
    ],
)
def test_error_keywords_win_regardless_of_position(line):
    assert classify_line(line) is IssueKind.ERROR


def test_warning_beats_info():
    assert classify_line("completed with warnings") is IssueKind.WARNING


def test_rules_are_ordered_by_priority():
    assert [r.kind for r in CLASSIFICATION_RULES] == [
        IssueKind.ERROR,
        IssueKind.WARNING,
        IssueKind.INFO,
    ]


def test_custom_rules():
    rules = (ClassificationRule(IssueKind.WARNING, ("slow",)),)
    assert classify_line("query was SLOW", rules) is IssueKind.WARNING
    assert classify_line("error", rules) is None
