"""Testes da extração de timestamps.

Valida:
    - Cada passo da cadeia de tentativas
    - Fallback para o horário atual (nunca levanta)
    - Remoção do prefixo `[timestamp]` das mensagens
"""

from datetime import datetime

import pytest

from timestamps import extract_timestamp, parse_generic, strip_bracket_timestamp


NOW = datetime(2030, 1, 2, 3, 4, 5)


def test_bracket_plain_layout():
    assert extract_timestamp("[2025-07-15 02:50:00] ERROR disk full", now=NOW) == datetime(
        2025, 7, 15, 2, 50, 0
    )


def test_bracket_with_milliseconds():
    ts = extract_timestamp("[2025-07-15 02:50:00,123] INFO ok", now=NOW)
    assert ts == datetime(2025, 7, 15, 2, 50, 0, 123000)


def test_bracket_generic_iso():
    assert extract_timestamp("[2025-07-15T08:00:00] started", now=NOW) == datetime(2025, 7, 15, 8, 0)


def test_prefix_with_milliseconds():
    ts = extract_timestamp("2024-03-01 12:00:01,500 worker finished", now=NOW)
    assert ts == datetime(2024, 3, 1, 12, 0, 1, 500000)


def test_prefix_plain_19_chars():
    ts = extract_timestamp("2024-01-01 10:00:00 Successfully completed", now=NOW)
    assert ts == datetime(2024, 1, 1, 10, 0, 0)


def test_word_pair_in_middle_of_line():
    ts = extract_timestamp("job=42 at 2024-05-06 07:08:09 failed", now=NOW)
    assert ts == datetime(2024, 5, 6, 7, 8, 9)


def test_single_word_date():
    ts = extract_timestamp("run of 2024/05/06, nothing else", now=NOW)
    assert ts == datetime(2024, 5, 6)


def test_time_only_uses_reference_day():
    ts = extract_timestamp("step done 14:30:00", now=NOW)
    assert ts == datetime(2030, 1, 2, 14, 30, 0)


@pytest.mark.parametrize(
    "line",
    [
        "no timestamp here at all",
        "",
        "[not a date] error",
        "x" * 40,
    ],
)
def test_unparseable_falls_back_to_now(line):
    assert extract_timestamp(line, now=NOW) == NOW


def test_fallback_without_reference_uses_wall_clock():
    before = datetime.now()
    ts = extract_timestamp("nothing parseable")
    after = datetime.now()
    assert before <= ts <= after


def test_parse_generic_rejects_words():
    assert parse_generic("ERROR") is None
    assert parse_generic("") is None


def test_strip_bracket_timestamp():
    assert strip_bracket_timestamp("[2025-07-15 02:50:00] ERROR disk full") == "ERROR disk full"
    # Colchete que não é data permanece.
    assert strip_bracket_timestamp("[ERROR] disk full") == "[ERROR] disk full"
    assert strip_bracket_timestamp("  plain line  ") == "plain line"
