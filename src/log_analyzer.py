from __future__ import annotations

"""Análise de um único arquivo de log.

Lê no máximo as últimas N linhas do arquivo (padrão 5000) e classifica cada
linha não vazia. Arquivos abaixo de 1 MiB são lidos de uma vez; acima disso o
arquivo é percorrido em streaming mantendo apenas a janela final, o que limita
memória e latência em logs que só crescem (batches horários).

Falhas de leitura não propagam: viram status Unknown com mensagem explicativa.
"""

import logging
import os
from collections import deque
from datetime import date, datetime

from classifier import classify_line
from models import FileAnalysis, IssueKind, JobStatus, LogIssue
from timestamps import extract_timestamp, strip_bracket_timestamp
from util import clean_text, decode_text, file_mtime, sniff_encoding


MAX_TAIL_LINES = 5000
SMALL_FILE_BYTES = 1024 * 1024
_SNIFF_BYTES = 64 * 1024

# Ordem de agregação: o primeiro tipo presente define o status do arquivo.
STATUS_BY_KIND: tuple[tuple[IssueKind, JobStatus], ...] = (
    (IssueKind.ERROR, JobStatus.ERROR),
    (IssueKind.WARNING, JobStatus.WARNING),
    (IssueKind.INFO, JobStatus.SUCCESS),
)


def as_date(value: date | datetime | None) -> date | None:
    """Normaliza datetime -> date (a comparação entre os dois não é permitida)."""
    if isinstance(value, datetime):
        return value.date()
    return value


def read_tail_lines(path: str, max_lines: int = MAX_TAIL_LINES) -> list[str]:
    """Lê as últimas `max_lines` linhas do arquivo.

    Raises:
        OSError: Se o arquivo não puder ser aberto/lido.
    """
    if os.path.getsize(path) < SMALL_FILE_BYTES:
        with open(path, "rb") as fh:
            lines = decode_text(fh.read()).split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return lines[-max_lines:]

    with open(path, "rb") as fh:
        encoding = sniff_encoding(fh.read(_SNIFF_BYTES))

    with open(path, encoding=encoding, errors="replace") as fh:
        window = deque((line.rstrip("\r\n") for line in fh), maxlen=max_lines)
    return [clean_text(line) for line in window]


def aggregate_status(issues: list[LogIssue]) -> JobStatus:
    """Error > Warning > Success (Info) > Unknown."""
    present = {issue.kind for issue in issues}
    for kind, status in STATUS_BY_KIND:
        if kind in present:
            return status
    return JobStatus.UNKNOWN


def _summary(file_name: str, issues: list[LogIssue]) -> str:
    if not issues:
        return f"No classified entries in {file_name}"
    counts = {kind: 0 for kind in IssueKind}
    for issue in issues:
        counts[issue.kind] += 1
    return (
        f"{counts[IssueKind.ERROR]} error(s), {counts[IssueKind.WARNING]} warning(s), "
        f"{counts[IssueKind.INFO]} info line(s) in {file_name}"
    )


def analyze_log_file(
    path: str,
    filter_date: date | datetime | None = None,
    *,
    max_lines: int = MAX_TAIL_LINES,
    now: datetime | None = None,
) -> FileAnalysis:
    """Classifica as linhas finais de um arquivo de log.

    Args:
        path: Caminho do log.
        filter_date: Quando informado, descarta linhas com data anterior.
        max_lines: Tamanho da janela final.
        now: Fallback de timestamp para linhas sem data (padrão: agora).

    Returns:
        `FileAnalysis` com as ocorrências em ordem crescente de linha.
    """
    file_name = os.path.basename(path)
    last_write = file_mtime(path)
    cutoff = as_date(filter_date)
    reference = now or datetime.now()

    try:
        lines = read_tail_lines(path, max_lines)
    except OSError as exc:
        logging.warning("ANALYZER - Falha ao ler %s: %s", path, exc)
        return FileAnalysis(
            path=path,
            status=JobStatus.UNKNOWN,
            message=f"Unable to read {file_name}: {exc}",
            last_write=last_write,
            read_error=str(exc),
        )

    if not lines:
        return FileAnalysis(path, JobStatus.UNKNOWN, "Log file is empty", last_write)

    issues: list[LogIssue] = []
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue

        timestamp = extract_timestamp(line, now=reference)
        if cutoff is not None and timestamp.date() < cutoff:
            continue

        kind = classify_line(line)
        if kind is None:
            continue

        issues.append(
            LogIssue(
                kind=kind,
                message=strip_bracket_timestamp(line),
                line_number=line_number,
                file_name=file_name,
                timestamp=timestamp,
            )
        )

    return FileAnalysis(
        path=path,
        status=aggregate_status(issues),
        message=_summary(file_name, issues),
        last_write=last_write,
        issues=issues,
    )
