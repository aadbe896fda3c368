from __future__ import annotations

"""Resolução do status de um batch para uma data de filtro.

Precedência das fontes de log:
    1. Log customizado (se configurado e existente) - analisado sozinho.
    2. Par log principal / log de erro.
    3. Descoberta automática na pasta do executável (sem filtro de data).

Dentro de uma fonte, a cadeia de prioridade é avaliada em ordem e para no
primeiro grupo não vazio (ver `PRIORITY_CHAIN`). O resultado nunca mistura
tipos de ocorrência para a mesma data.

O resolver nunca propaga exceções: qualquer falha vira status Error.
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from pathlib import Path

from log_analyzer import MAX_TAIL_LINES, analyze_log_file, as_date
from models import AnalysisResult, BatchKind, FileAnalysis, IssueKind, Job, JobStatus, LogIssue
from util import file_mtime


LOG_SUFFIXES = (".log", ".logs", ".txt")
LOG_NAME_INDICATORS = (
    "log", "error", "batch", "output", "trace",
    "debug", "info", "warn", "exception", "audit",
)

MAIN = "main"
ERROR_LOG = "error"


@dataclass(frozen=True, slots=True)
class PriorityStep:
    """Um passo da cadeia: (fonte, tipo de ocorrência) -> status."""

    source: str
    kind: IssueKind
    status: JobStatus
    label: str


PRIORITY_CHAIN: tuple[PriorityStep, ...] = (
    PriorityStep(ERROR_LOG, IssueKind.ERROR, JobStatus.ERROR, "Errors found in error log"),
    PriorityStep(MAIN, IssueKind.ERROR, JobStatus.ERROR, "Errors found in main log"),
    PriorityStep(MAIN, IssueKind.WARNING, JobStatus.WARNING, "Warnings found in main log"),
    PriorityStep(MAIN, IssueKind.INFO, JobStatus.SUCCESS, "Success entries found in main log"),
)


def is_likely_log_file(file_name: str) -> bool:
    lowered = file_name.lower()
    return lowered.endswith(LOG_SUFFIXES) and any(ind in lowered for ind in LOG_NAME_INDICATORS)


def discover_log_files(directory: str) -> list[str]:
    """Lista logs prováveis da pasta, do mais recente para o mais antigo."""
    if not directory or not os.path.isdir(directory):
        return []

    found: list[tuple[float, str]] = []
    for entry in sorted(Path(directory).iterdir()):
        if entry.is_file() and is_likely_log_file(entry.name):
            found.append((entry.stat().st_mtime, str(entry)))

    found.sort(key=lambda item: item[0], reverse=True)
    return [path for _mtime, path in found]


def daily_archive_path(log_path: str, today: date) -> str:
    """Nome do zip diário esperado para o dia anterior: `<log>_<yyyyMMdd>.zip`."""
    log_file = Path(log_path)
    yesterday = today - timedelta(days=1)
    return str(log_file.with_name(f"{log_file.stem}_{yesterday:%Y%m%d}.zip"))


def is_recently_updated(log_path: str, hours: float, now: datetime) -> bool:
    modified = file_mtime(log_path)
    if modified is None:
        return False
    return modified > now - timedelta(hours=hours)


def _existing(path: str) -> str | None:
    return path if path and os.path.isfile(path) else None


def _select(issues: list[LogIssue], kind: IssueKind, day: date | None) -> list[LogIssue]:
    return [
        issue
        for issue in issues
        if issue.kind is kind and (day is None or issue.timestamp.date() == day)
    ]


class DualSourceResolver:
    """Aplica a política de prioridade entre as fontes de log de um batch."""

    def __init__(
        self,
        *,
        max_lines: int = MAX_TAIL_LINES,
        recent_update_hours: float = 2.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.max_lines = max_lines
        self.recent_update_hours = recent_update_hours
        self._clock = clock

    def resolve(self, job: Job, filter_date: date | datetime | None) -> AnalysisResult:
        """Resolve status + ocorrências do batch para a data.

        Nunca levanta exceção: falhas inesperadas viram `JobStatus.ERROR`.
        """
        try:
            now = self._clock()
            result = self._resolve_sources(job, as_date(filter_date), now)
            if job.batch_kind is BatchKind.HOURLY and result.discovered_logs:
                result = self._annotate_hourly(result, now)
            return result
        except Exception as exc:
            logging.exception("RESOLVER - Falha ao analisar o batch %s", job.name)
            return AnalysisResult(
                status=JobStatus.ERROR,
                message=f"Error analyzing batch: {exc}",
            )

    def _resolve_sources(self, job: Job, day: date | None, now: datetime) -> AnalysisResult:
        custom = _existing(job.custom_log_path)
        if custom:
            result = self.resolve_pair(custom, None, day, now=now)
            return replace(result, discovered_logs=[custom])

        main = _existing(job.log_path)
        error = _existing(job.error_log_path)
        if main or error:
            result = self.resolve_pair(main, error, day, now=now)
            return replace(result, discovered_logs=[p for p in (main, error) if p])

        directory = os.path.dirname(job.executable_path) if job.executable_path else ""
        discovered = discover_log_files(directory)
        if discovered:
            result = self.resolve_pair(discovered[0], None, None, now=now, report_day=day)
            return replace(
                result,
                message=f"Auto-discovered: {result.message}",
                discovered_logs=discovered,
            )

        message = "No log files could be discovered for this batch"
        if day is not None:
            message += f"; no log entries for the specified date ({day:%Y-%m-%d})"
        return AnalysisResult(status=JobStatus.UNKNOWN, message=message)

    def resolve_pair(
        self,
        main_path: str | None,
        error_path: str | None,
        day: date | None,
        *,
        now: datetime | None = None,
        report_day: date | None = None,
    ) -> AnalysisResult:
        """Avalia a cadeia de prioridade sobre o par principal/erro.

        Cada arquivo é analisado no máximo uma vez e só quando algum passo
        precisa dele: se o log de erro tem erros na data, o principal não é lido.

        Args:
            main_path: Log principal (ou None).
            error_path: Log de erro (ou None).
            day: Data de filtro; None desativa o filtro.
            now: Referência de horário para linhas sem timestamp.
            report_day: Data citada na mensagem Unknown quando `day` é None
                (logs auto-descobertos são lidos sem filtro).
        """
        sources = {MAIN: main_path, ERROR_LOG: error_path}
        analyses: dict[str, FileAnalysis] = {}

        for step in PRIORITY_CHAIN:
            path = sources.get(step.source)
            if not path:
                continue
            if step.source not in analyses:
                analyses[step.source] = analyze_log_file(
                    path, day, max_lines=self.max_lines, now=now
                )
            analysis = analyses[step.source]

            matches = _select(analysis.issues, step.kind, day)
            if matches:
                if day is not None:
                    message = f"{step.label} for the specified date"
                else:
                    message = f"{step.label} ({os.path.basename(path)})"
                return AnalysisResult(
                    status=step.status,
                    message=message,
                    last_run=analysis.last_write,
                    issues=matches,
                )

        return self._no_entries(sources, analyses, day, report_day)

    @staticmethod
    def _no_entries(
        sources: dict[str, str | None],
        analyses: dict[str, FileAnalysis],
        day: date | None,
        report_day: date | None = None,
    ) -> AnalysisResult:
        mtimes = [m for m in (file_mtime(p) for p in sources.values() if p) if m is not None]
        last_run = max(mtimes, default=None)

        if day is not None:
            message = f"No log entries found for the specified date ({day:%Y-%m-%d})"
        else:
            names = ", ".join(os.path.basename(p) for p in sources.values() if p)
            message = f"No log entries found in {names}"
            if report_day is not None:
                message += f" for the specified date ({report_day:%Y-%m-%d})"

        read_errors = [a.message for a in analyses.values() if a.read_error]
        if read_errors:
            message = "; ".join([message, *read_errors])

        return AnalysisResult(status=JobStatus.UNKNOWN, message=message, last_run=last_run)

    def _annotate_hourly(self, result: AnalysisResult, now: datetime) -> AnalysisResult:
        """Anotações de batches horários (não alteram o status)."""
        primary = result.discovered_logs[0]
        message = result.message

        archive = daily_archive_path(primary, now.date())
        if os.path.isfile(archive):
            message += f" (Previous day archived: {os.path.basename(archive)})"
        if not is_recently_updated(primary, self.recent_update_hours, now):
            message += " (Log not recently updated)"

        return replace(result, message=message)
