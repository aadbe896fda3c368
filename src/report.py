from __future__ import annotations

"""Relatórios de uma passagem de status (texto e HTML).

Entrada: resultados por nome de batch, como devolvidos por
`StatusOrchestrator.run`. O envio (e-mail, mensageria) fica fora do projeto;
aqui só o conteúdo é montado.
"""

import html
from collections.abc import Mapping
from datetime import date, datetime

from log_analyzer import as_date
from models import AnalysisResult, JobStatus


_STATUS_CLASS = {
    JobStatus.SUCCESS: "status-success",
    JobStatus.ERROR: "status-failed",
    JobStatus.WARNING: "status-warning",
    JobStatus.RUNNING: "status-running",
}

_STYLE = """
body { font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }
.container { max-width: 800px; margin: 0 auto; background-color: white; border: 1px solid #ddd; }
.header { background-color: #4a5568; color: white; padding: 20px; text-align: center; }
.header h1 { margin: 0; font-size: 24px; }
.summary-grid { display: table; width: 100%; }
.summary-item { display: table-cell; text-align: center; padding: 15px; border: 1px solid #dee2e6; }
.summary-number { font-size: 32px; font-weight: bold; }
.batch-item { border: 1px solid #ddd; margin: 15px 20px; }
.batch-header { padding: 12px 15px; font-weight: bold; color: white; background-color: #6c757d; }
.status-success { background-color: #28a745; }
.status-failed { background-color: #dc3545; }
.status-warning { background-color: #fd7e14; }
.status-running { background-color: #ffc107; color: #000; }
.batch-details { padding: 15px; background-color: #fafafa; }
.issue-item { background-color: #fff3cd; border: 1px solid #ffeaa7; padding: 8px 12px; margin: 5px 0; }
.footer { padding: 15px; text-align: center; color: #666; font-size: 12px; }
"""


def _day(filter_date: date | datetime | None) -> date:
    return as_date(filter_date) or date.today()


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "N/A"


def count_by_status(results: Mapping[str, AnalysisResult]) -> dict[JobStatus, int]:
    counts = {status: 0 for status in JobStatus}
    for result in results.values():
        counts[result.status] += 1
    return counts


def build_report_subject(filter_date: date | datetime | None) -> str:
    return f"BatchMonitor Report - {_day(filter_date):%Y-%m-%d}"


def build_text_report(
    results: Mapping[str, AnalysisResult],
    filter_date: date | datetime | None,
) -> str:
    """Resumo em texto puro para notificação.

    - Algum batch com Error: seção de batches com falha e suas ocorrências.
    - Todos Success: mensagem curta de sucesso.
    - Caso contrário: string vazia (nada a notificar).
    """
    day = _day(filter_date)
    failed = {name: r for name, r in results.items() if r.status is JobStatus.ERROR}

    lines: list[str] = []
    if failed:
        lines.append(f"Failed Batches Report - {day:%Y-%m-%d}")
        lines.append(f"Total Failed: {len(failed)}")
        lines.append("")
        for name, result in failed.items():
            lines.append(f"Batch: {name}")
            lines.append(f"Status: {result.status.value}")
            if result.message:
                lines.append(f"Message: {result.message}")
            if result.issues:
                lines.append(f"Issues ({len(result.issues)}):")
                for issue in result.issues:
                    lines.append(f"- {issue.kind.value}: {issue.message}")
                    lines.append(f"  File: {issue.file_name}, Line: {issue.line_number}")
            lines.append("")
        return "\n".join(lines)

    if results and all(r.status is JobStatus.SUCCESS for r in results.values()):
        lines.append(f"Batch Status Report - {day:%Y-%m-%d}")
        lines.append("All batches running successfully!")
        lines.append(f"Total Batches: {len(results)}")
        return "\n".join(lines)

    return ""


def build_html_report(
    results: Mapping[str, AnalysisResult],
    filter_date: date | datetime | None,
) -> str:
    """Relatório HTML completo (totais + um bloco por batch)."""
    day = _day(filter_date)
    counts = count_by_status(results)
    totals = (
        ("Total", len(results)),
        ("Success", counts[JobStatus.SUCCESS]),
        ("Failed", counts[JobStatus.ERROR]),
        ("Running", counts[JobStatus.RUNNING]),
    )

    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        "<meta charset='utf-8'>",
        f"<title>{html.escape(build_report_subject(day))}</title>",
        f"<style>{_STYLE}</style>",
        "</head>",
        "<body>",
        "<div class='container'>",
        "<div class='header'>",
        "<h1>Batch Monitor Report</h1>",
        f"<div class='date'>{day:%Y-%m-%d}</div>",
        "</div>",
        "<div class='summary-grid'>",
    ]
    for label, number in totals:
        parts.append(
            f"<div class='summary-item'><div class='summary-number'>{number}</div>"
            f"<div class='summary-label'>{label}</div></div>"
        )
    parts.append("</div>")

    for name, result in results.items():
        parts.extend(_batch_block(name, result))

    parts.extend(
        [
            f"<div class='footer'>Generated {datetime.now():%Y-%m-%d %H:%M:%S}</div>",
            "</div>",
            "</body>",
            "</html>",
        ]
    )
    return "\n".join(parts)


def _batch_block(name: str, result: AnalysisResult) -> list[str]:
    status_class = _STATUS_CLASS.get(result.status, "status-unknown")
    next_run = result.schedule.next_run if result.schedule else None

    block = [
        "<div class='batch-item'>",
        f"<div class='batch-header {status_class}'>"
        f"{html.escape(name)} - {result.status.value.upper()}</div>",
        "<div class='batch-details'>",
        f"<div class='detail-row'><b>Last Run:</b> {_fmt(result.last_run)}</div>",
        f"<div class='detail-row'><b>Next Run:</b> {_fmt(next_run)}</div>",
        f"<div class='detail-row'><b>Issues:</b> {len(result.issues)}</div>",
    ]
    for issue in result.issues:
        block.append(
            f"<div class='issue-item'>{html.escape(issue.kind.value)}: "
            f"{html.escape(issue.message)} "
            f"({html.escape(issue.file_name)}, line {issue.line_number})</div>"
        )
    if result.message:
        block.append(f"<div class='detail-row'><b>Message:</b> {html.escape(result.message)}</div>")
    block.extend(["</div>", "</div>"])
    return block
