from __future__ import annotations

"""Controller Qt do monitor de batches.

Este módulo implementa a camada de controle entre o painel e os serviços:
    - CRUD de batches via `JobStore`
    - Passagens de status (manual e auto-refresh via `QTimer`)
    - Agendamento das tarefas no Windows Task Scheduler
    - Emissão de sinais para a interface (resultados, status, relatório)

Observações:
    - O controller é resiliente: falhas de análise/agendamento/DB nunca
      escapam para o event loop; viram `status_text` + evento persistido.
    - As passagens rodam em threads de trabalho; a conclusão volta para a
      thread do controller por um sinal interno (conexão enfileirada).
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, time as dt_time

from PySide6 import QtCore

from db import JobStore
from models import AnalysisResult, Job, JobStatus
from orchestrator import StatusOrchestrator, StatusPass
from report import build_report_subject, build_text_report
from scheduler import ScheduleController, SchedulerError
from util import MonitorSettings, job_log_text, read_text_file


class MonitorController(QtCore.QObject):
    """Orquestra as operações do painel.

    Expõe sinais para a interface e métodos para:
        - Gerenciar batches
        - Disparar passagens de status
        - Gerenciar o agendamento das tarefas
        - Ler logs e arquivos de configuração
    """

    job_result_ready = QtCore.Signal(str, object)  # nome, AnalysisResult
    pass_finished = QtCore.Signal(object)          # dict[str, AnalysisResult]
    status_text = QtCore.Signal(str)               # status curto para a UI
    jobs_changed = QtCore.Signal()                 # avisar para recarregar lista
    report_ready = QtCore.Signal(str)              # texto do relatório (se houver)

    _pass_done = QtCore.Signal(object)             # StatusPass (uso interno)

    def __init__(
        self,
        db_path: str | None = None,
        parent: QtCore.QObject | None = None,
        *,
        settings: MonitorSettings | None = None,
        store: JobStore | None = None,
        scheduler: ScheduleController | None = None,
        orchestrator: StatusOrchestrator | None = None,
    ) -> None:
        """Inicializa controller, DB, agendador, orquestrador e timer.

        Args:
            db_path: Caminho do SQLite (opcional). Se None, usa o das configurações.
            parent: QObject pai (Qt).
            settings: Configurações (padrão: variáveis de ambiente).
            store / scheduler / orchestrator: Dependências injetáveis.
        """
        super().__init__(parent)
        self.settings = settings or MonitorSettings.from_env()
        self.store = store or JobStore(db_path or self.settings.db_path)
        self.scheduler = scheduler or ScheduleController.from_settings(self.settings)
        self.orchestrator = orchestrator or StatusOrchestrator.from_settings(self.settings, self.scheduler)

        self.filter_date: date = date.today()
        self.last_results: dict[str, AnalysisResult] = {}
        self._active_pass: StatusPass | None = None

        self._refresh_timer = QtCore.QTimer(self)
        self._refresh_timer.setInterval(int(self.settings.refresh_interval_seconds * 1000))
        self._refresh_timer.timeout.connect(self._on_refresh_tick)

        self._pass_done.connect(self._on_pass_done)

    # -------------------- Batches (CRUD) --------------------
    def list_jobs(self) -> list[Job]:
        return self.store.list_jobs()

    def save_job(self, job: Job) -> int | None:
        """Cria ou atualiza um batch.

        Returns:
            Id do batch, ou None se a gravação falhou (nome duplicado/vazio).
        """
        try:
            if job.id is None:
                job_id = self.store.add_job(job)
            else:
                self.store.update_job(job)
                job_id = int(job.id)
        except ValueError as exc:
            self.status_text.emit(str(exc))
            return None
        self.jobs_changed.emit()
        return job_id

    def delete_job(self, job_id: int) -> bool:
        """Exclui um batch; a tarefa agendada (se houver) é removida antes."""
        job = self.store.get_job(job_id)
        if job is None:
            return False

        if self.scheduler.task_exists(job.name):
            if not self.unschedule_job(job.name):
                return False

        self.store.delete_job(job_id)
        self._append_event(f"Batch removido: {job.name}")
        self.jobs_changed.emit()
        return True

    def import_jobs(self, jobs: list[Job]) -> int:
        """Cadastra os batches importados, ignorando nomes já existentes."""
        added = 0
        for job in jobs:
            try:
                self.store.add_job(job)
                added += 1
            except ValueError as exc:
                logging.warning("CONTROLLER - Import ignorado: %s", exc)
        if added:
            self.jobs_changed.emit()
        self.status_text.emit(f"{added} batch(es) imported")
        return added

    # -------------------- Passagens --------------------
    def is_refreshing(self) -> bool:
        return self._active_pass is not None

    def refresh(self, filter_date: date | datetime | None = None) -> StatusPass | None:
        """Dispara uma passagem em segundo plano.

        Não faz nada (retorna None) enquanto outra passagem estiver em andamento.
        """
        if self._active_pass is not None:
            return None
        if filter_date is not None:
            self.filter_date = filter_date.date() if isinstance(filter_date, datetime) else filter_date

        jobs = self.store.list_jobs()
        self.status_text.emit(f"Checking {len(jobs)} batch(es)...")
        self._active_pass = self.orchestrator.start(
            jobs,
            self.filter_date,
            on_result=self.job_result_ready.emit,
            on_finished=self._pass_done.emit,
        )
        return self._active_pass

    def refresh_blocking(self, filter_date: date | datetime | None = None) -> dict[str, AnalysisResult]:
        """Executa uma passagem na thread atual e emite os sinais ao final."""
        if filter_date is not None:
            self.filter_date = filter_date.date() if isinstance(filter_date, datetime) else filter_date

        results = self.orchestrator.run(self.store.list_jobs(), self.filter_date)
        for name, result in results.items():
            self.job_result_ready.emit(name, result)
        self._finish(results)
        return results

    def _on_pass_done(self, status_pass: StatusPass) -> None:
        """Slot na thread do controller: consolida a passagem em segundo plano."""
        self._active_pass = None
        self._finish(status_pass.results())

    def _finish(self, results: dict[str, AnalysisResult]) -> None:
        self.last_results = results
        failed = sum(1 for r in results.values() if r.status is JobStatus.ERROR)
        summary = f"Status check finished: {len(results)} batch(es), {failed} with errors"
        self._append_event(summary, stream="analysis")
        self.status_text.emit(summary)
        self.pass_finished.emit(results)

        report = build_text_report(results, self.filter_date)
        if report:
            self.report_ready.emit(f"{build_report_subject(self.filter_date)}\n\n{report}")

    # -------------------- Auto-refresh --------------------
    def set_auto_refresh(self, enabled: bool) -> None:
        if enabled and not self._refresh_timer.isActive():
            self._refresh_timer.start()
            self.status_text.emit("Auto-refresh: on")
        elif not enabled and self._refresh_timer.isActive():
            self._refresh_timer.stop()
            self.status_text.emit("Auto-refresh: off")

    def is_auto_refresh_enabled(self) -> bool:
        return self._refresh_timer.isActive()

    def _on_refresh_tick(self) -> None:
        """Tick do auto-refresh (chamado pelo QTimer)."""
        try:
            self.refresh()
        except Exception as exc:
            logging.exception("CONTROLLER - Falha no auto-refresh")
            self._append_event(f"Erro no auto-refresh: {exc}")

    # -------------------- Agendamento --------------------
    def schedule_job(self, name: str, start_time: dt_time | str) -> bool:
        """Agenda (ou reagenda do zero) a tarefa do batch."""
        job = self.store.get_job_by_name(name)
        if job is None:
            self.status_text.emit(f"Batch not found: {name}")
            return False
        return self._scheduler_call(
            job,
            lambda: self.scheduler.schedule_job(job, start_time),
            f"Task scheduled successfully for '{job.name}'",
        )

    def reschedule_job(self, name: str, start_time: dt_time | str) -> bool:
        job = self.store.get_job_by_name(name)
        if job is None:
            self.status_text.emit(f"Batch not found: {name}")
            return False
        return self._scheduler_call(
            job,
            lambda: self.scheduler.update_schedule(job.name, start_time),
            f"Schedule updated for '{job.name}'",
        )

    def unschedule_job(self, name: str) -> bool:
        job = self.store.get_job_by_name(name)
        if job is None:
            self.status_text.emit(f"Batch not found: {name}")
            return False
        return self._scheduler_call(
            job,
            lambda: self.scheduler.delete_schedule(job.name),
            f"Schedule removed for '{job.name}'",
        )

    def _scheduler_call(self, job: Job, call: Callable[[], object], success_message: str) -> bool:
        try:
            call()
        except (ValueError, SchedulerError) as exc:
            self._append_event(str(exc), stream="scheduler", job_id=job.id)
            self.status_text.emit(str(exc))
            return False
        self._append_event(success_message, stream="scheduler", job_id=job.id)
        self.status_text.emit(success_message)
        return True

    # -------------------- Visualização --------------------
    def read_log(self, name: str, *, error: bool = False) -> str:
        job = self.store.get_job_by_name(name)
        if job is None:
            return f"Batch not found: {name}"
        return job_log_text(job, error=error)

    def read_config(self, name: str) -> str:
        job = self.store.get_job_by_name(name)
        if job is None:
            return f"Batch not found: {name}"
        return read_text_file(job.config_path, "Config file not found.")

    def list_events_text(self, limit: int = 500) -> list[str]:
        """Lista eventos como strings prontas para exibição (ordem cronológica)."""
        entries = list(reversed(self.store.list_events(limit=limit)))
        return [f"{e.ts_iso} [{e.stream}] {e.message}" for e in entries]

    def _append_event(self, message: str, *, stream: str = "log", job_id: int | None = None) -> None:
        """Persiste (quando possível) um evento operacional."""
        logging.info("CONTROLLER - %s", message)
        try:
            self.store.append_event(message=message, stream=stream, job_id=job_id)
        except Exception:
            # não deixa a UI quebrar por falha no DB
            logging.exception("CONTROLLER - Falha ao gravar evento")
