from __future__ import annotations

"""Passagens de status do monitor.

Este módulo contém a lógica que, para um conjunto de batches e uma data de
filtro, executa o resolver de logs e a consulta ao agendador de cada batch
em paralelo e consolida um `AnalysisResult` por batch.

Regras:
    - No máximo N análises simultâneas (portão de admissão com semáforo;
      pedidos excedentes apenas aguardam uma vaga).
    - Sem ordem garantida entre batches; dentro de um batch tudo é sequencial.
    - Falhas de um batch ficam no resultado daquele batch e nunca abortam a
      passagem.
    - Sem cancelamento/timeout: um PowerShell travado ocupa a vaga.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import date, datetime

from log_analyzer import as_date
from models import AnalysisResult, Job, JobStatus, ScheduleInfo
from resolver import DualSourceResolver
from scheduler import ScheduleController
from util import MonitorSettings


DEFAULT_MAX_CONCURRENCY = 4
_MAX_THREADS = 64

ResultCallback = Callable[[str, AnalysisResult], None]


def merge_schedule(result: AnalysisResult, schedule: ScheduleInfo) -> AnalysisResult:
    """Anexa o estado do agendador ao resultado da análise de logs.

    Uma tarefa em execução só vira `Running` quando os logs ainda não têm
    nenhuma entrada para a data (status Unknown).
    """
    merged = replace(result, schedule=schedule)
    if schedule.is_running and result.status is JobStatus.UNKNOWN:
        merged = replace(
            merged,
            status=JobStatus.RUNNING,
            message="Task is currently running",
        )
    return merged


class StatusPass:
    """Passagem disparada por `StatusOrchestrator.start`.

    Expõe o sinal de conclusão (`done`/`wait`) e os resultados por batch.
    """

    def __init__(self, filter_date: date | None, futures: dict[str, Future]) -> None:
        self.filter_date = filter_date
        self._futures = futures

    @property
    def job_names(self) -> list[str]:
        return list(self._futures)

    def done(self) -> bool:
        return all(f.done() for f in self._futures.values())

    def wait(self, timeout: float | None = None) -> bool:
        """Bloqueia até todos os batches terminarem (ou até o timeout)."""
        _done, pending = wait(list(self._futures.values()), timeout=timeout)
        return not pending

    def results(self, timeout: float | None = None) -> dict[str, AnalysisResult]:
        """Resultados na ordem dos batches; aguarda a conclusão."""
        if not self.wait(timeout):
            raise TimeoutError("Status pass did not finish in time")
        return {name: f.result() for name, f in self._futures.items()}


class StatusOrchestrator:
    """Executa resolver + consulta ao agendador por batch, com limite de concorrência.

    Args:
        resolver: Resolver de logs.
        scheduler: Controller do agendador (somente consultas são usadas).
        gate: Semáforo de admissão compartilhado; se None, cria um com
            `max_concurrency` vagas.
        max_concurrency: Tamanho do portão quando `gate` não é informado.
    """

    def __init__(
        self,
        resolver: DualSourceResolver,
        scheduler: ScheduleController,
        *,
        gate: threading.Semaphore | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        if gate is None and max_concurrency < 1:
            raise ValueError("max_concurrency deve ser >= 1")
        self.resolver = resolver
        self.scheduler = scheduler
        self.gate = gate if gate is not None else threading.BoundedSemaphore(max_concurrency)

    @classmethod
    def from_settings(cls, settings: MonitorSettings, scheduler: ScheduleController) -> "StatusOrchestrator":
        resolver = DualSourceResolver(
            max_lines=settings.tail_lines,
            recent_update_hours=settings.recent_update_hours,
        )
        return cls(resolver, scheduler, max_concurrency=settings.max_concurrency)

    def analyze_job(self, job: Job, filter_date: date | datetime | None) -> AnalysisResult:
        """Analisa um batch ocupando uma vaga do portão."""
        with self.gate:
            try:
                result = self.resolver.resolve(job, filter_date)
                schedule = self.scheduler.get_schedule_info(job.name)
                return merge_schedule(result, schedule)
            except Exception as exc:
                logging.exception("ORCHESTRATOR - Falha inesperada no batch %s", job.name)
                return AnalysisResult(
                    status=JobStatus.ERROR,
                    message=f"Error analyzing batch: {exc}",
                )

    def start(
        self,
        jobs: Iterable[Job],
        filter_date: date | datetime | None,
        *,
        on_result: ResultCallback | None = None,
        on_finished: Callable[[StatusPass], None] | None = None,
    ) -> StatusPass:
        """Dispara uma passagem sem bloquear.

        Args:
            jobs: Batches a analisar.
            filter_date: Data de filtro.
            on_result: Chamado (na thread de trabalho) a cada batch concluído.
            on_finished: Chamado uma vez, após todos os batches concluírem.

        Returns:
            `StatusPass` com o sinal de conclusão.
        """
        job_list = list(jobs)
        day = as_date(filter_date)
        logging.info("ORCHESTRATOR - Iniciando passagem: %d batches (%s)", len(job_list), day)

        executor = ThreadPoolExecutor(
            max_workers=max(1, min(len(job_list), _MAX_THREADS)),
            thread_name_prefix="batchmon",
        )
        futures: dict[str, Future] = {
            job.name: executor.submit(self.analyze_job, job, day) for job in job_list
        }
        executor.shutdown(wait=False)

        status_pass = StatusPass(day, futures)
        if on_result is None and on_finished is None:
            return status_pass

        # on_finished só dispara depois do último on_result ter retornado.
        remaining = [len(futures)]
        lock = threading.Lock()

        def job_done(future: Future, name: str) -> None:
            try:
                if on_result is not None:
                    on_result(name, future.result())
            finally:
                with lock:
                    remaining[0] -= 1
                    last = remaining[0] == 0
                if last and on_finished is not None:
                    self._notify_finished(status_pass, on_finished)

        if not futures and on_finished is not None:
            self._notify_finished(status_pass, on_finished)
        for name, future in futures.items():
            future.add_done_callback(lambda f, name=name: job_done(f, name))
        return status_pass

    @staticmethod
    def _notify_finished(status_pass: StatusPass, on_finished: Callable[[StatusPass], None]) -> None:
        """Entrega a conclusão numa thread própria (nunca na thread de quem chamou `start`)."""

        def deliver() -> None:
            status_pass.wait()
            logging.info("ORCHESTRATOR - Passagem concluída (%s)", status_pass.filter_date)
            on_finished(status_pass)

        threading.Thread(target=deliver, name="batchmon-pass-finished", daemon=True).start()

    def run(
        self,
        jobs: Iterable[Job],
        filter_date: date | datetime | None,
        *,
        on_result: ResultCallback | None = None,
    ) -> dict[str, AnalysisResult]:
        """Executa uma passagem completa e retorna os resultados por nome."""
        return self.start(jobs, filter_date, on_result=on_result).results()
