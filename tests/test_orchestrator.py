"""Testes do orquestrador de passagens de status.

Valida:
    - Limite de análises simultâneas (portão com semáforo injetado)
    - Sinal de conclusão e callbacks por batch
    - Estado do agendador anexado ao resultado (e override Running)
    - Falha de um batch não derruba a passagem
"""

import threading
import time
from datetime import date

import pytest

from models import AnalysisResult, Job, JobStatus, ScheduleInfo
from orchestrator import StatusOrchestrator, merge_schedule
from scheduler import ScheduleController


DAY = date(2025, 7, 15)


class SlowResolver:
    """Resolver falso que mede a concorrência máxima observada."""

    def __init__(self, delay=0.05, status=JobStatus.SUCCESS):
        self.delay = delay
        self.status = status
        self.active = 0
        self.peak = 0
        self.lock = threading.Lock()
        self.days = []

    def resolve(self, job, filter_date):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.days.append(filter_date)
        time.sleep(self.delay)
        with self.lock:
            self.active -= 1
        if job.name == "boom":
            raise RuntimeError("unexpected")
        return AnalysisResult(self.status, f"resolved {job.name}")


def jobs(count):
    return [Job(id=n, name=f"job{n}") for n in range(count)]


@pytest.fixture
def controller(fake_backend):
    return ScheduleController(fake_backend, verify_delay=0)


@pytest.mark.parametrize("limit", [1, 2, 4])
def test_gate_bounds_concurrency(controller, limit):
    resolver = SlowResolver()
    orchestrator = StatusOrchestrator(resolver, controller, gate=threading.Semaphore(limit))

    results = orchestrator.run(jobs(10), DAY)

    assert len(results) == 10
    assert 1 <= resolver.peak <= limit


def test_default_gate_is_four(controller):
    resolver = SlowResolver()
    orchestrator = StatusOrchestrator(resolver, controller)

    orchestrator.run(jobs(12), DAY)

    assert resolver.peak <= 4


def test_invalid_concurrency(controller):
    with pytest.raises(ValueError):
        StatusOrchestrator(SlowResolver(), controller, max_concurrency=0)


def test_start_signals_completion_and_reports_each_job(controller):
    resolver = SlowResolver(delay=0.01)
    orchestrator = StatusOrchestrator(resolver, controller)
    seen = []
    finished = threading.Event()
    received = []

    def on_finished(status_pass):
        received.append(status_pass)
        finished.set()

    status_pass = orchestrator.start(
        jobs(5), DAY, on_result=lambda name, result: seen.append(name), on_finished=on_finished
    )

    assert status_pass.wait(timeout=5)
    assert finished.wait(timeout=5)
    assert status_pass.done()
    assert sorted(seen) == [f"job{n}" for n in range(5)]
    assert received == [status_pass]
    assert list(status_pass.results()) == [f"job{n}" for n in range(5)]


def test_finished_waits_for_slow_result_callback(controller):
    orchestrator = StatusOrchestrator(SlowResolver(delay=0.2), controller)
    events = []
    finished = threading.Event()

    def on_result(name, _result):
        time.sleep(0.3)
        events.append(("result", name))

    def on_finished(_status_pass):
        events.append(("finished",))
        finished.set()

    orchestrator.start([Job(id=1, name="a")], DAY, on_result=on_result, on_finished=on_finished)

    assert finished.wait(timeout=5)
    assert events == [("result", "a"), ("finished",)]


def test_empty_pass_finishes_immediately(controller):
    orchestrator = StatusOrchestrator(SlowResolver(), controller)
    finished = threading.Event()

    status_pass = orchestrator.start([], DAY, on_finished=lambda _p: finished.set())

    assert status_pass.done()
    assert finished.wait(timeout=5)
    assert status_pass.results() == {}


def test_one_failing_job_does_not_abort_pass(controller):
    orchestrator = StatusOrchestrator(SlowResolver(delay=0), controller)
    job_list = [Job(id=1, name="ok"), Job(id=2, name="boom"), Job(id=3, name="ok2")]

    results = orchestrator.run(job_list, DAY)

    assert results["ok"].status is JobStatus.SUCCESS
    assert results["ok2"].status is JobStatus.SUCCESS
    assert results["boom"].status is JobStatus.ERROR
    assert results["boom"].message == "Error analyzing batch: unexpected"


def test_schedule_info_is_attached(fake_backend, controller):
    fake_backend.tasks["job0"] = ScheduleInfo(True, None, "Ready")
    orchestrator = StatusOrchestrator(SlowResolver(delay=0), controller)

    results = orchestrator.run(jobs(2), DAY)

    assert results["job0"].schedule.is_scheduled is True
    assert results["job1"].schedule.is_scheduled is False


def test_datetime_filter_is_normalized(controller):
    from datetime import datetime

    resolver = SlowResolver(delay=0)
    StatusOrchestrator(resolver, controller).run(jobs(1), datetime(2025, 7, 15, 13, 0))

    assert resolver.days == [DAY]


def test_running_task_overrides_unknown_only():
    running = ScheduleInfo(True, None, "Running")

    unknown = merge_schedule(AnalysisResult(JobStatus.UNKNOWN, "No log entries"), running)
    assert unknown.status is JobStatus.RUNNING
    assert unknown.message == "Task is currently running"
    assert unknown.schedule is running

    error = merge_schedule(AnalysisResult(JobStatus.ERROR, "Errors found"), running)
    assert error.status is JobStatus.ERROR
    assert error.message == "Errors found"

    ready = merge_schedule(AnalysisResult(JobStatus.UNKNOWN, "x"), ScheduleInfo(True, None, "Ready"))
    assert ready.status is JobStatus.UNKNOWN
