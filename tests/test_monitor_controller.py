"""Testes do controller Qt (sem janelas, com QCoreApplication).

O agendador usa `FakeBackend`; nenhuma chamada PowerShell é feita.
"""

import time
from datetime import date

import pytest
from PySide6 import QtCore

from db import JobStore
from models import Job, JobStatus, ScheduleInfo
from monitor_controller import MonitorController
from scheduler import ScheduleController
from util import MonitorSettings


DAY = date(2025, 7, 15)


@pytest.fixture
def controller(qapp, tmp_path, fake_backend):
    settings = MonitorSettings(db_path=str(tmp_path / "c.sqlite3"), verify_delay_seconds=0, refresh_interval_seconds=1)
    ctrl = MonitorController(
        settings=settings,
        store=JobStore(settings.db_path),
        scheduler=ScheduleController(fake_backend, verify_delay=0),
    )
    yield ctrl
    ctrl.set_auto_refresh(False)


def collect(signal):
    received = []
    signal.connect(lambda *args: received.append(args))
    return received


def add_job(controller, tmp_path, name, lines):
    log = tmp_path / f"{name}.log"
    log.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return controller.save_job(Job(id=None, name=name, log_path=str(log)))


def test_save_job_emits_jobs_changed(controller):
    changed = collect(controller.jobs_changed)

    job_id = controller.save_job(Job(id=None, name="Nightly"))

    assert job_id is not None
    assert len(changed) == 1
    assert [j.name for j in controller.list_jobs()] == ["Nightly"]


def test_duplicate_name_is_reported_not_raised(controller):
    status = collect(controller.status_text)
    controller.save_job(Job(id=None, name="Nightly"))

    assert controller.save_job(Job(id=None, name="NIGHTLY")) is None
    assert "already exists" in status[-1][0]


def test_refresh_blocking_emits_results_and_report(controller, tmp_path):
    add_job(controller, tmp_path, "Broken", ["2025-07-15 02:50:00 ERROR disk full"])
    add_job(controller, tmp_path, "Fine", ["2025-07-15 02:50:00 Successfully completed"])
    results_seen = collect(controller.job_result_ready)
    finished = collect(controller.pass_finished)
    reports = collect(controller.report_ready)

    results = controller.refresh_blocking(DAY)

    assert results["Broken"].status is JobStatus.ERROR
    assert results["Fine"].status is JobStatus.SUCCESS
    assert sorted(name for name, _r in results_seen) == ["Broken", "Fine"]
    assert finished == [(results,)]
    assert reports and reports[0][0].startswith("BatchMonitor Report - 2025-07-15")
    assert "Batch: Broken" in reports[0][0]
    assert controller.last_results is results
    assert any("Status check finished" in line for line in controller.list_events_text())


def test_background_refresh_finishes_on_controller_thread(controller, tmp_path):
    add_job(controller, tmp_path, "Fine", ["2025-07-15 02:50:00 Successfully completed"])
    finished = collect(controller.pass_finished)

    status_pass = controller.refresh(DAY)

    assert status_pass is not None
    assert controller.refresh(DAY) is None  # já existe passagem em andamento
    assert status_pass.wait(timeout=5)

    deadline = time.monotonic() + 5
    while not finished and time.monotonic() < deadline:
        QtCore.QCoreApplication.processEvents()
        time.sleep(0.01)

    assert finished
    assert finished[0][0]["Fine"].status is JobStatus.SUCCESS
    assert not controller.is_refreshing()


def test_auto_refresh_toggle(controller):
    controller.set_auto_refresh(True)
    assert controller.is_auto_refresh_enabled()
    controller.set_auto_refresh(False)
    assert not controller.is_auto_refresh_enabled()


def test_schedule_and_unschedule(controller, tmp_path, fake_backend):
    exe = tmp_path / "Nightly.bat"
    exe.write_text("", encoding="utf-8")
    controller.save_job(Job(id=None, name="Nightly", executable_path=str(exe)))
    status = collect(controller.status_text)

    assert controller.schedule_job("Nightly", "02:30") is True
    assert "Nightly" in fake_backend.tasks

    assert controller.reschedule_job("Nightly", "03:00") is True
    assert controller.unschedule_job("Nightly") is True
    assert "Nightly" not in fake_backend.tasks
    assert status[-1][0] == "Schedule removed for 'Nightly'"


def test_schedule_failure_is_reported(controller):
    controller.save_job(Job(id=None, name="NoExe", executable_path="/nowhere/x.exe"))
    status = collect(controller.status_text)

    assert controller.schedule_job("NoExe", "02:30") is False
    assert "Executable file not found" in status[-1][0]
    assert controller.schedule_job("Unknown", "02:30") is False


def test_delete_scheduled_job_removes_task_first(controller, tmp_path, fake_backend):
    exe = tmp_path / "Nightly.bat"
    exe.write_text("", encoding="utf-8")
    job_id = controller.save_job(Job(id=None, name="Nightly", executable_path=str(exe)))
    controller.schedule_job("Nightly", "02:30")

    assert controller.delete_job(job_id) is True

    assert "Nightly" not in fake_backend.tasks
    assert ("remove", "Nightly") in fake_backend.calls
    assert controller.list_jobs() == []


def test_delete_job_removes_disabled_task(controller, fake_backend):
    job_id = controller.save_job(Job(id=None, name="Paused"))
    fake_backend.tasks["Paused"] = ScheduleInfo(False, None, "Disabled")

    assert controller.delete_job(job_id) is True

    assert ("remove", "Paused") in fake_backend.calls
    assert "Paused" not in fake_backend.tasks


def test_read_log_and_config(controller, tmp_path):
    cfg = tmp_path / "job.ini"
    cfg.write_text("a=1\n", encoding="utf-8")
    controller.save_job(Job(id=None, name="Nightly", config_path=str(cfg)))

    assert controller.read_config("Nightly") == "a=1\n"
    assert controller.read_log("Nightly") == "Log file not found."
    assert controller.read_log("Missing") == "Batch not found: Missing"
