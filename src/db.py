from __future__ import annotations

"""Camada de persistência (SQLite) do monitor de batches.

Este módulo encapsula:
    - Inicialização do schema SQLite
    - CRUD da configuração dos batches
    - Persistência e consulta de eventos operacionais
    - Importação/exportação da lista de batches em JSON

Notas de design:
    - O banco é um arquivo SQLite local (por padrão `batchmon.sqlite3`).
    - Só a configuração é persistida; status, ocorrências e estado do
      agendador são recalculados a cada passagem.
    - As operações são feitas com context manager para garantir commit/close.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator

from models import BatchKind, EventEntry, Job


SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
    log_path TEXT NOT NULL DEFAULT '',
    error_log_path TEXT NOT NULL DEFAULT '',
    custom_log_path TEXT NOT NULL DEFAULT '',
    config_path TEXT NOT NULL DEFAULT '',
    executable_path TEXT NOT NULL DEFAULT '',
    batch_kind TEXT NOT NULL DEFAULT 'FixedTime'
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts_iso TEXT NOT NULL,
    job_id INTEGER NULL,
    stream TEXT NOT NULL,
    message TEXT NOT NULL,
    FOREIGN KEY(job_id) REFERENCES jobs(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts_iso);
CREATE INDEX IF NOT EXISTS idx_events_job_id ON events(job_id);
"""

JOB_COLUMNS = (
    "name",
    "log_path",
    "error_log_path",
    "custom_log_path",
    "config_path",
    "executable_path",
    "batch_kind",
)

# Chaves do arquivo JSON de configuração -> campos de `Job`.
JSON_KEYS = {
    "Name": "name",
    "LogFilePath": "log_path",
    "ErrorLogFilePath": "error_log_path",
    "CustomLogFilePath": "custom_log_path",
    "ConfigFilePath": "config_path",
    "ExecutablePath": "executable_path",
}

_BATCH_TYPE_CODES = {0: BatchKind.FIXED_TIME, 1: BatchKind.HOURLY}


def default_db_path() -> str:
    """Resolve o caminho padrão do banco.

    Prioriza a variável de ambiente `BATCHMON_DB_PATH`. Caso não exista, usa
    `batchmon.sqlite3` no diretório de trabalho atual.
    """
    return os.getenv("BATCHMON_DB_PATH") or os.path.join(os.getcwd(), "batchmon.sqlite3")


def parse_batch_kind(raw: Any) -> BatchKind:
    """Aceita 0/1, "0"/"1" ou "FixedTime"/"Hourly" (case-insensitive).

    Raises:
        ValueError: Valor não reconhecido.
    """
    if isinstance(raw, BatchKind):
        return raw
    if raw is None or raw == "":
        return BatchKind.FIXED_TIME
    if isinstance(raw, bool):
        raise ValueError(f"BatchType inválido: {raw!r}")
    if isinstance(raw, int):
        if raw in _BATCH_TYPE_CODES:
            return _BATCH_TYPE_CODES[raw]
        raise ValueError(f"BatchType inválido: {raw!r}")

    text = str(raw).strip()
    if text.isdigit() and int(text) in _BATCH_TYPE_CODES:
        return _BATCH_TYPE_CODES[int(text)]
    for kind in BatchKind:
        if kind.value.lower() == text.lower():
            return kind
    raise ValueError(f"BatchType inválido: {raw!r}")


class JobStore:
    """Acesso ao banco SQLite do monitor.

    Responsável por:
        - Criar/garantir o schema
        - CRUD dos batches
        - Inserção e leitura de eventos
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or default_db_path()
        self._init_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Abre uma conexão SQLite e garante commit e close.

        Yields:
            sqlite3.Connection: Conexão com `row_factory` configurado.
        """
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        # PRAGMA vale por conexão (necessário para o ON DELETE SET NULL).
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Garante que o schema do banco exista (idempotente)."""
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)

    # -------------------- Batches --------------------
    def list_jobs(self) -> list[Job]:
        """Lista os batches ordenados por nome (case-insensitive)."""
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM jobs ORDER BY name COLLATE NOCASE").fetchall()
        return [self._row_to_job(r) for r in rows]

    def get_job(self, job_id: int) -> Job | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row is not None else None

    def get_job_by_name(self, name: str) -> Job | None:
        """Busca pelo nome (sem diferenciar maiúsculas)."""
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE name = ? COLLATE NOCASE", ((name or "").strip(),)
            ).fetchone()
        return self._row_to_job(row) if row is not None else None

    def add_job(self, job: Job) -> int:
        """Insere um novo batch e retorna o id gerado.

        Raises:
            ValueError: Nome vazio ou já cadastrado.
        """
        values = self._job_values(job)
        placeholders = ",".join(["?"] * len(JOB_COLUMNS))
        try:
            with self.connect() as conn:
                cur = conn.execute(
                    f"INSERT INTO jobs ({','.join(JOB_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                new_id = int(cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"A batch named '{job.name}' already exists") from exc
        logging.info("DB - Batch cadastrado: %s (id=%s)", job.name, new_id)
        return new_id

    def update_job(self, job: Job) -> None:
        """Atualiza um batch existente.

        Raises:
            ValueError: Se `job.id` for None, o nome estiver vazio ou colidir
                com outro batch.
        """
        if job.id is None:
            raise ValueError("Job.id é obrigatório para update")

        values = self._job_values(job)
        assignments = ",".join(f"{col} = ?" for col in JOB_COLUMNS)
        try:
            with self.connect() as conn:
                conn.execute(f"UPDATE jobs SET {assignments} WHERE id = ?", [*values, int(job.id)])
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"A batch named '{job.name}' already exists") from exc

    def delete_job(self, job_id: int) -> None:
        """Remove um batch do banco (delete físico)."""
        with self.connect() as conn:
            conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))

    # -------------------- Eventos --------------------
    def append_event(
        self,
        *,
        message: str,
        stream: str = "log",
        job_id: int | None = None,
        ts_iso: str | None = None,
    ) -> int:
        """Insere um evento operacional.

        Args:
            message: Mensagem a persistir.
            stream: Origem ("log", "scheduler", "analysis").
            job_id: Id do batch relacionado (quando aplicável).
            ts_iso: Timestamp ISO-8601. Se None, usa UTC now().

        Returns:
            Id do evento inserido.
        """
        ts_iso = ts_iso or datetime.now(timezone.utc).isoformat()
        with self.connect() as conn:
            cur = conn.execute(
                "INSERT INTO events (ts_iso, job_id, stream, message) VALUES (?, ?, ?, ?)",
                (ts_iso, job_id, stream, message),
            )
            return int(cur.lastrowid)

    def list_events(self, *, limit: int = 1000, stream: str | None = None) -> list[EventEntry]:
        """Lista eventos mais recentes (ordem decrescente por id)."""
        sql = "SELECT id, ts_iso, job_id, stream, message FROM events"
        params: tuple[object, ...] = ()
        if stream:
            sql += " WHERE stream = ?"
            params = (stream,)
        sql += " ORDER BY id DESC LIMIT ?"
        params = (*params, int(limit))

        with self.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            EventEntry(
                id=int(r["id"]),
                ts_iso=str(r["ts_iso"]),
                job_id=(int(r["job_id"]) if r["job_id"] is not None else None),
                stream=str(r["stream"]),
                message=str(r["message"]),
            )
            for r in rows
        ]

    @staticmethod
    def _job_values(job: Job) -> list[str]:
        name = (job.name or "").strip()
        if not name:
            raise ValueError("Nome do batch é obrigatório")
        return [
            name,
            job.log_path or "",
            job.error_log_path or "",
            job.custom_log_path or "",
            job.config_path or "",
            job.executable_path or "",
            parse_batch_kind(job.batch_kind).value,
        ]

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        """Converte sqlite3.Row em Job."""
        return Job(
            id=int(row["id"]),
            name=str(row["name"]),
            log_path=str(row["log_path"]),
            error_log_path=str(row["error_log_path"]),
            custom_log_path=str(row["custom_log_path"]),
            config_path=str(row["config_path"]),
            executable_path=str(row["executable_path"]),
            batch_kind=parse_batch_kind(row["batch_kind"]),
        )


# =============================================================================
# JSON
# =============================================================================

def job_to_record(job: Job) -> dict[str, Any]:
    """Converte `Job` no registro JSON (BatchType numérico)."""
    record: dict[str, Any] = {key: getattr(job, attr) or "" for key, attr in JSON_KEYS.items()}
    record["BatchType"] = 1 if job.batch_kind is BatchKind.HOURLY else 0
    return record


def record_to_job(record: dict[str, Any]) -> Job:
    """Converte um registro JSON em `Job` (sem id).

    Raises:
        ValueError: Nome ausente ou BatchType inválido.
    """
    fields = {attr: str(record.get(key) or "") for key, attr in JSON_KEYS.items()}
    if not fields["name"].strip():
        raise ValueError("Registro sem 'Name'")
    fields["name"] = fields["name"].strip()
    return Job(id=None, batch_kind=parse_batch_kind(record.get("BatchType")), **fields)


def load_jobs_json(path: str) -> list[Job]:
    """Lê a lista de batches de um arquivo JSON.

    Arquivo ausente ou malformado resulta em lista vazia. Registros
    inválidos são ignorados individualmente.
    """
    if not path or not os.path.isfile(path):
        return []
    try:
        with open(path, encoding="utf-8-sig") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        logging.warning("DB - Falha ao ler %s: %s", path, exc)
        return []

    if not isinstance(data, list):
        logging.warning("DB - Formato inesperado em %s (esperada uma lista)", path)
        return []

    jobs: list[Job] = []
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            logging.warning("DB - Registro %d ignorado: não é um objeto", index)
            continue
        try:
            jobs.append(record_to_job(record))
        except ValueError as exc:
            logging.warning("DB - Registro %d ignorado: %s", index, exc)
    return jobs


def export_jobs_json(jobs: Iterable[Job], path: str) -> int:
    """Grava a lista de batches em JSON e retorna a quantidade exportada."""
    records = [job_to_record(job) for job in jobs]
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(records, fh, indent=2, ensure_ascii=False)
    return len(records)
