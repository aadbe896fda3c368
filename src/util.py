"""
Módulo de Utilitários do Monitor de Batches
===========================================

Este módulo fornece funções de apoio usadas pelas demais camadas:

    - Configuração via variáveis de ambiente (`MonitorSettings`)
    - Configuração de logging para o ponto de entrada (CLI)
    - Decodificação de arquivos de texto gerados por ferramentas Windows
    - Leitura segura de arquivos para visualização (log/config)
    - Conversão de horários `HH:MM`
    - Descoberta do executável de um batch a partir do log
"""

from __future__ import annotations

import locale
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, time as dt_time
from pathlib import Path

from models import Job


# =============================================================================
# CONSTANTES
# =============================================================================

EXECUTABLE_EXTENSIONS = (".exe", ".ps1", ".bat", ".cmd")

_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
_HHMM_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


# =============================================================================
# CONFIGURAÇÃO
# =============================================================================

def _env_number(name: str, default: float, cast: type) -> float:
    """Lê uma variável numérica do ambiente, voltando ao padrão se inválida."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logging.warning("CONFIG - Valor inválido para %s: %r (usando %s)", name, raw, default)
        return default
    if value <= 0:
        logging.warning("CONFIG - Valor não positivo para %s: %r (usando %s)", name, raw, default)
        return default
    return value


@dataclass(frozen=True, slots=True)
class MonitorSettings:
    """
    Parâmetros operacionais do monitor.

    Atributos:
        db_path (str): Caminho do SQLite com a configuração dos batches.
        max_concurrency (int): Análises simultâneas permitidas por passagem.
        verify_delay_seconds (float): Espera antes de verificar o agendador.
        refresh_interval_seconds (int): Intervalo do auto-refresh do controller.
        tail_lines (int): Máximo de linhas finais lidas de cada log.
        recent_update_hours (float): Limite para "log atualizado recentemente"
                                     em batches horários.
    """

    db_path: str = ""
    max_concurrency: int = 4
    verify_delay_seconds: float = 2.0
    refresh_interval_seconds: int = 30
    tail_lines: int = 5000
    recent_update_hours: float = 2.0

    @classmethod
    def from_env(cls) -> "MonitorSettings":
        """
        Monta as configurações a partir das variáveis `BATCHMON_*`.

        Variáveis suportadas:
            - BATCHMON_DB_PATH
            - BATCHMON_MAX_CONCURRENCY
            - BATCHMON_VERIFY_DELAY
            - BATCHMON_REFRESH_SECONDS
            - BATCHMON_TAIL_LINES
            - BATCHMON_RECENT_HOURS

        Valores ausentes ou inválidos mantêm o padrão.
        """
        return cls(
            db_path=os.getenv("BATCHMON_DB_PATH") or os.path.join(os.getcwd(), "batchmon.sqlite3"),
            max_concurrency=int(_env_number("BATCHMON_MAX_CONCURRENCY", 4, int)),
            verify_delay_seconds=float(_env_number("BATCHMON_VERIFY_DELAY", 2.0, float)),
            refresh_interval_seconds=int(_env_number("BATCHMON_REFRESH_SECONDS", 30, int)),
            tail_lines=int(_env_number("BATCHMON_TAIL_LINES", 5000, int)),
            recent_update_hours=float(_env_number("BATCHMON_RECENT_HOURS", 2.0, float)),
        )


def configure_logging(level: int = logging.INFO) -> None:
    """Configura o logging raiz (apenas para pontos de entrada)."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(message)s",
    )


# =============================================================================
# DECODIFICAÇÃO DE TEXTO
# =============================================================================

def clean_text(text: str) -> str:
    """Normaliza quebras de linha e remove sequências ANSI/caracteres de controle."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _ANSI_ESCAPE_RE.sub("", text)
    return "".join(ch for ch in text if ch in ("\n", "\t") or ord(ch) >= 32)


def sniff_encoding(data: bytes) -> str:
    """
    Estima o encoding de um trecho de arquivo.

    Motivo:
        Batches Windows podem escrever em UTF-16 (PowerShell), UTF-8 ou em
        codepages legadas. A heurística é a mesma usada para saída de processos.

    Args:
        data (bytes): Primeiros bytes do arquivo.

    Returns:
        str: Nome do encoding a usar na leitura.
    """
    if data.startswith((b"\xff\xfe", b"\xfe\xff")):
        return "utf-16"
    if data.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    # Muitos bytes nulos: provavelmente UTF-16 LE sem BOM.
    if len(data) >= 8 and data[1::2].count(0) > (len(data) // 6):
        return "utf-16-le"
    try:
        data.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError as exc:
        # Corte no meio de um caractere multibyte no fim do trecho.
        if exc.start >= len(data) - 3:
            return "utf-8"
    return _legacy_encoding()


def _legacy_encoding() -> str:
    """Codepage de fallback (ANSI do Windows quando disponível)."""
    pref = locale.getpreferredencoding(False)
    if pref and pref.lower().replace("-", "") not in ("utf8", "ascii", "ansix3.41968"):
        return pref
    return "cp1252"


def decode_text(data: bytes) -> str:
    """
    Decodifica bytes de arquivo em texto legível.

    Args:
        data (bytes): Conteúdo bruto.

    Returns:
        str: Texto normalizado (quebras `\\n`, sem sequências ANSI).
    """
    if not data:
        return ""
    encoding = sniff_encoding(data)
    try:
        text = data.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        text = data.decode("latin-1")
    return clean_text(text)


def read_text_file(path: str, missing_message: str = "File not found.") -> str:
    """
    Lê um arquivo de texto inteiro para exibição (log ou configuração).

    Nunca levanta exceção: falhas viram mensagens para o usuário.

    Args:
        path (str): Caminho do arquivo.
        missing_message (str): Texto devolvido quando o arquivo não existe.

    Returns:
        str: Conteúdo decodificado ou a mensagem explicativa.
    """
    if not path or not os.path.isfile(path):
        return missing_message
    try:
        with open(path, "rb") as fh:
            return decode_text(fh.read())
    except OSError as exc:
        return f"Error reading file: {exc}"


# =============================================================================
# HORÁRIOS
# =============================================================================

def parse_hhmm(raw: str) -> dt_time:
    """
    Converte `HH:MM` em `datetime.time`.

    Raises:
        ValueError: Se o formato ou os valores forem inválidos.
    """
    match = _HHMM_RE.match(raw or "")
    if not match:
        raise ValueError(f"Horário inválido: '{raw}' (use HH:MM)")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Horário inválido: '{raw}' (use HH:MM)")
    return dt_time(hour, minute)


def file_mtime(path: str) -> datetime | None:
    """Data de modificação local do arquivo, ou None se inacessível."""
    try:
        return datetime.fromtimestamp(os.path.getmtime(path))
    except OSError:
        return None


# =============================================================================
# DESCOBERTA DE EXECUTÁVEL
# =============================================================================

def _candidate_in(directory: Path, stem: str) -> str:
    for ext in EXECUTABLE_EXTENSIONS:
        candidate = directory / f"{stem}{ext}"
        if candidate.is_file():
            return str(candidate)
    start_services = directory / "StartServices.exe"
    if start_services.is_file():
        return str(start_services)
    return ""


def find_batch_executable(log_path: str) -> str:
    """
    Procura o executável de um batch a partir do caminho do log.

    Ordem de busca:
        1. `<nome do log>.exe|.ps1|.bat|.cmd` na pasta do log, depois
           `StartServices.exe`.
        2. O mesmo na pasta pai.
        3. Qualquer `.exe` na pasta do log cujo nome se relacione com o log
           ou contenha "start"/"service".

    Returns:
        str: Caminho encontrado ou string vazia.
    """
    if not log_path:
        return ""

    log_file = Path(log_path)
    directory = log_file.parent
    stem = log_file.stem
    if not str(directory):
        return ""

    found = _candidate_in(directory, stem)
    if found:
        return found

    if directory.parent != directory:
        found = _candidate_in(directory.parent, stem)
        if found:
            return found

    if directory.is_dir():
        for exe in sorted(directory.glob("*.exe")):
            name = exe.stem
            lowered = name.lower()
            if stem in name or name in stem or "start" in lowered or "service" in lowered:
                return str(exe)

    return ""


def job_log_text(job: Job, *, error: bool = False) -> str:
    """
    Conteúdo do log de um batch para visualização.

    Args:
        job (Job): Batch configurado.
        error (bool): Quando True, lê o log de erro em vez do principal.

    Returns:
        str: Texto do arquivo ou mensagem explicativa.
    """
    if error:
        return read_text_file(job.error_log_path, "Error log file not found.")
    path = job.custom_log_path if job.custom_log_path and os.path.isfile(job.custom_log_path) else job.log_path
    return read_text_file(path, "Log file not found.")
