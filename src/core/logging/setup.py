"""Root logger configuration for workers and CLI tools."""

import io
import logging
import os
import shutil
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

PLAIN_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

# Client libraries that log every fetch/heartbeat at INFO
NOISY_LOGGERS = (
    "aiokafka",
    "aiokafka.conn",
    "aiokafka.consumer.fetcher",
    "aiohttp.access",
    "kafka",
)


class ArchivingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """
    Rotating file handler that keeps only the live file next to the logs.

    Rotated files are moved under archive_dir (defaults to ``<log dir>/archive``)
    so the date folders hold one file per worker start.
    """

    def __init__(self, filename, *args, archive_dir=None, **kwargs):
        super().__init__(filename, *args, **kwargs)
        live = Path(self.baseFilename)
        self.archive_dir = Path(archive_dir) if archive_dir else live.parent / "archive"
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def doRollover(self):
        super().doRollover()
        live = Path(self.baseFilename)
        for rotated in live.parent.glob(f"{live.name}.*"):
            try:
                shutil.move(str(rotated), str(self.archive_dir / rotated.name))
            except OSError as e:
                # stderr: logging here would re-enter this handler
                print(f"Warning: could not archive {rotated}: {e}", file=sys.stderr)


def get_log_file_path(
    log_dir: Path,
    domain: str | None = None,
    stage: str | None = None,
) -> Path:
    """
    Path of a new log file: ``{log_dir}/[{domain}/]{YYYY-MM-DD}/{domain}_{stage}_{MMDD}_{HHMM}.log``.

    Files without a domain or stage are named ``pipeline_...``.
    """
    now = datetime.now()
    prefix = "_".join(filter(None, (domain, stage))) or "pipeline"
    folder = log_dir / domain if domain else log_dir
    return folder / now.strftime("%Y-%m-%d") / f"{prefix}_{now:%m%d_%H%M}.log"


def _console_handler(level: int) -> logging.Handler:
    stream = sys.stdout
    if sys.platform == "win32":
        # cp1252 consoles choke on non-latin names in event payloads
        stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def _file_handler(
    log_file: Path,
    log_dir: Path,
    json_format: bool,
    level: int,
    when: str,
    interval: int,
    backup_count: int,
) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    if log_file.is_relative_to(log_dir):
        # logs/senik/2026-01-05/x.log -> logs/archive/senik/2026-01-05
        archive_dir = log_dir / "archive" / log_file.parent.relative_to(log_dir)
    else:
        archive_dir = log_file.parent / "archive"

    handler = ArchivingTimedRotatingFileHandler(
        log_file,
        when=when,
        interval=interval,
        backupCount=backup_count,
        encoding="utf-8",
        archive_dir=archive_dir,
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FILE_FORMAT))
    return handler


def setup_logging(
    name: str = "senik_admin",
    stage: str | None = None,
    domain: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Replace the root logger's handlers and stamp the worker context.

    By default records go to the console at console_level and to a JSON file
    at file_level under log_dir. With log_to_stdout (containers) there is a
    single console handler at file_level and nothing is written to disk.

    Args:
        name: Logger returned to the caller
        stage: Stage stamped on every record (e.g. "income_calculation", "dlq-cli")
        domain: Domain stamped on every record; also the log subfolder
        log_dir: Root of the log tree (default ./logs)
        json_format: JSON lines in the file; plain text otherwise
        rotation_when: TimedRotatingFileHandler ``when`` ('midnight', 'H', 'M')
        worker_id: Worker name stamped on every record
        log_to_stdout: Console only, no file handler
    """
    set_log_context(stage=stage, worker_id=worker_id, domain=domain)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    log_file = None
    if log_to_stdout:
        root.addHandler(_console_handler(file_level))
    else:
        log_dir = log_dir or DEFAULT_LOG_DIR
        log_file = get_log_file_path(log_dir, domain=domain, stage=stage)
        root.addHandler(
            _file_handler(
                log_file,
                log_dir,
                json_format,
                file_level,
                rotation_when,
                rotation_interval,
                backup_count,
            )
        )
        root.addHandler(_console_handler(console_level))

    if suppress_noisy:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug("Logging initialized (file=%s, json=%s)", log_file or "-", json_format)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_worker_startup(
    logger: logging.Logger,
    worker_name: str,
    kafka_bootstrap_servers: str | None = None,
    input_topic: str | None = None,
    dead_letter_topic: str | None = None,
    consumer_group: str | None = None,
    extra_config: dict | None = None,
) -> None:
    """Banner with the broker and topics, so a misrouted worker shows up in its first lines."""
    if kafka_bootstrap_servers is None:
        kafka_bootstrap_servers = os.environ.get("KAFKA_BOOTSTRAP_SERVERS", "not set")

    lines = [
        f"Starting {worker_name}",
        f"Kafka bootstrap servers: {kafka_bootstrap_servers}",
    ]
    labelled = (
        ("Input topic", input_topic),
        ("Dead letter topic", dead_letter_topic),
        ("Consumer group", consumer_group),
    )
    lines.extend(f"{label}: {value}" for label, value in labelled if value)
    lines.extend(f"{key}: {value}" for key, value in (extra_config or {}).items())

    rule = "=" * 70
    logger.info(rule)
    for line in lines:
        logger.info(line)
    logger.info(rule)
