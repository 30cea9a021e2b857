import logging
import os
import glob
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

_INITIALIZED = False

# Library loggers hang off this root so applications can tune them in one place.
_ROOT_LOGGER = "redshift_data"


class TimestampRotatingFileHandler(RotatingFileHandler):
    """Size-based rotation that renames the full file with a timestamp.

    The active log stays at ``log_file`` (e.g. logs/redshift-data.log); a full
    file becomes logs/redshift-data_20260124_153012.log. ``backupCount=0``
    keeps every rotated file, otherwise only the newest N survive.
    """

    def _rotated_path(self) -> Path:
        base = Path(self.baseFilename)
        suffix = base.suffix or ".log"
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        candidate = base.with_name(f"{base.stem}_{ts}{suffix}")
        n = 1
        while candidate.exists():
            candidate = base.with_name(f"{base.stem}_{ts}_{n}{suffix}")
            n += 1
        return candidate

    def rotated_files(self) -> List[Path]:
        """Rotated siblings of the active log, newest first."""
        base = Path(self.baseFilename)
        suffix = base.suffix or ".log"
        files = [Path(p) for p in glob.glob(str(base.with_name(f"{base.stem}_*{suffix}")))]
        return sorted(files, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    def doRollover(self) -> None:
        if self.stream:
            try:
                self.stream.close()
            finally:
                self.stream = None

        if os.path.exists(self.baseFilename):
            try:
                os.replace(self.baseFilename, self._rotated_path())
            except OSError:
                # Keep writing to the current file rather than losing records.
                pass

        if self.backupCount > 0:
            for stale in self.rotated_files()[self.backupCount:]:
                try:
                    stale.unlink()
                except OSError:
                    pass

        if not self.delay:
            self.stream = self._open()


def init_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 0,             # 0 = keep all rotated logs
) -> None:
    """Configure the ``redshift_data`` logger tree once per process."""
    global _INITIALIZED
    if _INITIALIZED:
        return

    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimestampRotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(level)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    _INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")
