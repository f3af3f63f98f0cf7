"""
Centralized Logger with Rich Console
====================================
Console + rotating file logger shared by every layer of the bot.

Usage:
    from kora_reclaim.shared.system.logging import Logger

    Logger.info("[MONITOR] Checking 120 active accounts")
    Logger.success("[RECLAIM] Reclaimed 0.0020 SOL")
    Logger.warning("[RPC] Retrying getMultipleAccounts")
    Logger.error("[DB] Write failed")
    Logger.section("RECLAIM CYCLE")
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.text import Text

LOG_DIR = os.path.join(os.getcwd(), "logs")

_run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
_formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

file_logger = logging.getLogger("KoraReclaim")
file_logger.setLevel(logging.INFO)
file_logger.propagate = False


def _attach_file(path: str, max_bytes: int = 10 * 1024 * 1024, backups: int = 5) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding='utf-8')
    handler.setFormatter(_formatter)
    file_logger.addHandler(handler)


# =============================================================================
# SOURCE ICONS (for visual scanning)
# =============================================================================

SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "MONITOR": "🔍",
    "DISCOVERY": "🧭",
    "RECONCILE": "🔄",
    "RECLAIM": "💰",
    "RPC": "📡",
    "DB": "📦",
    "TG": "📣",
    "CONFIG": "📋",
    "DAEMON": "⏰",
    "REPORT": "📈",
}


_console = Console()

LEVEL_STYLES = {
    "INFO": "cyan",
    "SUCCESS": "green bold",
    "WARNING": "yellow",
    "ERROR": "red bold",
    "DEBUG": "dim",
    "CRITICAL": "red bold reverse",
    "SECTION": "magenta bold",
}

LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


# =============================================================================
# LOGGER CLASS
# =============================================================================

class Logger:
    """
    Centralized logger with Rich console output.

    - Color-coded output with Rich
    - File logging with rotation
    - Source-based icon prefixes
    """

    _silent_mode = False
    _console_level = logging.INFO
    _file_attached = False

    @staticmethod
    def configure(level: str = "info", log_file: Optional[str] = None) -> None:
        """Apply LOG_LEVEL and attach the session log (plus LOG_FILE_PATH when set)."""
        numeric = LEVELS.get(level, logging.INFO)
        Logger._console_level = numeric
        file_logger.setLevel(numeric)

        if not Logger._file_attached:
            _attach_file(os.path.join(LOG_DIR, f"kora_reclaim_{_run_id}.log"), max_bytes=5 * 1024 * 1024, backups=3)
            Logger._file_attached = True
        if log_file:
            _attach_file(log_file)

    @staticmethod
    def _timestamp() -> str:
        """High-precision timestamp (HH:MM:SS.ms)."""
        now = datetime.now()
        ms = str(now.microsecond)[:3]
        return f"{now.strftime('%H:%M:%S')}.{ms:0<3}"

    @staticmethod
    def _parse_source(message: str) -> tuple:
        """Extract [SOURCE] tag from message if present."""
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag_end = stripped.index("]")
            source = stripped[1:tag_end].upper()
            if 0 < len(source) < 15:
                return source, stripped[tag_end + 1:].strip()
        return "SYSTEM", message

    @staticmethod
    def _format_console(level: str, message: str, source: str, numeric: int) -> None:
        if Logger._silent_mode or numeric < Logger._console_level:
            return

        ts = Logger._timestamp()
        icon = SOURCE_ICONS.get(source.upper(), "")
        msg_with_icon = f"{icon} {message}" if icon else message

        style = LEVEL_STYLES.get(level, "white")
        line = Text()
        line.append(f"{ts} ", style="dim")
        line.append(f"| {level[:8].ljust(8)} ", style=style)
        line.append(f"| {source[:10].ljust(10)} | ", style="dim")
        line.append(msg_with_icon)
        _console.print(line)

    @staticmethod
    def _log_to_file(numeric: int, message: str, source: str = "") -> None:
        full_msg = f"[{source}] {message}" if source else message
        file_logger.log(numeric, full_msg)

    @staticmethod
    def _emit(level: str, numeric: int, message: str, file_prefix: str = "") -> None:
        source, msg = Logger._parse_source(message)
        Logger._format_console(level, msg, source, numeric)
        Logger._log_to_file(numeric, f"{file_prefix}{msg}", source)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def info(message: str) -> None:
        Logger._emit("INFO", logging.INFO, message)

    @staticmethod
    def success(message: str) -> None:
        Logger._emit("SUCCESS", logging.INFO, message, file_prefix="✅ ")

    @staticmethod
    def warning(message: str) -> None:
        Logger._emit("WARNING", logging.WARNING, message)

    @staticmethod
    def error(message: str) -> None:
        Logger._emit("ERROR", logging.ERROR, message)

    @staticmethod
    def debug(message: str) -> None:
        Logger._emit("DEBUG", logging.DEBUG, message)

    @staticmethod
    def critical(message: str) -> None:
        Logger._emit("CRITICAL", logging.CRITICAL, message, file_prefix="🛑 ")

    @staticmethod
    def section(title: str) -> None:
        """Print a section header."""
        if not Logger._silent_mode:
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")

        Logger._log_to_file(logging.INFO, f"=== {title} ===", "SYSTEM")

    @staticmethod
    def set_silent(silent: bool) -> None:
        """Enable/disable console output."""
        Logger._silent_mode = silent
