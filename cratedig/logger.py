"""
Minimal logging context for Cratedig.
Single place to control all output: screen + file, with flush.
"""
import json
import os
import re
from pathlib import Path
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.text import Text

from cratedig.__version__ import __version__

_PREFIX_STYLES: tuple[tuple[str, str], ...] = (
    ("[INFO] ", "cyan"),
    ("[WARNING] ", "yellow"),
    ("[ERROR] ", "red"),
)
_PHASE_RE = re.compile(r"^(\s*phase\s+)(\S+)(\s*->\s*)(\S+)")


class CratedigLogger:
    """Minimal logger: print to screen + file, always flush"""

    def __init__(self, log_file: Optional[Path] = None, debug: bool = False):
        self.log_file = log_file
        self._file_handle = None
        self._start_time = datetime.now()
        self.debug_mode = debug
        self._rate_limit_note_services: set[str] = set()
        self._console = Console(highlight=False)
        self._status_width = 0

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = open(log_file, 'w', buffering=1, encoding='utf-8')  # Line buffered, UTF-8

        welcome = f"({self._start_time.strftime('%H:%M:%S')}  Started Cratedig {__version__})"
        self.log(welcome)

    def log(self, msg: str, prefix: str = ""):
        """Log to screen and file"""
        output = f"{prefix}{msg}" if prefix else msg

        self._clear_status()
        self._console.print(self._screen_text(output))

        if self._file_handle:
            self._file_handle.write(output + "\n")
            self._file_handle.flush()
            os.fsync(self._file_handle.fileno())

    def status(self, msg: str) -> None:
        """Rewrite a single in-place status line (screen only)."""
        pad = max(0, self._status_width - len(msg))
        print(f"\r{msg}{' ' * pad}", end="", flush=True)
        self._status_width = len(msg)

    def _clear_status(self) -> None:
        if self._status_width:
            print(f"\r{' ' * self._status_width}\r", end="", flush=True)
            self._status_width = 0

    def _screen_text(self, line: str) -> Text:
        text = Text(line)
        for prefix, style in _PREFIX_STYLES:
            idx = line.find(prefix)
            if idx != -1:
                text.stylize(style, idx, idx + len(prefix) - 1)
        match = _PHASE_RE.match(line)
        if match:
            text.stylize("grey50", match.start(2), match.end(2))
            text.stylize("green", match.start(4), match.end(4))
        return text

    def info(self, msg: str):
        """Info message"""
        self.log(msg)

    def warning(self, msg: str):
        """Warning message"""
        self.log(msg, "[WARNING] ")

    def error(self, msg: str):
        """Error message"""
        self.log(msg, "[ERROR] ")

    def api_wait(self, service: str, seconds: float):
        """Log API rate limiting wait"""
        _ = seconds
        service_key = service.upper()
        if service_key in self._rate_limit_note_services:
            return
        self._rate_limit_note_services.add(service_key)
        self.log(
            f"API rate limiting active for {service_key}; request pacing is enabled.",
            "[INFO] ",
        )

    def api_wait_debug(self, service: str, seconds: float):
        """Log API wait details (debug mode only)."""
        self.debug(f"Rate limiting detail: waiting {seconds:.3f}s before next {service} API call")

    def api_retry(self, service: str, attempt: int, max_attempts: int, delay: float):
        """Log API retry"""
        self.log(
            f"{service} request failed. Retrying in {delay:g}s... (attempt {attempt}/{max_attempts})",
            "[WARNING] ",
        )

    def api_failed(self, service: str, max_attempts: int):
        """Log API failure"""
        self.log(f"{service} not responding after {max_attempts} attempts. Aborting.", "[ERROR] ")

    def poll_tick(self, search_id: str, state: str, responses: int, stable: int, retries: int, total: int):
        """Trace one search poll (debug mode only)."""
        self.debug(
            f"Poll {total} for search {search_id}: state={state or '?'} responses={responses} "
            f"stable={stable} fetch_retries={retries}"
        )

    def debug(self, msg: str):
        """Debug message (only shown in debug mode)"""
        if self.debug_mode:
            timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
            self.log(msg, f"[{timestamp}] [DEBUG] ")

    def api_request(self, method: str, url: str, params: Optional[dict]):
        """Log API request (debug mode only)"""
        if self.debug_mode:
            timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
            self.log(f"API Request: {method} {url}", f"[{timestamp}] ")
            if params:
                self.log(f"  Params: {json.dumps(params, indent=2, default=str)}", f"[{timestamp}] ")

    def api_response(self, status: int, data: object, elapsed_ms: float):
        """Log API response (debug mode only)"""
        if self.debug_mode:
            timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
            self.log(f"API Response ({elapsed_ms:.0f}ms): Status {status}", f"[{timestamp}] ")
            if data:
                # Truncate large responses
                data_str = json.dumps(data, indent=2, default=str)
                if len(data_str) > 5000:
                    data_str = data_str[:5000] + "\n  ... (truncated)"
                self.log(f"  Data: {data_str}", f"[{timestamp}] ")

    def close(self):
        """Close file handle with goodbye message"""
        if self._file_handle:
            end_time = datetime.now()
            elapsed = end_time - self._start_time
            goodbye = f"({end_time.strftime('%H:%M:%S')}  Ended session, elapsed {elapsed.total_seconds():.1f}s)"
            self.log(goodbye)
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


# Global instance (set by the CLI)
_logger: Optional[CratedigLogger] = None

def set_logger(logger: CratedigLogger):
    """Set global logger instance"""
    global _logger
    _logger = logger

def get_logger() -> CratedigLogger:
    """Get global logger instance"""
    global _logger
    if _logger is None:
        # Fallback: create stdout-only logger
        _logger = CratedigLogger()
    return _logger

# Convenience functions
def log(msg: str):
    get_logger().log(msg)

def info(msg: str):
    get_logger().info(msg)

def warning(msg: str):
    get_logger().warning(msg)

def error(msg: str):
    get_logger().error(msg)

def debug(msg: str):
    get_logger().debug(msg)
