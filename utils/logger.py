# utils/logger.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# One small logger shared by every module. It prints timestamped, levelled
# lines to the terminal through rich's Console, with optional key=value
# details after the message:
#
#   [10:02:31] [INFO] Reminder sent commitment_id='journal' thread_id='18c...'
#
# DEBUG lines only appear when the DEBUG environment variable is set.
# ============================================================================

from rich.console import Console

from config import settings


_LEVEL_STYLES = {
    'debug': 'dim',
    'info': '',
    'warn': 'yellow',
    'error': 'bold red',
}


class Logger:
    """Levelled console logger; `data` keyword arguments are appended as key=value."""

    def __init__(self, console: Console = None):
        # log_path=False: the caller's file/line would always point at this module.
        self.console = console or Console(stderr=True, log_path=False)

    def _log(self, level: str, message: str, data: dict):
        details = ' '.join(f"{key}={value!r}" for key, value in data.items())
        line = f"[{level.upper()}] {message}"
        if details:
            line = f"{line} {details}"

        # markup=False: subjects like "[IMPACT-...]" must print literally.
        self.console.log(line, style=_LEVEL_STYLES[level] or None,
                         markup=False, highlight=False)

    def debug(self, message: str, **data):
        if settings.DEBUG:
            self._log('debug', message, data)

    def info(self, message: str, **data):
        self._log('info', message, data)

    def warn(self, message: str, **data):
        self._log('warn', message, data)

    def error(self, message: str, **data):
        self._log('error', message, data)


logger = Logger()
