import logging
import re

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
CYAN = "\033[36m"

LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED + BOLD,
}

STATE_COLORS = {
    "IDLE": DIM,
    "RECORDING": RED + BOLD,
    "TRANSCRIBING": BLUE,
    "COMPLETING": MAGENTA,
    "SPEAKING": GREEN + BOLD,
    "ERROR": RED,
}

MESSAGE_STYLES = (
    ("Transcript:", CYAN),
    ("Reply:", BOLD + GREEN),
    ("Latency:", MAGENTA),
    ("Cache hit", DIM + CYAN),
    ("Cycle failed:", BOLD + RED),
)

TRANSITION_PATTERN = re.compile(r"^State: (\w+) -> (\w+)")

PLAIN_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def _style_message(msg: str, levelno: int) -> str:
    match = TRANSITION_PATTERN.match(msg)
    if match:
        return f"{STATE_COLORS.get(match.group(2), CYAN)}{msg}{RESET}"
    for prefix, style in MESSAGE_STYLES:
        if msg.startswith(prefix):
            return f"{style}{msg}{RESET}"
    if levelno == logging.DEBUG:
        return f"{DIM}{msg}{RESET}"
    if levelno >= logging.WARNING:
        return f"{LEVEL_COLORS[min(levelno, logging.CRITICAL)]}{msg}{RESET}"
    return msg


class ColoredFormatter(logging.Formatter):
    """Terminal formatter that colors each cycle stage by the state it enters."""

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno, "")
        stamp = self.formatTime(record, self.datefmt)
        name = record.name.rsplit(".", 1)[-1]
        msg = _style_message(record.getMessage(), record.levelno)
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            msg = f"{msg}\n{DIM}{record.exc_text}{RESET}"
        return f"{DIM}{stamp}{RESET} {color}{record.levelname:<7}{RESET} {DIM}{name:<20}{RESET} {msg}"
