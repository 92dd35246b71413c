"""Logging utilities for critterworld simulations.

Colour-coded console output separates deterministic simulation work (weather,
lifecycle, hazards) from generative calls (dialogue, thoughts).
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Deterministic operations (weather, lifecycle, hazards)
    YELLOW = "\033[93m"    # Generative calls (dialogue, thoughts)
    RED = "\033[91m"       # Errors, timeouts and fallbacks
    GREEN = "\033[92m"     # Births, resolved hazards, completed saves
    CYAN = "\033[96m"      # Info/metadata

    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes unless CRITTERWORLD_NO_COLOR is set."""
    if os.getenv("CRITTERWORLD_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"
LOG_TAG_LLM = "[AI]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"

EMOJI_DETERMINISTIC = LOG_TAG_DETERMINISTIC
EMOJI_LLM = LOG_TAG_LLM
EMOJI_ERROR = LOG_TAG_ERROR
EMOJI_SUCCESS = LOG_TAG_SUCCESS
EMOJI_INFO = LOG_TAG_INFO


def log_deterministic(message: str) -> None:
    """Log a deterministic operation (blue)."""
    print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_llm(message: str) -> None:
    """Log a generative call (yellow)."""
    print(colored(f"{LOG_TAG_LLM} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error, timeout or fallback (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))
