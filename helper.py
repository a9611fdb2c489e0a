from typing import Any

GRAY = "\033[90m"
RESET = "\033[0m"


def format_event(event: Any) -> str:
    """
    One-line summary of a parser event, e.g. 'env_begin  name='align' args=[]'.
    """
    fields = " ".join(f"{key}={value!r}" for key, value in event.data.items())
    return f"{event.type:<18} {fields}".rstrip()


def print_event_gray(text: str) -> None:
    """
    Print event/debug output in gray using ANSI escape codes.
    """
    print(f"{GRAY}{text}{RESET}")
