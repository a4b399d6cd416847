from __future__ import annotations

from pathlib import Path
from typing import Optional

from rich.console import Console

console = Console()


# ---------- Logging ----------
def log(msg: str, error_log: Optional[Path] = None) -> None:
    """Append `msg` to the error log (when given) and echo it on the console."""
    if error_log is not None:
        error_log.parent.mkdir(parents=True, exist_ok=True)
        with error_log.open("a", encoding="utf-8") as f:
            f.write(msg.rstrip() + "\n")
    console.log(msg, markup=False, highlight=False)


def info(msg: str) -> None:
    console.print(msg, markup=False, highlight=False)


def success(msg: str) -> None:
    console.print("[bold green]Success:[/] ", end="")
    console.print(msg, markup=False, highlight=False)


def warning(msg: str, error_log: Optional[Path] = None) -> None:
    log(f"[WARN] {msg}", error_log)


def error(msg: str, error_log: Optional[Path] = None) -> None:
    log(f"[ERROR] {msg}", error_log)
