"""Minimal Rich console helpers."""

from rich.console import Console

console = Console()
# Diagnostics go to stderr so tool output on stdout stays clean for pipes.
err_console = Console(stderr=True)


def info(msg: str) -> None:
    err_console.print(f"[bold blue]\\[i][/] {msg}")


def success(msg: str) -> None:
    console.print(f"[bold green]\\[+][/] {msg}")


def warn(msg: str) -> None:
    err_console.print(f"[bold yellow]\\[!][/] {msg}")


def error(msg: str) -> None:
    err_console.print(f"[bold red]\\[-][/] {msg}")
