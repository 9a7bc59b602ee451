from __future__ import annotations

import io
from typing import Optional

import qrcode
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def success(message: str) -> None:
    console.print(f"[bold green]✔ success[/]  {escape(message)}")


def info(message: str) -> None:
    console.print(f"[bold blue]ℹ info[/]     {escape(message)}")


def pending(message: str) -> None:
    console.print(f"[bold cyan]… awaiting[/] {escape(message)}")


def warn(message: str) -> None:
    console.print(f"[bold yellow]⚠ warning[/]  {escape(message)}")


def error(message: str) -> None:
    err_console.print(f"[bold red]✖ error[/]    {escape(message)}")


def log(message: str) -> None:
    console.print(escape(message))


def render_qr(data: str) -> str:
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


def show_pairing_challenge(challenge: str, title: Optional[str] = "Scan with WhatsApp") -> None:
    console.print(Panel(Text(render_qr(challenge), no_wrap=True), title=title, expand=False))
