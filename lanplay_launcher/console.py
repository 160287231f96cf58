"""
Operator console output.
"""

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False)


def log(message: str, style: Optional[str] = None):
    """Print a timestamped line to the operator console"""
    ts = datetime.now().strftime("%H:%M:%S")
    if style:
        message = f"[{style}]{message}[/{style}]"
    console.print(f"[dim]\\[{ts}][/dim] {message}")


def log_output(line: str):
    """Log a line of lan-play output without interpreting it as markup"""
    log(f"[cyan]\\[lan-play][/cyan] {escape(line)}")
