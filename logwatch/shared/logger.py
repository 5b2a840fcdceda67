"""
Rich Logging Module for logwatch.

Provides colorful, formatted logging with tables and panels for the
stream tailer, parser and monitor components.
"""

import logging
import os
from datetime import datetime
from typing import Any, Iterable

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from logwatch.shared.config import settings

# Custom theme for logwatch
LOGWATCH_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold white on red",
        "success": "bold green",
        "stream": "bold magenta",
        "event": "bold blue",
        "data": "dim cyan",
        "highlight": "bold yellow",
        "muted": "dim white",
        "header": "bold cyan",
        "border": "bright_black",
    }
)

# Initialize Rich console with custom theme
console = Console(theme=LOGWATCH_THEME, stderr=True)


class WatchLogger:
    """Custom logger with Rich formatting for logwatch."""

    def __init__(self, name: str = "logwatch", level: str | None = None):
        """Initialize the logger with Rich handler."""
        self.console = console
        self.name = name

        log_level = level or os.getenv("LOG_LEVEL", settings.log_level)
        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format="%(message)s",
            datefmt="[%X]",
            handlers=[
                RichHandler(
                    console=self.console,
                    show_time=True,
                    show_path=False,
                    rich_tracebacks=True,
                    markup=True,
                )
            ],
        )
        self._logger = logging.getLogger(name)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message with cyan color."""
        self._logger.info(f"[info]{message}[/info]", **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message with yellow color."""
        self._logger.warning(f"[warning]⚠️  {message}[/warning]", **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message with red color."""
        self._logger.error(f"[error]❌ {message}[/error]", **kwargs)

    def success(self, message: str) -> None:
        """Log success message with green color."""
        self.console.print(f"[success]✅ {message}[/success]")

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        self._logger.debug(f"[muted]{message}[/muted]", **kwargs)

    def stream(self, source_id: str, message: str) -> None:
        """Log a stream lifecycle message for a source."""
        self._logger.info(f"[stream]📡 {source_id}:[/stream] {message}")

    def event(self, event_type: str, data: dict[str, Any]) -> None:
        """Log a parsed event with formatted data."""
        data_str = escape(", ".join(f"{k}={v!r}" for k, v in data.items() if v is not None))
        self.console.print(
            f"[event]🔎 EVENT:[/event] [bold]{event_type}[/bold]([data]{data_str}[/data])"
        )

    def panel(
        self,
        content: str,
        title: str = "",
        style: str = "border",
        subtitle: str | None = None,
    ) -> None:
        """Display content in a styled panel."""
        self.console.print(
            Panel(
                content,
                title=f"[header]{title}[/header]" if title else None,
                subtitle=f"[muted]{subtitle}[/muted]" if subtitle else None,
                border_style=style,
                padding=(1, 2),
            )
        )

    def table(
        self,
        title: str,
        columns: list[str],
        rows: list[list[Any]],
        show_lines: bool = False,
    ) -> None:
        """Display data in a formatted table."""
        table = Table(
            title=f"[header]{title}[/header]",
            show_header=True,
            header_style="bold cyan",
            border_style="border",
            show_lines=show_lines,
        )

        for col in columns:
            table.add_column(col)

        for row in rows:
            table.add_row(*[str(cell) for cell in row])

        self.console.print(table)

    def divider(self, title: str = "") -> None:
        """Print a visual divider."""
        if title:
            self.console.rule(f"[header]{title}[/header]", style="border")
        else:
            self.console.rule(style="border")


# Global logger instance
_logger: WatchLogger | None = None


def get_logger() -> WatchLogger:
    """Get or create the global logger instance."""
    global _logger
    if _logger is None:
        _logger = WatchLogger()
    return _logger


def log_event_table(title: str, events: Iterable[Any]) -> None:
    """Display parsed events in a table.

    Args:
        title: Table title
        events: Parsed events (anything with ``type``, ``data`` and ``timestamp``)
    """
    rows = [
        [getattr(e, "timestamp", None) or "-", e.type, dict(e.data)]
        for e in events
    ]
    get_logger().table(title, ["Time", "Type", "Data"], rows)


def log_startup_banner(source_id: str, options: dict[str, Any]) -> None:
    """Display the startup banner with the active stream configuration."""
    lines = [f"[highlight]📡 Source: {source_id}[/highlight]", ""]
    for key, value in options.items():
        lines.append(f"  • {key}: {value}")

    get_logger().panel(
        "\n".join(lines),
        title="🛰️ logwatch",
        subtitle=datetime.now().strftime("%H:%M:%S"),
    )


def log_config_status(configs: dict[str, tuple[bool, str]]) -> None:
    """Display configuration status.

    Args:
        configs: Dict of config_name -> (is_set, description)
    """
    logger = get_logger()

    table = Table(
        title="[header]⚙️ Configuration Status[/header]",
        show_header=True,
        header_style="bold cyan",
        border_style="border",
    )

    table.add_column("Config", style="bold")
    table.add_column("Status")
    table.add_column("Description", style="dim")

    for name, (is_set, description) in configs.items():
        status = "[success]✅ Set[/success]" if is_set else "[warning]⚠️ Not Set[/warning]"
        table.add_row(name, status, description)

    logger.console.print(table)
