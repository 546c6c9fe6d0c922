"""
Rich-based terminal user interface.

Renders recording status with a live input level, results, history tables
and errors for the VoiceFlow command line.
"""

import asyncio
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text

from ..audio.recorder import AudioRecorderError
from ..credentials import APIKeyStatus, ServiceProvider
from ..exceptions import (
    LocalModelError,
    MissingAPIKeyError,
    NetworkError,
    RetryExhaustedError,
    StorageError,
)
from ..services.elevenlabs import ElevenLabsVoice
from ..services.transcription import TranscriptionResult
from ..storage.records import PromptRecord, Record, SummaryRecord, TranscriptionRecord, TTSRecord

LEVEL_METER_WIDTH = 30
LEVEL_METER_FLOOR_DB = -60.0

STATUS_STYLES = {
    APIKeyStatus.UNTESTED: "dim",
    APIKeyStatus.VALID: "green",
    APIKeyStatus.INVALID: "red",
    APIKeyStatus.TESTING: "yellow",
}


def level_bar(level_db: float, width: int = LEVEL_METER_WIDTH) -> str:
    """Horizontal meter for a dBFS level, empty at -60 dB and full at 0 dB."""
    fraction = (level_db - LEVEL_METER_FLOOR_DB) / -LEVEL_METER_FLOOR_DB
    filled = int(round(max(0.0, min(1.0, fraction)) * width))
    return "█" * filled + "░" * (width - filled)


def _preview(text: str, limit: int = 80) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit - 3] + "..."


class TerminalUI:
    """Terminal front end for the VoiceFlow commands."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def _recording_panel(self, elapsed: float, level_db: float, segments: Optional[int]) -> Panel:
        body = Text("🔴 RECORDING", style="bold red")
        body.append(f"  {elapsed:5.1f}s\n\n", style="white")
        body.append(level_bar(level_db), style="green" if level_db > -40 else "dim")
        body.append(f" {level_db:6.1f} dB\n", style="dim")
        if segments is not None:
            body.append(f"\nSegments transcribed: {segments}", style="cyan")
        body.append("\n\nPress Enter to stop", style="white")
        return Panel(body, title="Recording Audio", title_align="center", border_style="red", padding=(1, 2))

    async def wait_while_recording(
        self,
        level_source: Callable[[], float],
        segment_count: Optional[Callable[[], int]] = None
    ) -> bool:
        """
        Show a live level meter until the user presses Enter.

        Returns:
            True when stopped with Enter, False on end of input.
        """
        start = time.time()
        loop = asyncio.get_running_loop()
        stop = loop.run_in_executor(None, input)

        def render() -> Panel:
            count = segment_count() if segment_count else None
            return self._recording_panel(time.time() - start, level_source(), count)

        with Live(render(), console=self.console, refresh_per_second=10, transient=True) as live:
            while not stop.done():
                live.update(render())
                await asyncio.sleep(0.1)

        try:
            await stop
        except EOFError:
            return False
        self.console.print(f"⏹️  Recording stopped ({time.time() - start:.1f}s)")
        return True

    async def prompt_start_recording(self, continuous: bool = False) -> bool:
        """Wait for Enter before recording starts."""
        mode = "continuous transcription" if continuous else "recording"
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: input(f"Press Enter to start {mode} (Ctrl+C to quit): "))
            return True
        except EOFError:
            return False

    @contextmanager
    def progress(self, message: str) -> Iterator[None]:
        """Spinner shown while network work is in flight."""
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True
        ) as progress:
            progress.add_task(f"🤖 {message}", total=None)
            yield

    def show_transcription(self, result: TranscriptionResult) -> None:
        details = [result.provider.value]
        if result.language:
            details.append(f"language: {result.language}")
        if result.duration:
            details.append(f"{result.duration:.1f}s audio")
        self.show_text("Transcription", result.text or "[dim](no speech detected)[/dim]", " · ".join(details))

    def show_segment(self, index: int, text: str) -> None:
        self.console.print(f"[cyan]{index:>3}[/cyan] {text}")

    def show_text(self, title: str, text: str, subtitle: Optional[str] = None) -> None:
        """Panel for a block of result text (summary, prompt, transcription)."""
        self.console.print(Panel(
            text,
            title=title,
            subtitle=subtitle,
            title_align="left",
            border_style="cyan",
            padding=(1, 2)
        ))

    def show_history(self, kind: str, records: Sequence[Record]) -> None:
        if not records:
            self.console.print(f"[dim]No {kind} in history.[/dim]")
            return

        table = Table(title=f"History: {kind}", box=box.ROUNDED, header_style="bold white")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("When", style="yellow", no_wrap=True)
        table.add_column("Details", style="magenta")
        table.add_column("Text", style="white")

        for record in records:
            table.add_row(record.id[:8], record.timestamp.strftime("%Y-%m-%d %H:%M"), *self._history_cells(record))
        self.console.print(table)

    @staticmethod
    def _history_cells(record: Record) -> Tuple[str, str]:
        if isinstance(record, TranscriptionRecord):
            details = record.source_type
            if record.duration:
                details += f", {record.duration:.1f}s"
            if record.edited_text:
                details += ", edited"
            return details, _preview(record.display_text)
        if isinstance(record, TTSRecord):
            return record.voice_used, _preview(record.input_text)
        if isinstance(record, SummaryRecord):
            return f"{len(record.input_text)} chars in", _preview(record.summary_text)
        if isinstance(record, PromptRecord):
            details = record.preset or "None"
            if record.is_favorite:
                details = "★ " + details
            return details, _preview(record.enhanced_text)
        return "", ""

    def show_voices(self, openai_voices: Sequence[str], elevenlabs_voices: Sequence[ElevenLabsVoice]) -> None:
        table = Table(title="Voices", box=box.ROUNDED, header_style="bold white")
        table.add_column("Provider", style="magenta")
        table.add_column("Voice ID", style="cyan")
        table.add_column("Name", style="white")
        table.add_column("Category", style="dim")
        for voice in openai_voices:
            table.add_row("OpenAI", voice, voice.capitalize(), "")
        for voice in elevenlabs_voices:
            table.add_row("ElevenLabs", voice.voice_id, voice.name, voice.category or "")
        self.console.print(table)

    def show_key_statuses(self, statuses: List[Tuple[ServiceProvider, APIKeyStatus]]) -> None:
        table = Table(title="API Keys", box=box.ROUNDED, header_style="bold white")
        table.add_column("ID", style="cyan")
        table.add_column("Service", style="magenta")
        table.add_column("Variable", style="dim")
        table.add_column("Stored", style="white")
        table.add_column("Status")
        for provider, status in statuses:
            table.add_row(
                provider.id,
                provider.name,
                provider.key_name,
                "yes" if provider.has_key else "no",
                Text(status.value, style=STATUS_STYLES[status])
            )
        self.console.print(table)

    def show_settings(self, rows: Sequence[Tuple[str, str]]) -> None:
        table = Table(title="Settings", box=box.ROUNDED, show_header=False)
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="white")
        for name, value in rows:
            table.add_row(name, value)
        self.console.print(table)

    def confirm(self, question: str, default: bool = False) -> bool:
        return Confirm.ask(question, console=self.console, default=default)

    def show_info(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def show_warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠️  {message}[/yellow]")

    def show_error(self, error: Exception) -> None:
        """Error panel with a hint for the common failure kinds."""
        message = getattr(error, "message", None) or str(error)

        if isinstance(error, MissingAPIKeyError):
            guidance = "Run `voiceflow keys list` to see which keys are configured."
        elif isinstance(error, RetryExhaustedError):
            guidance = "The service is rate limiting or overloaded. Wait a moment and try again."
        elif isinstance(error, NetworkError):
            guidance = "Check your internet connection."
        elif isinstance(error, AudioRecorderError):
            guidance = "Check that a microphone is connected and that your terminal may use it."
        elif isinstance(error, LocalModelError):
            guidance = "Switch back with `voiceflow settings set stt-provider cloud` or install the local extra."
        elif isinstance(error, StorageError):
            guidance = "Check permissions on the VoiceFlow home directory."
        else:
            guidance = ""

        body = Text(f"❌ {message}", style="red")
        if guidance:
            body.append(f"\n\n💡 {guidance}", style="white")
        self.console.print(Panel(body, title="Error", title_align="center", border_style="red", padding=(1, 2)))

    def show_success(self, message: str) -> None:
        self.console.print(f"[green]✅ {message}[/green]")
