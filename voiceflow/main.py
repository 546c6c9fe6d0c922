"""
Main application entry point for VoiceFlow.

VoiceFlowApp wires the services, settings, history stores and terminal UI
together; the click commands below are thin wrappers around its methods.
"""

import asyncio
import itertools
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import click
import httpx
import pyperclip
from rich.logging import RichHandler

from . import __version__
from .audio.recorder import AudioRecorder, AudioRecorderError, ContinuousRecorder
from .config import Config, load_config
from .credentials import APIKeyStatus, KeyStore, ServiceProvider, find_provider, get_providers
from .exceptions import ConfigurationError, StorageError, VoiceFlowError
from .prompts import PromptEnhancer, PromptPreset
from .services.elevenlabs import ElevenLabsService, ElevenLabsVoice
from .services.images import ImageModel, ImageModelManager
from .services.openai_service import OPENAI_VOICES, OpenAIService
from .services.transcription import Transcriber, TranscriptionResult
from .settings import (
    SettingsStore,
    SpeechSettings,
    STTProvider,
    STTSettings,
    SummarizeSettings,
    SummaryFormat,
    SummaryLength,
    TTSProvider,
    parse_enum,
)
from .storage import (
    SOURCE_CONTINUOUS,
    SOURCE_IMPORT,
    SOURCE_RECORDING,
    HistoryStores,
    PromptRecord,
    SummaryRecord,
    TranscriptionRecord,
    TTSRecord,
)
from .summarize import ClaudeSummaryProvider, OpenAISummaryProvider, Summarizer
from .ui.terminal import TerminalUI

logger = logging.getLogger(__name__)

HISTORY_KINDS = ["transcriptions", "speech", "summaries", "prompts"]


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich; DEBUG when verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=verbose, show_path=verbose)],
        force=True
    )
    # Request logs from the HTTP stack are noise at DEBUG
    for name in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)


def image_extension(data: bytes) -> str:
    """File extension for encoded image bytes."""
    if data.startswith(b"\x89PNG"):
        return "png"
    if data.startswith(b"\xff\xd8"):
        return "jpg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return "png"


def _timestamped(directory: Path, prefix: str, extension: str) -> Path:
    return directory / f"{prefix}-{datetime.now().strftime('%Y%m%d-%H%M%S-%f')}.{extension}"


def _write_bytes(path: Path, data: bytes) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise StorageError(f"Failed to write {path}: {e}") from e
    return path


class VoiceFlowApp:
    """
    Coordinates services, settings, history and the terminal UI.

    Every feature is an async method that performs the work, stores a
    history record and renders the result.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        ui: Optional[TerminalUI] = None,
        keys: Optional[KeyStore] = None,
        openai_client: Optional[Any] = None,
        anthropic_client: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the application.

        Args:
            config: Configuration (loaded from the environment when omitted)
            ui: Terminal UI
            keys: API key store (defaults to the home `.env`)
            openai_client: Pre-built AsyncOpenAI-compatible client
            anthropic_client: Pre-built AsyncAnthropic-compatible client
            http_client: Shared httpx client for REST services
        """
        self.config = config or load_config()
        try:
            self.config.ensure_dirs()
        except OSError as e:
            raise ConfigurationError(f"Cannot create VoiceFlow home {self.config.home}: {e}") from e

        self.ui = ui or TerminalUI()
        self.keys = keys or KeyStore(self.config.env_path)
        self.http_client = http_client

        store = SettingsStore(self.config.settings_path)
        self.summarize_settings = SummarizeSettings(store)
        self.stt_settings = STTSettings(store)
        self.speech_settings = SpeechSettings(store)

        self.openai = OpenAIService(self.keys, self.config, client=openai_client)
        self.elevenlabs = ElevenLabsService(self.keys, self.config, http_client)
        self.transcriber = Transcriber(self.openai, self.stt_settings)
        self.summarizer = Summarizer([
            OpenAISummaryProvider(self.openai),
            ClaudeSummaryProvider(self.keys, self.config, client=anthropic_client),
        ])
        self.enhancer = PromptEnhancer(self.openai)
        self.images = ImageModelManager(self.keys, self.openai, self.config, http_client)
        self.history = HistoryStores(self.config.history_dir)

    # Transcription

    async def _transcribe(self, audio_data: bytes, filename: str, duration: Optional[float]) -> TranscriptionResult:
        with self.ui.progress(f"Transcribing with {self.stt_settings.provider.value}..."):
            return await self.transcriber.transcribe(audio_data, filename=filename, duration=duration)

    def _save_transcription(self, result: TranscriptionResult, source_type: str) -> Optional[TranscriptionRecord]:
        if not result.text.strip():
            return None
        return self.history.transcriptions.add(TranscriptionRecord(
            transcribed_text=result.text.strip(),
            source_type=source_type,
            duration=result.duration,
            language=result.language
        ))

    async def record_and_transcribe(self, copy: bool = False) -> Optional[TranscriptionRecord]:
        """Record one take from the microphone and transcribe it."""
        if not await self.ui.prompt_start_recording():
            return None

        recorder = AudioRecorder()
        await recorder.start_recording()
        try:
            await self.ui.wait_while_recording(lambda: recorder.level_db)
        finally:
            audio_data = await recorder.stop_recording()

        duration = recorder.duration
        if duration < 0.1:
            self.ui.show_warning("No audio was recorded.")
            return None

        result = await self._transcribe(audio_data, "recording.wav", duration)
        self.ui.show_transcription(result)
        record = self._save_transcription(result, SOURCE_RECORDING)
        if record and copy:
            self.copy_to_clipboard(record.display_text)
        return record

    async def transcribe_file(self, path: Path, copy: bool = False) -> Optional[TranscriptionRecord]:
        """Transcribe an existing audio file."""
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Audio file not found: {path}")

        result = await self._transcribe(path.read_bytes(), path.name, None)
        self.ui.show_transcription(result)
        record = self._save_transcription(result, SOURCE_IMPORT)
        if record and copy:
            self.copy_to_clipboard(record.display_text)
        return record

    async def run_continuous(
        self,
        copy: bool = False,
        recorder: Optional[ContinuousRecorder] = None
    ) -> List[TranscriptionRecord]:
        """
        Record until stopped, transcribing each pause-delimited segment.

        A segment that fails to transcribe is reported and skipped; the
        recording carries on.
        """
        finished: List[Tuple[int, TranscriptionRecord]] = []
        order = itertools.count()

        async def handle_segment(segment: bytes) -> None:
            # Taken before the first await, so it follows the order segments were cut
            index = next(order)
            try:
                result = await self.transcriber.transcribe(segment, filename="segment.wav")
            except (VoiceFlowError, ValueError) as e:
                logger.warning(f"Skipping segment that failed to transcribe: {e}")
                self.ui.show_warning(f"Segment skipped: {getattr(e, 'message', e)}")
                return
            record = self._save_transcription(result, SOURCE_CONTINUOUS)
            if record is not None:
                finished.append((index, record))
                self.ui.show_segment(index + 1, record.transcribed_text)

        if recorder is None:
            if not await self.ui.prompt_start_recording(continuous=True):
                return []
            recorder = ContinuousRecorder(handle_segment)
        else:
            recorder.on_segment = handle_segment

        await recorder.start()
        try:
            await self.ui.wait_while_recording(lambda: recorder.level_db, lambda: len(finished))
        finally:
            await recorder.stop()

        # Transcriptions may finish out of order
        records = [record for _, record in sorted(finished, key=lambda item: item[0])]
        if records and copy:
            self.copy_to_clipboard("\n".join(r.transcribed_text for r in records))
        return records

    # Speech

    async def speak(
        self,
        text: str,
        provider: Optional[TTSProvider] = None,
        voice: Optional[str] = None,
        output: Optional[Path] = None
    ) -> TTSRecord:
        """Synthesize speech, save the MP3 and record it in history."""
        if not text.strip():
            raise ValueError("Text to speak cannot be empty")
        provider = provider or self.speech_settings.provider

        if provider == TTSProvider.ELEVENLABS:
            voice_id = voice or self.speech_settings.elevenlabs_voice_id
            with self.ui.progress("Synthesizing with ElevenLabs..."):
                audio = await self.elevenlabs.synthesize(text, voice_id)
            voice_used = f"ElevenLabs: {voice_id}"
        else:
            voice = voice or self.speech_settings.voice
            if voice not in OPENAI_VOICES:
                raise ConfigurationError(f"Unknown OpenAI voice '{voice}'. Choose one of: {', '.join(OPENAI_VOICES)}")
            with self.ui.progress("Synthesizing with OpenAI..."):
                audio = await self.openai.synthesize(text, voice)
            voice_used = voice

        path = _write_bytes(output or _timestamped(self.config.audio_dir, "speech", "mp3"), audio)
        record = self.history.speech.add(TTSRecord(
            input_text=text,
            voice_used=voice_used,
            audio_file_path=str(path)
        ))
        self.ui.show_success(f"Saved {len(audio)} bytes of audio to {path}")
        return record

    async def list_voices(self) -> Tuple[List[str], List[ElevenLabsVoice]]:
        """OpenAI voices plus the ElevenLabs account voices when a key is stored."""
        elevenlabs_voices: List[ElevenLabsVoice] = []
        if self.elevenlabs.has_api_key():
            with self.ui.progress("Fetching ElevenLabs voices..."):
                elevenlabs_voices = await self.elevenlabs.get_voices()
        self.ui.show_voices(OPENAI_VOICES, elevenlabs_voices)
        return list(OPENAI_VOICES), elevenlabs_voices

    # Summaries

    async def summarize(
        self,
        text: str,
        length: Optional[SummaryLength] = None,
        summary_format: Optional[SummaryFormat] = None,
        strategy: str = "single",
        copy: bool = False
    ) -> SummaryRecord:
        """Summarize text with the saved (or overridden) length and format."""
        if length is not None:
            self.summarize_settings.length = length
        if summary_format is not None:
            self.summarize_settings.format = summary_format

        with self.ui.progress("Summarizing..."):
            result = await self.summarizer.summarize(
                text,
                system_prompt=self.summarize_settings.build_system_prompt(),
                strategy=strategy
            )
        if not result.ok:
            raise VoiceFlowError(result.error)

        record = self.history.summaries.add(SummaryRecord(input_text=text, summary_text=result.summary))
        self.ui.show_text(
            "Summary",
            result.summary,
            f"{result.provider} · {self.summarize_settings.length.value} · {self.summarize_settings.format.value}"
        )
        if copy:
            self.copy_to_clipboard(result.summary)
        return record

    # Prompts and images

    async def enhance_prompt(
        self,
        idea: str,
        preset: PromptPreset = PromptPreset.NONE,
        save: bool = True,
        copy: bool = False
    ) -> PromptRecord:
        """Turn an idea into a detailed image prompt."""
        with self.ui.progress("Enhancing prompt..."):
            enhanced = await self.enhancer.enhance(idea, preset)

        record = PromptRecord(
            original_text=idea.strip(),
            enhanced_text=enhanced,
            preset=preset.value if preset != PromptPreset.NONE else None
        )
        if save:
            self.history.prompts.add(record)
        self.ui.show_text("Enhanced Prompt", enhanced, preset.value)
        if copy:
            self.copy_to_clipboard(enhanced)
        return record

    async def generate_image(
        self,
        prompt: str,
        model: ImageModel = ImageModel.GEMINI,
        output: Optional[Path] = None
    ) -> Path:
        """Generate an image and write it to disk."""
        if not prompt.strip():
            raise ValueError("Image prompt cannot be empty")

        service = self.images.service_for(model)
        with self.ui.progress(f"Generating image with {service.model_name}..."):
            data = await service.generate_image(prompt)

        path = output or _timestamped(self.config.images_dir, "image", image_extension(data))
        _write_bytes(path, data)
        self.ui.show_success(f"Saved {service.model_name} image to {path}")
        return path

    # History

    def history_store(self, kind: str):
        try:
            return self.history.by_kind(kind)
        except KeyError:
            raise ConfigurationError(f"Unknown history kind '{kind}'. Choose one of: {', '.join(HISTORY_KINDS)}")

    def _require_record(self, kind: str, record_id: str):
        record = self.history_store(kind).get(record_id)
        if record is None:
            raise StorageError(f"No {kind} record with id {record_id}")
        return record

    def edit_transcription(self, record_id: str, text: str) -> TranscriptionRecord:
        """Store an edited version of a transcription; blank text clears the edit."""
        record = self._require_record("transcriptions", record_id)

        def apply(r: TranscriptionRecord) -> None:
            r.edited_text = text.strip() or None

        return self.history.transcriptions.update(record.id, apply)

    def set_favorite(self, record_id: str, favorite: bool = True) -> PromptRecord:
        record = self._require_record("prompts", record_id)

        def apply(r: PromptRecord) -> None:
            r.is_favorite = favorite

        return self.history.prompts.update(record.id, apply)

    def delete_record(self, kind: str, record_id: str) -> None:
        record = self._require_record(kind, record_id)
        self.history_store(kind).delete(record.id)
        if isinstance(record, TTSRecord) and record.audio_file_path:
            Path(record.audio_file_path).unlink(missing_ok=True)

    def record_text(self, kind: str, record_id: str) -> str:
        """The text a record contributes when copied."""
        record = self._require_record(kind, record_id)
        if isinstance(record, TranscriptionRecord):
            return record.display_text
        if isinstance(record, SummaryRecord):
            return record.summary_text
        if isinstance(record, PromptRecord):
            return record.enhanced_text
        return record.input_text

    # Keys

    async def check_keys(self, validate: bool = True) -> List[Tuple[ServiceProvider, APIKeyStatus]]:
        providers = get_providers(self.keys, self.config, self.http_client)
        if not validate:
            return [(p, APIKeyStatus.UNTESTED) for p in providers]
        with self.ui.progress("Validating API keys..."):
            statuses = await asyncio.gather(*(p.check() for p in providers))
        return list(zip(providers, statuses))

    def copy_to_clipboard(self, text: str) -> bool:
        """Copy text to the system clipboard, printing it instead if that fails."""
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            self.ui.show_warning(f"Could not copy to clipboard: {e}")
            self.ui.console.print(text)
            return False
        self.ui.show_success("Copied to clipboard")
        return True


def _run(ctx: click.Context, operation: Callable[[], Awaitable[Any]]) -> Any:
    """Run an app coroutine, turning known failures into an exit code of 1."""
    app: VoiceFlowApp = ctx.obj
    try:
        return asyncio.run(operation())
    except KeyboardInterrupt:
        app.ui.show_info("Interrupted.")
        ctx.exit(0)
    except (VoiceFlowError, AudioRecorderError, ValueError, FileNotFoundError) as e:
        logger.debug("Command failed", exc_info=True)
        app.ui.show_error(e)
        ctx.exit(1)


def _handle_sync(ctx: click.Context, operation: Callable[[], Any]) -> Any:
    app: VoiceFlowApp = ctx.obj
    try:
        return operation()
    except (VoiceFlowError, ValueError) as e:
        app.ui.show_error(e)
        ctx.exit(1)


def _read_text(text: Optional[str], file: Optional[Path]) -> str:
    if file is not None:
        return Path(file).read_text(encoding="utf-8")
    if text is None or text == "-":
        return click.get_text_stream("stdin").read()
    return text


def _enum_option(enum_cls):
    """click callback turning free text into an enum member."""
    def convert(ctx, param, value):
        if value is None:
            return None
        try:
            return parse_enum(enum_cls, value)
        except ConfigurationError as e:
            raise click.BadParameter(str(e))
    return convert


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    help="VoiceFlow home directory (default: $VOICEFLOW_HOME or ~/.voiceflow)"
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, home: Optional[Path]) -> None:
    """
    VoiceFlow - voice transcription, speech, summaries and image prompts.

    API keys are read from the environment or from the `.env` file in the
    VoiceFlow home directory. Manage them with `voiceflow keys`.
    """
    setup_logging(verbose)
    if ctx.obj is None:
        try:
            ctx.obj = VoiceFlowApp(load_config(home))
        except VoiceFlowError as e:
            click.echo(f"Error: {e}", err=True)
            ctx.exit(1)


@cli.command()
@click.argument("file", required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--continuous", "-c", is_flag=True, help="Transcribe segment by segment until stopped")
@click.option("--copy", is_flag=True, help="Copy the result to the clipboard")
@click.pass_context
def transcribe(ctx: click.Context, file: Optional[Path], continuous: bool, copy: bool) -> None:
    """Record from the microphone (or transcribe FILE) and show the text."""
    app: VoiceFlowApp = ctx.obj
    if file is not None:
        _run(ctx, lambda: app.transcribe_file(file, copy=copy))
    elif continuous:
        _run(ctx, lambda: app.run_continuous(copy=copy))
    else:
        _run(ctx, lambda: app.record_and_transcribe(copy=copy))


@cli.command()
@click.argument("text", required=False)
@click.option("--file", "-f", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Read text from a file")
@click.option("--provider", "-p", callback=_enum_option(TTSProvider), help="openai or elevenlabs")
@click.option("--voice", help="OpenAI voice name or ElevenLabs voice id")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Where to save the MP3")
@click.pass_context
def speak(ctx, text, file, provider, voice, output) -> None:
    """Convert TEXT (or stdin) to speech and save it as MP3."""
    app: VoiceFlowApp = ctx.obj
    content = _read_text(text, file)
    _run(ctx, lambda: app.speak(content, provider=provider, voice=voice, output=output))


@cli.command()
@click.pass_context
def voices(ctx) -> None:
    """List the available voices."""
    app: VoiceFlowApp = ctx.obj
    _run(ctx, app.list_voices)


@cli.command()
@click.argument("text", required=False)
@click.option("--file", "-f", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Read text from a file")
@click.option("--length", "-l", callback=_enum_option(SummaryLength), help="brief, standard or detailed")
@click.option("--format", "summary_format", callback=_enum_option(SummaryFormat), help="prose, bullets or key-takeaways")
@click.option("--strategy", type=click.Choice(["single", "cascade"]), default="single", show_default=True,
              help="Use the first available provider, or fall back through all of them")
@click.option("--copy", is_flag=True, help="Copy the summary to the clipboard")
@click.pass_context
def summarize(ctx, text, file, length, summary_format, strategy, copy) -> None:
    """Summarize TEXT (or stdin)."""
    app: VoiceFlowApp = ctx.obj
    content = _read_text(text, file)
    _run(ctx, lambda: app.summarize(
        content, length=length, summary_format=summary_format, strategy=strategy, copy=copy
    ))


@cli.command()
@click.argument("idea")
@click.option("--preset", "-p", callback=_enum_option(PromptPreset), help="Style preset, e.g. cinematic")
@click.option("--generate", "-g", is_flag=True, help="Also generate an image from the enhanced prompt")
@click.option("--model", "-m", callback=_enum_option(ImageModel), help="Image model for --generate")
@click.option("--no-save", is_flag=True, help="Do not keep the prompt in history")
@click.option("--copy", is_flag=True, help="Copy the enhanced prompt to the clipboard")
@click.pass_context
def prompt(ctx, idea, preset, generate, model, no_save, copy) -> None:
    """Turn a rough IDEA into a detailed image prompt."""
    app: VoiceFlowApp = ctx.obj

    async def run() -> None:
        record = await app.enhance_prompt(idea, preset or PromptPreset.NONE, save=not no_save, copy=copy)
        if generate:
            await app.generate_image(record.enhanced_text, model or ImageModel.GEMINI)

    _run(ctx, run)


@cli.command()
@click.argument("prompt_text", metavar="PROMPT")
@click.option("--model", "-m", callback=_enum_option(ImageModel), help="gemini, dalle3, imagen4 or flux")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Where to save the image")
@click.pass_context
def image(ctx, prompt_text, model, output) -> None:
    """Generate an image from PROMPT."""
    app: VoiceFlowApp = ctx.obj
    _run(ctx, lambda: app.generate_image(prompt_text, model or ImageModel.GEMINI, output=output))


@cli.group()
def history() -> None:
    """Browse and manage saved history."""
    pass


kind_argument = click.argument("kind", type=click.Choice(HISTORY_KINDS))


@history.command("list")
@kind_argument
@click.option("--limit", "-n", default=20, show_default=True)
@click.pass_context
def history_list(ctx, kind, limit) -> None:
    """Show the most recent records of KIND."""
    app: VoiceFlowApp = ctx.obj
    records = _handle_sync(ctx, lambda: app.history_store(kind).recent(limit))
    app.ui.show_history(kind, records)


@history.command("search")
@kind_argument
@click.argument("query")
@click.option("--limit", "-n", default=20, show_default=True)
@click.pass_context
def history_search(ctx, kind, query, limit) -> None:
    """Find records of KIND containing QUERY."""
    app: VoiceFlowApp = ctx.obj
    records = _handle_sync(ctx, lambda: app.history_store(kind).search(query, limit))
    app.ui.show_history(kind, records)


@history.command("show")
@kind_argument
@click.argument("record_id")
@click.pass_context
def history_show(ctx, kind, record_id) -> None:
    """Print the full text of one record."""
    app: VoiceFlowApp = ctx.obj
    text = _handle_sync(ctx, lambda: app.record_text(kind, record_id))
    app.ui.show_text(kind.capitalize(), text, record_id)


@history.command("copy")
@kind_argument
@click.argument("record_id")
@click.pass_context
def history_copy(ctx, kind, record_id) -> None:
    """Copy one record's text to the clipboard."""
    app: VoiceFlowApp = ctx.obj
    text = _handle_sync(ctx, lambda: app.record_text(kind, record_id))
    app.copy_to_clipboard(text)


@history.command("delete")
@kind_argument
@click.argument("record_id")
@click.pass_context
def history_delete(ctx, kind, record_id) -> None:
    """Delete one record."""
    app: VoiceFlowApp = ctx.obj
    _handle_sync(ctx, lambda: app.delete_record(kind, record_id))
    app.ui.show_success(f"Deleted {record_id}")


@history.command("clear")
@kind_argument
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def history_clear(ctx, kind, yes) -> None:
    """Delete every record of KIND."""
    app: VoiceFlowApp = ctx.obj
    if not yes and not app.ui.confirm(f"Delete all {kind}?"):
        return
    removed = _handle_sync(ctx, lambda: app.history_store(kind).clear())
    app.ui.show_success(f"Removed {removed} {kind}")


@history.command("edit")
@click.argument("record_id")
@click.argument("text")
@click.pass_context
def history_edit(ctx, record_id, text) -> None:
    """Replace the displayed text of a transcription (empty TEXT restores it)."""
    app: VoiceFlowApp = ctx.obj
    record = _handle_sync(ctx, lambda: app.edit_transcription(record_id, text))
    app.ui.show_text("Transcription", record.display_text, record.id[:8])


@history.command("favorite")
@click.argument("record_id")
@click.option("--off", is_flag=True, help="Remove the favorite mark")
@click.pass_context
def history_favorite(ctx, record_id, off) -> None:
    """Mark a saved prompt as favorite."""
    app: VoiceFlowApp = ctx.obj
    record = _handle_sync(ctx, lambda: app.set_favorite(record_id, not off))
    app.ui.show_success(f"Prompt {record.id[:8]} {'is' if record.is_favorite else 'is no longer'} a favorite")


SETTING_NAMES = [
    "summary-length",
    "summary-format",
    "stt-provider",
    "language",
    "tts-provider",
    "voice",
    "elevenlabs-voice",
]


@cli.group()
def settings() -> None:
    """Show or change saved settings."""
    pass


@settings.command("show")
@click.pass_context
def settings_show(ctx) -> None:
    app: VoiceFlowApp = ctx.obj
    rows = [
        ("summary-length", app.summarize_settings.length.value),
        ("summary-format", app.summarize_settings.format.value),
        ("stt-provider", app.stt_settings.provider.value),
        ("language", app.stt_settings.language),
        ("tts-provider", app.speech_settings.provider.value),
        ("voice", app.speech_settings.voice),
        ("elevenlabs-voice", app.speech_settings.elevenlabs_voice_id),
        ("home", str(app.config.home)),
    ]
    if app.stt_settings.provider == STTProvider.LOCAL:
        info = app.transcriber.local.get_model_info()
        if info["available"]:
            status = "loaded" if info["loaded"] else "not loaded"
        else:
            status = "faster-whisper not installed"
        rows.insert(3, (
            "local-model",
            f"{info['model_size']} on {info['device']} ({info['compute_type']}), {status}"
        ))
    app.ui.show_settings(rows)


@settings.command("set")
@click.argument("name", type=click.Choice(SETTING_NAMES))
@click.argument("value")
@click.pass_context
def settings_set(ctx, name, value) -> None:
    """Change setting NAME to VALUE."""
    app: VoiceFlowApp = ctx.obj

    def apply() -> None:
        if name == "summary-length":
            app.summarize_settings.length = parse_enum(SummaryLength, value)
        elif name == "summary-format":
            app.summarize_settings.format = parse_enum(SummaryFormat, value)
        elif name == "stt-provider":
            app.stt_settings.provider = parse_enum(STTProvider, value)
        elif name == "language":
            app.stt_settings.language = value
        elif name == "tts-provider":
            app.speech_settings.provider = parse_enum(TTSProvider, value)
        elif name == "voice":
            if value not in OPENAI_VOICES:
                raise ConfigurationError(f"Unknown OpenAI voice '{value}'. Choose one of: {', '.join(OPENAI_VOICES)}")
            app.speech_settings.voice = value
        elif name == "elevenlabs-voice":
            app.speech_settings.elevenlabs_voice_id = value

    _handle_sync(ctx, apply)
    app.ui.show_success(f"{name} updated")


@cli.group()
def keys() -> None:
    """Manage API keys."""
    pass


def _provider(ctx: click.Context, provider_id: str) -> ServiceProvider:
    app: VoiceFlowApp = ctx.obj
    try:
        return find_provider(provider_id, app.keys, app.config, app.http_client)
    except KeyError as e:
        raise click.BadParameter(e.args[0], param_hint="PROVIDER")


@keys.command("list")
@click.option("--check", is_flag=True, help="Validate each stored key against its service")
@click.pass_context
def keys_list(ctx, check) -> None:
    """Show which keys are stored."""
    app: VoiceFlowApp = ctx.obj
    statuses = _run(ctx, lambda: app.check_keys(validate=check))
    app.ui.show_key_statuses(statuses)


@keys.command("set")
@click.argument("provider_id", metavar="PROVIDER")
@click.argument("value", required=False)
@click.option("--no-check", is_flag=True, help="Save without validating")
@click.pass_context
def keys_set(ctx, provider_id, value, no_check) -> None:
    """Store the API key for PROVIDER (prompted when VALUE is omitted)."""
    app: VoiceFlowApp = ctx.obj
    provider = _provider(ctx, provider_id)
    if value is None:
        value = click.prompt(f"{provider.name} API key", hide_input=True)
    value = value.strip()

    if not no_check:
        valid = _run(ctx, lambda: provider.validate(value))
        if not valid:
            app.ui.show_error(ConfigurationError(f"{provider.name} rejected the key. It was not saved."))
            ctx.exit(1)

    _handle_sync(ctx, lambda: setattr(provider, "api_key", value))
    app.ui.show_success(f"{provider.name} key saved")


@keys.command("delete")
@click.argument("provider_id", metavar="PROVIDER")
@click.pass_context
def keys_delete(ctx, provider_id) -> None:
    """Remove the stored key for PROVIDER."""
    app: VoiceFlowApp = ctx.obj
    provider = _provider(ctx, provider_id)
    provider.api_key = None
    app.ui.show_success(f"{provider.name} key removed")


@keys.command("test")
@click.argument("provider_id", metavar="PROVIDER")
@click.pass_context
def keys_test(ctx, provider_id) -> None:
    """Validate the stored key for PROVIDER."""
    app: VoiceFlowApp = ctx.obj
    provider = _provider(ctx, provider_id)
    status = _run(ctx, provider.check)
    app.ui.show_key_statuses([(provider, status)])
    if status == APIKeyStatus.INVALID:
        ctx.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
