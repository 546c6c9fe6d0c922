"""
Application configuration.

Holds API endpoints, model names, timeouts and the on-disk layout of the
VoiceFlow home directory. Environment variables can be supplied through
`.env` files, which are loaded with python-dotenv.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "VOICEFLOW_HOME"
DEFAULT_HOME = Path.home() / ".voiceflow"


def default_home() -> Path:
    """Return the VoiceFlow home directory (``$VOICEFLOW_HOME`` or ``~/.voiceflow``)."""
    override = os.environ.get(HOME_ENV_VAR)
    return Path(override).expanduser() if override else DEFAULT_HOME


@dataclass
class Config:
    """Endpoints, models, timeouts and paths used across the application."""

    # OpenAI
    whisper_endpoint: str = "https://api.openai.com/v1/audio/transcriptions"
    tts_endpoint: str = "https://api.openai.com/v1/audio/speech"
    chat_endpoint: str = "https://api.openai.com/v1/chat/completions"
    models_endpoint: str = "https://api.openai.com/v1/models"
    openai_base_url: str = "https://api.openai.com/v1"
    whisper_model: str = "whisper-1"
    tts_model: str = "tts-1"
    chat_model: str = "gpt-4o-mini"
    dalle_model: str = "dall-e-3"

    # ElevenLabs
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_model: str = "eleven_monolingual_v1"

    # Google
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_image_model: str = "gemini-2.0-flash-exp"
    imagen_model: str = "imagen-4.0-generate-001"

    # fal.ai
    flux_endpoint: str = "https://fal.run/fal-ai/flux/dev"

    # Anthropic
    anthropic_models_endpoint: str = "https://api.anthropic.com/v1/models"
    claude_model: str = "claude-3-haiku-20240307"

    # Timeouts (seconds)
    whisper_timeout: float = 60.0
    tts_timeout: float = 30.0
    chat_timeout: float = 30.0
    image_timeout: float = 60.0
    flux_timeout: float = 120.0
    validation_timeout: float = 10.0

    # Retry policy for 429/503 and network failures
    max_attempts: int = 3
    retry_base_delay: float = 0.5

    home: Path = field(default_factory=default_home)

    @property
    def settings_path(self) -> Path:
        return self.home / "settings.json"

    @property
    def env_path(self) -> Path:
        return self.home / ".env"

    @property
    def history_dir(self) -> Path:
        return self.home / "history"

    @property
    def audio_dir(self) -> Path:
        return self.home / "audio"

    @property
    def images_dir(self) -> Path:
        return self.home / "images"

    def ensure_dirs(self) -> None:
        """Create the home directory tree if it does not exist."""
        for path in (self.home, self.history_dir, self.audio_dir, self.images_dir):
            path.mkdir(parents=True, exist_ok=True)


def load_config(home: Optional[Path] = None) -> Config:
    """
    Load environment files and build the configuration.

    A `.env` in the working directory is loaded first, then the one in the
    VoiceFlow home directory. Variables already present in the environment
    are never overridden.

    Args:
        home: Home directory override (defaults to ``$VOICEFLOW_HOME``)

    Returns:
        Populated Config instance.
    """
    load_dotenv()
    config = Config(home=Path(home)) if home else Config()
    if config.env_path.exists():
        load_dotenv(config.env_path)
        logger.debug(f"Loaded environment from {config.env_path}")
    return config
