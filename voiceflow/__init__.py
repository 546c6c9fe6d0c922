"""
VoiceFlow - voice transcription, speech, summaries and image prompts.

A command-line client that records audio, transcribes it with Whisper,
speaks text through OpenAI or ElevenLabs voices, summarizes text and
turns spoken ideas into image generation prompts.
"""

__version__ = "0.2.0"
__description__ = "Voice transcription, text-to-speech, summaries and image prompts over cloud AI APIs"
