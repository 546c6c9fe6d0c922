"""Clients for the external APIs VoiceFlow talks to."""
