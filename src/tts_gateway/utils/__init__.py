"""Utility helpers for tts-gateway."""
