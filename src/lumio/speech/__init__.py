"""Spoken output and spoken-name capture."""

from lumio.speech.capture import (
    MockSpeechCapture,
    SpeechCapture,
    Transcript,
    WhisperSpeechCapture,
    create_speech_capture,
)
from lumio.speech.narrator import ConsoleNarrator, EspeakNarrator, MockNarrator, Narrator, create_narrator

__all__ = [
    "ConsoleNarrator",
    "EspeakNarrator",
    "MockNarrator",
    "MockSpeechCapture",
    "Narrator",
    "SpeechCapture",
    "Transcript",
    "WhisperSpeechCapture",
    "create_narrator",
    "create_speech_capture",
]
