"""Speech-to-text and text-to-speech engines."""

from .tts import GoogleSynthesisEngine, SystemSpeechFallback
from .stt import GoogleStreamingRecognitionEngine, MicrophoneStream

__all__ = ["GoogleSynthesisEngine", "SystemSpeechFallback", "GoogleStreamingRecognitionEngine", "MicrophoneStream"]
