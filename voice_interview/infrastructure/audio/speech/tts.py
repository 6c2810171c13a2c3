"""
Text-to-speech using Google Cloud TTS, with a system voice as fallback.
"""
import sys
import shutil
import signal
import asyncio
import logging
from typing import List, Optional

from google.cloud import texttospeech

from ....config import TTS_SAMPLE_RATE
from ....interview.services import LocalSynthesisFallback, SpeechSynthesisEngine, VoiceConfig

logger = logging.getLogger("speech_tts")


class GoogleSynthesisEngine(SpeechSynthesisEngine):
    """Google Cloud Text-to-Speech returning LINEAR16 WAV payloads."""

    def __init__(self,
                 sample_rate: int = TTS_SAMPLE_RATE,
                 client: Optional[texttospeech.TextToSpeechClient] = None):
        self.sample_rate = sample_rate
        self._client = client

    def _synthesize_sync(self, text: str, voice: VoiceConfig) -> bytes:
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()

        synthesis_input = texttospeech.SynthesisInput(text=text)
        voice_params = texttospeech.VoiceSelectionParams(
            language_code=voice.language_code,
            name=voice.name,
        )
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            speaking_rate=voice.speaking_rate,
            pitch=voice.pitch,
        )
        response = self._client.synthesize_speech(
            input=synthesis_input, voice=voice_params, audio_config=audio_config
        )
        logger.debug(f"Synthesized {len(response.audio_content)} bytes for: {text[:60]}")
        return response.audio_content

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        return await asyncio.to_thread(self._synthesize_sync, text, voice)


class SystemSpeechFallback(LocalSynthesisFallback):
    """
    Speak with the operating system voice (`say` on macOS, `espeak` elsewhere).
    Prints the line when neither is installed.
    """

    def __init__(self, rate_wpm: int = 175):
        self.rate_wpm = rate_wpm
        self._process: Optional[asyncio.subprocess.Process] = None
        self._paused = False

    def _command(self, text: str, volume: float) -> Optional[List[str]]:
        if sys.platform == "darwin" and shutil.which("say"):
            return ["say", "-r", str(self.rate_wpm), f"[[volm {volume:.2f}]] {text}"]
        for binary in ("espeak-ng", "espeak"):
            if shutil.which(binary):
                return [binary, "-s", str(self.rate_wpm), "-a", str(int(round(volume * 100))), text]
        return None

    async def speak(self, text: str, volume: float = 1.0) -> None:
        command = self._command(text, max(0.0, min(1.0, volume)))
        if command is None:
            print(f"🤖 {text}")  # Final fallback
            return

        self._process = await asyncio.create_subprocess_exec(
            *command, stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.PIPE
        )
        process = self._process
        if self._paused:
            self._signal(process, getattr(signal, "SIGSTOP", None))
        try:
            _, stderr = await process.communicate()
        finally:
            if self._process is process:
                self._process = None
        # Negative return codes mean we cancelled it
        if process.returncode and process.returncode > 0:
            raise RuntimeError(f"{command[0]} exited with {process.returncode}: {stderr.decode(errors='replace').strip()}")

    def cancel(self) -> None:
        process, self._process = self._process, None
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            if self._paused:
                self._signal(process, getattr(signal, "SIGCONT", None))

    def pause(self) -> None:
        self._paused = True
        self._signal(self._process, getattr(signal, "SIGSTOP", None))

    def resume(self) -> None:
        self._paused = False
        self._signal(self._process, getattr(signal, "SIGCONT", None))

    @staticmethod
    def _signal(process: Optional[asyncio.subprocess.Process], signum: Optional[int]) -> None:
        # Job-control signals are POSIX only
        if process is None or signum is None or process.returncode is not None:
            return
        try:
            process.send_signal(signum)
        except ProcessLookupError:
            pass
