"""
Interview session: builds every component for one interview and owns its lifecycle.
"""
import os
import sys
import time
import asyncio
import logging
import threading
from typing import Optional

from .capture import CaptureController
from .coordinator import TurnCoordinator
from .events import (
    EventLogger,
    EventType,
    InterviewEvent,
    InterviewEventBus,
    InterviewMetrics,
)
from .models import InterviewResult
from .policy import DialogueTurnPolicy
from .prompts import InterviewPrompts
from .retry import RetryPolicy, Scheduler, exponential_backoff
from .services import (
    AudioPlayer,
    DialogueReplyService,
    KeywordModerationCheck,
    LocalSynthesisFallback,
    ModerationCheck,
    RecordingSink,
    SpeechRecognitionEngine,
    SpeechSynthesisEngine,
    TranscriptSink,
    VoiceConfig,
)
from .synthesis import SynthesisQueue
from ..config import Config, TTS_PITCH, TTS_SPEAKING_RATE

logger = logging.getLogger("orchestrator")


class InterviewSession:
    """
    One live interview.

    Collaborators not passed in are built from the Google/Vertex/PyAudio
    infrastructure in `init()`. `run()` greets the candidate, waits until the
    interview ends and always disposes of every component before returning.
    """

    def __init__(self,
                 config: Config,
                 recognition_engine: Optional[SpeechRecognitionEngine] = None,
                 synthesis_engine: Optional[SpeechSynthesisEngine] = None,
                 player: Optional[AudioPlayer] = None,
                 fallback: Optional[LocalSynthesisFallback] = None,
                 dialogue: Optional[DialogueReplyService] = None,
                 moderation: Optional[ModerationCheck] = None,
                 transcript_sink: Optional[TranscriptSink] = None,
                 recording_sink: Optional[RecordingSink] = None,
                 scheduler: Optional[Scheduler] = None,
                 greeting: Optional[str] = None,
                 console: bool = False,
                 warmup: bool = False):
        self.config = config
        self.recognition_engine = recognition_engine
        self.synthesis_engine = synthesis_engine
        self.player = player
        self.fallback = fallback
        self.dialogue = dialogue
        self.moderation = moderation
        self.transcript_sink = transcript_sink
        self.recording_sink = recording_sink
        self.scheduler = scheduler or Scheduler()
        self.greeting = greeting
        self.console = console
        self.warmup = warmup

        self.conversation_id = f"conv_{int(time.time())}"
        self.conversation_dir: Optional[str] = None

        # Initialize event system
        self.event_bus = InterviewEventBus()
        self.event_logger = EventLogger()
        self.metrics = InterviewMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)
        if console:
            self.event_bus.subscribe_all(self._print_event)

        self.capture: Optional[CaptureController] = None
        self.synthesis: Optional[SynthesisQueue] = None
        self.coordinator: Optional[TurnCoordinator] = None
        self._initialized = False
        self._disposed = False
        self._owns_player = player is None
        self._stdin_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Build the components. Idempotent."""
        if self._initialized:
            return
        config = self.config

        if self._needs_infrastructure():
            self._build_infrastructure()

        self.capture = CaptureController(
            self.recognition_engine,
            confidence_threshold=config.confidence_threshold,
            silence_window=config.silence_window,
            resume_debounce=config.resume_debounce,
            retry_policy=RetryPolicy(
                max_attempts=config.capture_max_retries,
                backoff=exponential_backoff(config.capture_backoff_base, config.capture_backoff_max),
            ),
            scheduler=self.scheduler,
        )
        self.synthesis = SynthesisQueue(
            self.synthesis_engine,
            self.player,
            fallback=self.fallback,
            voice=VoiceConfig(
                name=config.tts_voice,
                language_code=config.language_code,
                speaking_rate=TTS_SPEAKING_RATE,
                pitch=TTS_PITCH,
            ),
            retry_policy=RetryPolicy(
                max_attempts=config.synthesis_max_retries,
                backoff=exponential_backoff(config.synthesis_backoff_base, config.synthesis_backoff_max),
            ),
            scheduler=self.scheduler,
            cache_key_max_chars=config.cache_key_max_chars,
            muted=config.start_muted,
        )
        policy = DialogueTurnPolicy(
            self.moderation or KeywordModerationCheck(config.moderation_words),
            warning_limit=config.warning_limit,
        )
        self.coordinator = TurnCoordinator(
            self.capture,
            self.synthesis,
            self.dialogue,
            policy,
            persona=config.persona,
            interview_type=config.interview_type,
            candidate_name=config.candidate_name,
            conversation_id=self.conversation_id,
            event_bus=self.event_bus,
            transcript_sink=self.transcript_sink,
            dialogue_timeout=config.dialogue_timeout,
            scheduler=self.scheduler,
            greeting=self.greeting,
        )
        self._initialized = True
        logger.info(f"Session {self.conversation_id} initialized ({config.interview_type})")

        if self.warmup:
            await self.synthesis.warmup(config.persona.warmup_message)

    async def dispose(self) -> None:
        """End the interview if needed and release every resource. Idempotent."""
        if self._disposed or not self._initialized:
            return
        self._disposed = True

        await self.coordinator.end("disposed")
        await self.capture.close()
        await self.coordinator.flush_sink()

        if self.transcript_sink is not None:
            result = self.coordinator.result()
            recording_path = self.recording_sink.close() if self.recording_sink is not None else None
            try:
                await self.transcript_sink.close(result.messages, {
                    "interview_type": self.config.interview_type,
                    "candidate_name": self.config.candidate_name,
                    "end_reason": result.end_reason,
                    "final_stage": result.final_stage.value,
                    "warning_count": result.warning_count,
                    "terminated": result.terminated,
                    "recording_path": recording_path,
                    "metrics": self.metrics.get_metrics(),
                })
            except Exception as e:
                logger.error(f"Failed to save conversation record: {e}")
        elif self.recording_sink is not None:
            self.recording_sink.close()

        if self._owns_player and hasattr(self.player, "close"):
            self.player.close()
        logger.info(f"Session {self.conversation_id} disposed")

    async def run(self) -> InterviewResult:
        """
        Run the complete interview.

        Returns:
            InterviewResult with the final transcript and outcome
        """
        await self.init()

        if self.console:
            print(f"\n🎙️  Starting {self.config.interview_type} interview with {self.config.persona.name}")
            print(f"📝 Detailed logs: {self.config.log_file}")
            print("   Type a reply and press Enter, or /mute /unmute /pause /resume /mic /code <language> /end")
            print("=" * 50)
            self._start_console_reader()

        try:
            await self.coordinator.join()
            result = await self.coordinator.wait_ended()
        finally:
            await self.dispose()

        result = self.coordinator.result()
        if self.console:
            self._display_result(result)
        return result

    # ------------------------------------------------------------------
    # Console
    # ------------------------------------------------------------------

    def _print_event(self, event: InterviewEvent) -> None:
        if event.event_type == EventType.MESSAGE_APPENDED:
            if event.data["sender"] == "user":
                print(f"💬 \"{event.data['text']}\"")
            elif event.data["kind"] == "warning":
                print(f"⚠️  {self.config.persona.name}: {event.data['text']}")
            else:
                print(f"🤖 {self.config.persona.name}: {event.data['text']}")
        elif event.event_type == EventType.STATE_CHANGED and event.data["current"] == "listening":
            print("🎧 Listening...")
        elif event.event_type == EventType.ERROR_OCCURRED and event.data.get("user_visible"):
            print(f"❌ {event.data['error_message']}")

    def _start_console_reader(self) -> None:
        loop = asyncio.get_running_loop()

        def read_lines():
            for line in sys.stdin:
                try:
                    loop.call_soon_threadsafe(self._handle_console_line, line.rstrip("\n"))
                except RuntimeError:
                    return

        self._stdin_thread = threading.Thread(target=read_lines, name="console-input", daemon=True)
        self._stdin_thread.start()

    def _handle_console_line(self, line: str) -> None:
        command = line.strip()
        if not command or self.coordinator is None or self.coordinator.ended:
            return
        if command in ("/end", "/quit"):
            self.scheduler.spawn(self.coordinator.end("user_ended"))
        elif command == "/mute":
            self.coordinator.set_muted(True)
            print("🔇 Interviewer muted")
        elif command == "/unmute":
            self.coordinator.set_muted(False)
            print("🔊 Interviewer unmuted")
        elif command == "/pause":
            self.coordinator.set_paused(True)
            print("⏸️  Interviewer paused")
        elif command == "/resume":
            self.coordinator.set_paused(False)
            print("▶️  Interviewer resumed")
        elif command == "/mic":
            enabled = not self.coordinator.capture_enabled
            self.scheduler.spawn(self.coordinator.set_capture_enabled(enabled))
            print("🎤 Microphone on" if enabled else "🎤 Microphone off")
        elif command.startswith("/code"):
            language = command[len("/code"):].strip() or "python"
            self.coordinator.submit_text(InterviewPrompts.code_submission(language))
        else:
            self.coordinator.submit_text(command)

    def _display_result(self, result: InterviewResult) -> None:
        print("\n" + "=" * 50)
        if result.terminated:
            print("🚫 INTERVIEW TERMINATED")
        else:
            print("🎯 INTERVIEW COMPLETE")
        print("=" * 50)
        print(f"🗣️  Candidate turns: {result.turn_count}")
        print(f"📈 Final stage: {result.final_stage.value.replace('_', ' ')}")
        if result.warning_count:
            print(f"⚠️  Warnings: {result.warning_count}")
        if self.conversation_dir:
            print(f"📁 Saved to: {self.conversation_dir}")

    # ------------------------------------------------------------------
    # Infrastructure
    # ------------------------------------------------------------------

    def _needs_infrastructure(self) -> bool:
        return any(c is None for c in (
            self.recognition_engine, self.synthesis_engine, self.player, self.dialogue
        ))

    def _build_infrastructure(self) -> None:
        """Build the Google/Vertex/PyAudio collaborators that were not injected."""
        from ..infrastructure.audio.playback import SpeakerPlayer
        from ..infrastructure.audio.speech import (
            GoogleStreamingRecognitionEngine, GoogleSynthesisEngine, SystemSpeechFallback
        )
        from ..infrastructure.data import (
            JsonTranscriptSink, WavRecordingSink, create_conversation_workspace
        )
        from ..infrastructure.llm import VertexDialogueService, VertexRestClient

        config = self.config
        self.conversation_id, self.conversation_dir = create_conversation_workspace(config.workdir)

        if self.transcript_sink is None:
            self.transcript_sink = JsonTranscriptSink(self.conversation_dir, self.conversation_id)
        if self.recording_sink is None:
            self.recording_sink = WavRecordingSink(os.path.join(self.conversation_dir, "candidate.wav"))
        if self.recognition_engine is None:
            self.recognition_engine = GoogleStreamingRecognitionEngine(
                language_code=config.language_code, recording_sink=self.recording_sink
            )
        if self.synthesis_engine is None:
            self.synthesis_engine = GoogleSynthesisEngine()
        if self.player is None:
            self.player = SpeakerPlayer()
        if self.fallback is None:
            self.fallback = SystemSpeechFallback()
        if self.dialogue is None:
            client = VertexRestClient(
                project=config.google_cloud_project,
                location=config.vertex_location,
                model=config.model_name,
                credentials_json=config.google_application_credentials,
            )
            self.dialogue = VertexDialogueService(client, config.persona, config.interview_type)
