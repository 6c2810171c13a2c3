"""
Interview Configuration System
==============================

This file contains ALL configuration for the voice interview system.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


# =============================================================================
# USER SETTINGS - Edit these to customize the interview
# =============================================================================

# REQUIRED: Set your Google Cloud project
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON

# Interview settings
INTERVIEW_TYPE = "technical"  # technical, coding, behavioral, frontend, backend
INTERVIEW_TYPES = ("technical", "coding", "behavioral", "frontend", "backend")
CANDIDATE_NAME = "there"
WORKDIR = "./_interviews"

# Speech settings
TTS_VOICE = "en-US-Neural2-D"
LANGUAGE_CODE = "en-US"
START_MUTED = False

# Capture tuning
CONFIDENCE_THRESHOLD = 0.7
SILENCE_WINDOW_MS = 1000
RESUME_DEBOUNCE_MS = 100

# Logging
LOG_FILE = "./_interviews/interview.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERVIEWER PERSONA
# =============================================================================

@dataclass
class InterviewerPersona:
    """Who the candidate is talking to and the fixed lines the persona uses."""
    name: str = "Mike"
    role: str = "Technical Interviewer"
    style: str = "clear, professional, friendly"
    tone: str = "encouraging but evaluative"
    questioning_style: str = "Socratic"

    warning_message: str = (
        "I need to remind you to maintain professional language during this interview. "
        "Further inappropriate language will result in terminating the interview."
    )
    termination_message: str = (
        "Due to continued use of inappropriate language, I must end this interview. "
        "Thank you for your time."
    )
    apology_message: str = "Sorry, I encountered an error. Could you please repeat that?"
    warmup_message: str = "Hello! I'm Mike, your interviewer today."

    # Custom persona instructions appended to the system prompt
    custom_context: str = ""


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Capture
CAPTURE_MAX_RETRIES = 3
CAPTURE_BACKOFF_BASE_SECONDS = 1.0
CAPTURE_BACKOFF_MAX_SECONDS = 8.0

# Synthesis
SYNTHESIS_MAX_RETRIES = 3
SYNTHESIS_BACKOFF_BASE_SECONDS = 0.25
SYNTHESIS_BACKOFF_MAX_SECONDS = 2.0
CACHE_KEY_MAX_CHARS = 100
TTS_SAMPLE_RATE = 16000
TTS_SPEAKING_RATE = 1.0
TTS_PITCH = 0.0

# Audio devices
SAMPLE_RATE_CAPTURE = 48000
SAMPLE_RATE_TARGET = 16000
CHANNELS = 2
FRAME_MS = 100
PLAYBACK_CHUNK_FRAMES = 1024

# Moderation
WARNING_LIMIT = 2  # warnings issued before the next violation terminates
MODERATION_WORDS: Tuple[str, ...] = (
    "fuck", "shit", "bitch", "bastard", "asshole", "dick", "cunt", "motherfucker",
)

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.5-flash-lite"
LLM_TIMEOUT = 60
DIALOGUE_TIMEOUT_SECONDS = 30.0
MAX_OUTPUT_TOKENS = 150
DIALOGUE_TEMPERATURE = 0.7


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    google_cloud_project: str
    google_application_credentials: Optional[str] = None
    interview_type: str = INTERVIEW_TYPE
    candidate_name: str = CANDIDATE_NAME
    workdir: str = WORKDIR
    tts_voice: str = TTS_VOICE
    language_code: str = LANGUAGE_CODE
    start_muted: bool = START_MUTED

    confidence_threshold: float = CONFIDENCE_THRESHOLD
    silence_window: float = SILENCE_WINDOW_MS / 1000.0
    resume_debounce: float = RESUME_DEBOUNCE_MS / 1000.0
    capture_max_retries: int = CAPTURE_MAX_RETRIES
    capture_backoff_base: float = CAPTURE_BACKOFF_BASE_SECONDS
    capture_backoff_max: float = CAPTURE_BACKOFF_MAX_SECONDS

    synthesis_max_retries: int = SYNTHESIS_MAX_RETRIES
    synthesis_backoff_base: float = SYNTHESIS_BACKOFF_BASE_SECONDS
    synthesis_backoff_max: float = SYNTHESIS_BACKOFF_MAX_SECONDS
    cache_key_max_chars: int = CACHE_KEY_MAX_CHARS

    warning_limit: int = WARNING_LIMIT
    moderation_words: Tuple[str, ...] = MODERATION_WORDS

    vertex_location: str = VERTEX_LOCATION
    model_name: str = MODEL_NAME
    dialogue_timeout: float = DIALOGUE_TIMEOUT_SECONDS

    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL

    persona: InterviewerPersona = field(default_factory=InterviewerPersona)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def get_config() -> Config:
    """Load configuration, letting environment variables override the settings above."""
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    if project == "your-project-id":
        raise ValueError("Please set GOOGLE_CLOUD_PROJECT in config.py or as environment variable")

    interview_type = (os.getenv("INTERVIEW_TYPE") or INTERVIEW_TYPE).lower()
    if interview_type not in INTERVIEW_TYPES:
        raise ValueError(f"INTERVIEW_TYPE must be one of {', '.join(INTERVIEW_TYPES)}, got {interview_type!r}")

    return Config(
        google_cloud_project=project,
        google_application_credentials=credentials,
        interview_type=interview_type,
        candidate_name=os.getenv("CANDIDATE_NAME") or CANDIDATE_NAME,
        workdir=os.getenv("INTERVIEW_WORKDIR") or WORKDIR,
        tts_voice=os.getenv("TTS_VOICE") or TTS_VOICE,
        language_code=os.getenv("LANGUAGE_CODE") or LANGUAGE_CODE,
        start_muted=(os.getenv("START_MUTED") or str(START_MUTED)).lower() in ("1", "true", "yes"),
        confidence_threshold=_env_float("CONFIDENCE_THRESHOLD", CONFIDENCE_THRESHOLD),
        silence_window=_env_float("SILENCE_WINDOW_MS", SILENCE_WINDOW_MS) / 1000.0,
        resume_debounce=_env_float("RESUME_DEBOUNCE_MS", RESUME_DEBOUNCE_MS) / 1000.0,
        dialogue_timeout=_env_float("DIALOGUE_TIMEOUT_SECONDS", DIALOGUE_TIMEOUT_SECONDS),
        log_file=os.getenv("LOG_FILE") or LOG_FILE,
        log_level=os.getenv("LOG_LEVEL") or LOG_LEVEL,
    )
