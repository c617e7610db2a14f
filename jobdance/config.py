"""
JobDance Configuration System
=============================

This file contains ALL configuration for the JobDance interview coach.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (timings, limits, provider defaults)
"""
import os
from dataclasses import dataclass
from typing import Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the interview coach
# =============================================================================

# REQUIRED: Set your Google Cloud project
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON

# Interview settings
MAX_QUESTIONS = 5
WORKDIR = "./_jobdance"
PROFILE_PATH = None  # Optional: JSON file with the candidate profile
VALIDATE_ANSWERS = False

# Speech settings
ENABLE_TTS = True
ENABLE_VOICE_INPUT = True
TTS_VOICE = "en-US-Neural2-F"
LANGUAGE_CODE = "en-US"

# Logging
LOG_FILE = "./_jobdance/interview.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Turn-taking timings (seconds)
SAFETY_TIMEOUT_SECONDS = 35.0
QUESTION_TIMEOUT_SECONDS = 30.0
REPORT_TIMEOUT_SECONDS = 60.0
PERSIST_TIMEOUT_SECONDS = 15.0
CLOSING_DELAY_SECONDS = 1.0
CLOSING_DELAY_SILENT_SECONDS = 2.0
LISTEN_START_DELAY_SECONDS = 0.5

# Turn-end detection
SILENCE_WINDOW_SECONDS = 5.0
RESTART_MIN_INTERVAL_SECONDS = 0.2

# Speech output
SYNTHESIS_LOAD_TIMEOUT_SECONDS = 10.0
PLAYBACK_TIMEOUT_SECONDS = 120.0

# Request queue and backoff
QUEUE_BASE_DELAY_SECONDS = 1.0
QUEUE_MAX_DELAY_SECONDS = 3.0
THROTTLE_MULTIPLIER = 1.5
THROTTLE_GROWTH_AFTER = 2
MAX_RETRIES = 3
CHAT_BACKOFF_BASE_SECONDS = 1.0
SYNTHESIS_BACKOFF_BASE_SECONDS = 0.5
BACKOFF_JITTER_SECONDS = 1.0

# Canned fallbacks
FALLBACK_OPENING_QUESTION = "Tell me about yourself."
FALLBACK_FOLLOW_UP = "That's interesting. Can you tell me more about that?"
FALLBACK_CLOSING = (
    "Thank you for your time today. We appreciate you taking the time to speak "
    "with us. We'll review your responses and get back to you soon."
)
CLOSING_INSTRUCTION = (
    "This was my final answer. Please provide a professional closing statement "
    "to conclude the interview."
)

# Microphone capture
SAMPLE_RATE = 16000
CHUNK_MS = 100

# Local voice fallback
TTS_PITCH = 55
TTS_AMPLITUDE = 120
TTS_RATE_WPM = 180

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.5-flash-lite"
LLM_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 1024
REPORT_MAX_OUTPUT_TOKENS = 4096

# Storage
SESSIONS_DIRNAME = "sessions"
TEMP_REPORT_KEY = "temp_interview_report"


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    google_cloud_project: str
    google_application_credentials: Optional[str] = None
    max_questions: int = MAX_QUESTIONS
    workdir: str = WORKDIR
    profile_path: Optional[str] = PROFILE_PATH
    validate_answers: bool = VALIDATE_ANSWERS
    enable_tts: bool = ENABLE_TTS
    enable_voice_input: bool = ENABLE_VOICE_INPUT
    tts_voice: str = TTS_VOICE
    tts_rate_wpm: int = TTS_RATE_WPM
    tts_pitch: int = TTS_PITCH
    tts_amplitude: int = TTS_AMPLITUDE
    language_code: str = LANGUAGE_CODE
    silence_window_seconds: float = SILENCE_WINDOW_SECONDS
    safety_timeout_seconds: float = SAFETY_TIMEOUT_SECONDS
    report_timeout_seconds: float = REPORT_TIMEOUT_SECONDS
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL

    @property
    def sessions_dir(self) -> str:
        return os.path.join(self.workdir, SESSIONS_DIRNAME)


def get_config() -> Config:
    """Load configuration."""
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    if project == "your-project-id":
        raise ValueError("Please set GOOGLE_CLOUD_PROJECT in config.py or as environment variable")

    max_questions = os.getenv("JOBDANCE_MAX_QUESTIONS")
    try:
        max_questions = int(max_questions) if max_questions else MAX_QUESTIONS
    except ValueError:
        raise ValueError(f"JOBDANCE_MAX_QUESTIONS must be an integer, got {max_questions!r}")
    if max_questions < 1:
        raise ValueError("JOBDANCE_MAX_QUESTIONS must be at least 1")

    workdir = os.getenv("JOBDANCE_WORKDIR") or WORKDIR

    return Config(
        google_cloud_project=project,
        google_application_credentials=credentials,
        max_questions=max_questions,
        workdir=workdir,
        profile_path=os.getenv("JOBDANCE_PROFILE") or PROFILE_PATH,
        log_file=os.path.join(workdir, "interview.log"),
        log_level=os.getenv("JOBDANCE_LOG_LEVEL") or LOG_LEVEL,
    )
