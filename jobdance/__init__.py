"""
JobDance: voice mock-interview coach.

Asks interview questions aloud, listens for spoken (or typed) answers,
and produces a structured report when the interview ends.
"""

__version__ = "1.0.0"
__author__ = "Your Name"

# Main entry points
from .interview.controller import InterviewTurnController
from .interview.models import InterviewSession, VoiceState, EndOutcome

__all__ = ["InterviewTurnController", "InterviewSession", "VoiceState", "EndOutcome"]
