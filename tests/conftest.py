"""
Shared fixtures for the interview loop tests.
"""
import pytest

from jobdance.interview.schemas import InterviewReport
from jobdance.interview.testing import (
    ManualClock, MockSessionStore, MockSpeechOutput, RecordingPresenter, ScriptedGateway,
)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def session_store():
    return MockSessionStore()


@pytest.fixture
def speech_output():
    return MockSpeechOutput()


@pytest.fixture
def sample_report():
    return InterviewReport.from_dict({
        "overallPerformance": {
            "score": 82,
            "summary": "Clear, structured answers.",
            "strengths": ["Concrete examples"],
            "weaknesses": ["Rushed the last answer"],
        },
        "technicalKnowledge": {"score": 78, "assessment": "Solid backend fundamentals."},
        "hiringLikelihood": {"score": 75, "recommendation": "Move to the next round."},
        "improvements": [{"category": "Delivery", "suggestion": "Slow down.", "priority": "Low"}],
    })


@pytest.fixture
def gateway():
    return ScriptedGateway(questions=[
        "Tell me about yourself.",
        "What project are you proudest of?",
        "How do you handle disagreements?",
        "Describe a production incident you resolved.",
    ])
