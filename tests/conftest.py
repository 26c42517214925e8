"""Shared pytest fixtures for BizModelAI tests."""
import os

os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ["REDIS_URL"] = ""
os.environ["GENERATION_MIN_DURATION_SECONDS"] = "0"

import pytest

from app.schemas.quiz import QuizAnswers
from app.utils.storage import InMemoryStore


class FakeClock:
    """Manually advanced clock usable wherever a ``clock`` callable is accepted."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def sample_answers_data():
    """A complete quiz as posted by the quiz UI (camelCase keys)."""
    return {
        "mainMotivation": "financial-freedom",
        "firstIncomeTimeline": "1-3-months",
        "successIncomeGoal": 5000,
        "upfrontInvestment": 1000,
        "passionIdentityAlignment": 4,
        "businessExitPlan": "not-sure",
        "businessGrowthSize": "full-time-income",
        "passiveIncomeImportance": 4,
        "weeklyTimeCommitment": 25,
        "longTermConsistency": 4,
        "trialErrorComfort": 4,
        "learningPreference": "hands-on",
        "systemsRoutinesEnjoyment": 3,
        "discouragementResilience": 4,
        "toolLearningWillingness": "yes",
        "organizationLevel": 4,
        "selfMotivationLevel": 5,
        "uncertaintyHandling": 3,
        "repetitiveTasksFeeling": "tolerate",
        "workCollaborationPreference": "mostly-solo",
        "brandFaceComfort": 3,
        "competitivenessLevel": 4,
        "creativeWorkEnjoyment": 4,
        "directCommunicationEnjoyment": 3,
        "workStructurePreference": "some-structure",
        "techSkillsRating": 4,
        "workspaceAvailability": "yes",
        "supportSystemStrength": "small-helpful-group",
        "internetDeviceReliability": 5,
        "familiarTools": ["canva", "notion"],
        "decisionMakingStyle": "after-some-research",
        "riskComfortLevel": 4,
        "feedbackRejectionResponse": 3,
        "pathPreference": "mix",
        "controlImportance": 4,
        "onlinePresenceComfort": "yes",
        "clientCallsComfort": "yes",
        "physicalShippingOpenness": "no",
        "workStylePreference": "mix-both",
        "socialMediaInterest": 3,
        "ecosystemParticipation": "yes",
        "existingAudience": "no",
        "promotingOthersOpenness": "yes",
        "teachVsSolvePreference": "solve",
        "meaningfulContributionImportance": 4,
    }


@pytest.fixture
def sample_answers(sample_answers_data):
    return QuizAnswers.model_validate(sample_answers_data)


@pytest.fixture
def high_risk_answers():
    """Risk-seeking, well-resourced, technical respondent."""
    return QuizAnswers(
        risk_comfort_level=5,
        trial_error_comfort=5,
        discouragement_resilience=5,
        uncertainty_handling=5,
        weekly_time_commitment=40,
        tech_skills_rating=5,
        upfront_investment=2000,
        path_preference="build-something-new",
    )


@pytest.fixture
def empty_answers():
    return QuizAnswers()
