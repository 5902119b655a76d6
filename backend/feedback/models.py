"""
Interview feedback records.

Pure data. ``to_dict()`` renders the camelCase shape the UI and the
persistence collaborator consume.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional


class Rating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    NEEDS_IMPROVEMENT = "needs_improvement"

    @property
    def score(self) -> int:
        return _RATING_SCORES[self]


_RATING_SCORES: dict[Rating, int] = {
    Rating.EXCELLENT: 4,
    Rating.GOOD: 3,
    Rating.AVERAGE: 2,
    Rating.NEEDS_IMPROVEMENT: 1,
}

SKILL_KEYS: tuple[str, ...] = ("communication", "technical", "behavioral")


def average_rating(ratings: Iterable[Rating | str]) -> Optional[float]:
    """
    Mean score over overall ratings (excellent=4 ... needs_improvement=1).

    Returns None for an empty input.
    """
    scores = [Rating(r).score for r in ratings]
    if not scores:
        return None
    return sum(scores) / len(scores)


@dataclass(frozen=True)
class FeedbackRequest:
    """Everything a feedback generator may look at, captured at end()."""
    job_role: str
    message_log: tuple[Mapping[str, Any], ...]
    transcript: tuple[str, ...] = ()
    duration_seconds: int = 0

    @property
    def message_count(self) -> int:
        return len(self.message_log)


@dataclass(frozen=True)
class InterviewFeedback:
    overall_rating: Rating
    strengths: str = ""
    improvements: str = ""
    summary: str = ""
    skill_ratings: Mapping[str, Rating] = field(default_factory=dict)
    insights: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallRating": self.overall_rating.value,
            "strengths": self.strengths,
            "improvements": self.improvements,
            "summary": self.summary,
            "skillRatings": {k: Rating(v).value for k, v in self.skill_ratings.items()},
            "geminiInsights": dict(self.insights),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> InterviewFeedback:
        """
        Parse the camelCase shape.

        Raises:
            ValueError for a missing or unknown rating.
        """
        if "overallRating" not in data:
            raise ValueError("overallRating is required")

        skills = data.get("skillRatings") or {}
        if not isinstance(skills, Mapping):
            raise ValueError("skillRatings must be an object")

        insights = data.get("geminiInsights") or {}
        return InterviewFeedback(
            overall_rating=Rating(data["overallRating"]),
            strengths=str(data.get("strengths") or ""),
            improvements=str(data.get("improvements") or ""),
            summary=str(data.get("summary") or ""),
            skill_ratings={str(k): Rating(v) for k, v in skills.items()},
            insights=dict(insights) if isinstance(insights, Mapping) else {},
        )
