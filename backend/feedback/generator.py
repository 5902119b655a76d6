"""
Feedback generation seam.

end() hands a FeedbackRequest to a FeedbackGenerator and returns its
result synchronously. Slower, model-backed analysis lives in
feedback/analyzer.py and runs after end().
"""

from __future__ import annotations

from typing import Protocol

from feedback.models import SKILL_KEYS, FeedbackRequest, InterviewFeedback, Rating


class FeedbackGenerator(Protocol):
    def generate(self, request: FeedbackRequest) -> InterviewFeedback: ...


class PlaceholderFeedbackGenerator:
    """
    Canned feedback. Ratings are fixed; only the insights reflect the session.
    """

    rating = Rating.GOOD

    def generate(self, request: FeedbackRequest) -> InterviewFeedback:
        return InterviewFeedback(
            overall_rating=self.rating,
            strengths="Good communication and technical knowledge demonstrated.",
            improvements="Consider providing more specific examples in responses.",
            summary="Interview completed successfully with good engagement.",
            skill_ratings={key: self.rating for key in SKILL_KEYS},
            insights={
                "sessionDuration": request.duration_seconds,
                "messagesCount": request.message_count,
                "jobRole": request.job_role,
            },
        )
