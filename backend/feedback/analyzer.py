"""
Model-backed interview analysis.

Runs after end() has returned; never part of teardown. Uses an
``openai.AsyncOpenAI`` client in JSON mode and parses the reply into an
InterviewFeedback.
"""

from __future__ import annotations

import json
from typing import Any

from openai import OpenAIError

from adapters.live.messages import extract_output_transcription, extract_text
from constants import FEEDBACK_MAX_TRANSCRIPT_CHARS, FEEDBACK_MODEL_DEFAULT
from feedback.models import FeedbackRequest, InterviewFeedback
from feedback.prompts import FEEDBACK_SYSTEM_PROMPT_V1, FEEDBACK_USER_TEMPLATE_V1
from observability.logger import log_event
from observability.metrics import timed


class FeedbackAnalysisError(Exception):
    """The model call failed or returned something that is not feedback."""


def build_transcript(request: FeedbackRequest, max_chars: int = FEEDBACK_MAX_TRANSCRIPT_CHARS) -> str:
    """
    Interviewer-side text, oldest first.

    Prefers the recorded transcript; falls back to text parts and output
    transcriptions found in the message log. Keeps the most recent
    ``max_chars`` characters.
    """
    lines = [line for line in request.transcript if line]
    if not lines:
        for message in request.message_log:
            text = extract_text(message) or extract_output_transcription(message)
            if text:
                lines.append(text)

    text = "\n".join(lines)
    if len(text) > max_chars:
        text = text[-max_chars:]
    return text


class TranscriptFeedbackAnalyzer:
    def __init__(
        self,
        *,
        client: Any,
        model: str = FEEDBACK_MODEL_DEFAULT,
        session_id: str | None = None,
    ) -> None:
        """
        Args:
            client: AsyncOpenAI (or compatible) client.
            model: Chat completion model id.
            session_id: For log correlation only.
        """
        self._client = client
        self._model = model
        self._session_id = session_id

    def build_messages(self, request: FeedbackRequest) -> list[dict[str, str]]:
        transcript = build_transcript(request) or "(no interviewer speech was transcribed)"
        return [
            {"role": "system", "content": FEEDBACK_SYSTEM_PROMPT_V1},
            {
                "role": "user",
                "content": FEEDBACK_USER_TEMPLATE_V1.format(
                    job_role=request.job_role,
                    duration_seconds=request.duration_seconds,
                    message_count=request.message_count,
                    transcript=transcript,
                ),
            },
        ]

    async def analyze(self, request: FeedbackRequest) -> InterviewFeedback:
        """
        Raises:
            FeedbackAnalysisError on API failure or malformed output.
        """
        try:
            with timed("feedback.analyze", session_id=self._session_id, details={"model": self._model}):
                response = await self._client.chat.completions.create(
                    model=self._model,
                    messages=self.build_messages(request),
                    response_format={"type": "json_object"},
                )
        except OpenAIError as exc:
            log_event({
                "event_type": "FEEDBACK_ANALYSIS_FAILED",
                "session_id": self._session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            raise FeedbackAnalysisError(f"feedback request failed: {exc}") from exc

        content = _first_choice_content(response)
        try:
            data = json.loads(content)
            if not isinstance(data, dict):
                raise ValueError("feedback must be a JSON object")
            feedback = InterviewFeedback.from_dict(data)
        except ValueError as exc:
            log_event({
                "event_type": "FEEDBACK_ANALYSIS_MALFORMED",
                "session_id": self._session_id,
                "message": str(exc),
                "content_preview": content[:200],
            })
            raise FeedbackAnalysisError(f"malformed feedback: {exc}") from exc

        # Session facts come from the session, not the model.
        return InterviewFeedback(
            overall_rating=feedback.overall_rating,
            strengths=feedback.strengths,
            improvements=feedback.improvements,
            summary=feedback.summary,
            skill_ratings=feedback.skill_ratings,
            insights={
                "sessionDuration": request.duration_seconds,
                "messagesCount": request.message_count,
                "jobRole": request.job_role,
                "model": self._model,
            },
        )


def _first_choice_content(response: Any) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError) as exc:
        raise FeedbackAnalysisError("feedback response has no choices") from exc
    if not content:
        raise FeedbackAnalysisError("feedback response is empty")
    return content
