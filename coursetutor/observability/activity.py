# coursetutor/observability/activity.py
"""
Student activity log.

Each action kind carries its own typed payload; the `action` field is the
discriminator when parsing incoming JSON.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Set, Union

from pydantic import BaseModel, Field, TypeAdapter

logger = logging.getLogger(__name__)


class StudentRef(BaseModel):
    student_id: str
    student_name: Optional[str] = None
    student_email: Optional[str] = None


class ChatMessagePayload(BaseModel):
    message: str
    response_length: Optional[int] = None


class CodeRunPayload(BaseModel):
    language: str
    code: str
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None


class CodeSubmissionPayload(BaseModel):
    language: str
    code: str
    tests_passed: int = Field(0, ge=0)
    tests_total: int = Field(0, ge=0)


class _ActivityBase(BaseModel):
    student: StudentRef
    problem_id: str
    problem_title: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChatMessageActivity(_ActivityBase):
    action: Literal["chat"] = "chat"
    data: ChatMessagePayload


class CodeRunActivity(_ActivityBase):
    action: Literal["code_run"] = "code_run"
    data: CodeRunPayload


class CodeSubmissionActivity(_ActivityBase):
    action: Literal["code_submit"] = "code_submit"
    data: CodeSubmissionPayload


Activity = Annotated[
    Union[ChatMessageActivity, CodeRunActivity, CodeSubmissionActivity],
    Field(discriminator="action"),
]

activity_adapter = TypeAdapter(Activity)


def parse_activity(raw: dict) -> Union[ChatMessageActivity, CodeRunActivity, CodeSubmissionActivity]:
    return activity_adapter.validate_python(raw)


def _summary(entry) -> dict:
    """Log-safe properties; never includes raw code or message text."""

    summary = {
        "student_id": entry.student.student_id,
        "problem_id": entry.problem_id,
        "action": entry.action,
    }

    if isinstance(entry, ChatMessageActivity):
        summary["message_length"] = len(entry.data.message)

    elif isinstance(entry, CodeRunActivity):
        summary["language"] = entry.data.language
        summary["exit_code"] = entry.data.exit_code

    elif isinstance(entry, CodeSubmissionActivity):
        summary["language"] = entry.data.language
        summary["tests_passed"] = entry.data.tests_passed
        summary["tests_total"] = entry.data.tests_total

    return summary


class ActivityLogger:
    """
    Records student actions to the structured log and, when configured,
    to PostHog. Keeps the most recent entries in memory for inspection.
    """

    def __init__(self, posthog=None, max_entries: int = 1000):
        self._posthog = posthog
        self._max_entries = max_entries
        self._entries: List = []
        self._identified: Set[str] = set()

    def log(self, entry) -> None:

        summary = _summary(entry)

        logger.info("Student activity logged", extra=summary)

        if self._posthog is not None:
            self._identify(entry.student)
            self._posthog.track_activity(
                distinct_id=entry.student.student_id,
                action=entry.action,
                properties=summary,
            )

        self._entries.append(entry)
        del self._entries[:-self._max_entries]

    def _identify(self, student: StudentRef) -> None:

        if student.student_id in self._identified:
            return

        profile = student.model_dump(exclude={"student_id"}, exclude_none=True)

        if profile:
            self._posthog.identify_student(student.student_id, profile)
            self._identified.add(student.student_id)

    def entries(self, student_id: Optional[str] = None) -> List:

        if student_id is None:
            return list(self._entries)

        return [e for e in self._entries if e.student.student_id == student_id]

    def clear(self) -> None:
        self._entries = []
