"""
Exam status derivation and per-question scoring

Rule: any correct attempt wins. Recency of attempts is irrelevant, so a
question answered wrong and then right is correct.
"""
from datetime import datetime
from typing import Dict, Iterable, Optional
from uuid import UUID

from examprep.models import Attempt

STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_FINISHED = "finished"

QUESTION_CORRECT = "correct"
QUESTION_INCORRECT = "incorrect"
QUESTION_UNANSWERED = "unanswered"


def exam_status(started_at: Optional[datetime], finished_at: Optional[datetime]) -> str:
    """Derived exam status, a pure function of the two timestamps"""
    if finished_at is not None:
        return STATUS_FINISHED
    if started_at is not None:
        return STATUS_IN_PROGRESS
    return STATUS_NOT_STARTED


def question_statuses(attempts: Iterable[Attempt]) -> Dict[UUID, str]:
    """
    Best-ever status per attempted question

    Questions without attempts are absent; callers treat them as unanswered.
    """
    statuses: Dict[UUID, str] = {}
    for attempt in attempts:
        if attempt.is_correct:
            statuses[attempt.question_id] = QUESTION_CORRECT
        else:
            statuses.setdefault(attempt.question_id, QUESTION_INCORRECT)
    return statuses


def exam_counts(question_count: int, attempts: Iterable[Attempt]) -> Dict[str, int]:
    """Correct / incorrect / unanswered counts over distinct questions"""
    statuses = question_statuses(attempts)
    attempted = len(statuses)
    correct = sum(1 for status in statuses.values() if status == QUESTION_CORRECT)
    
    return {
        "attempted_count": attempted,
        "correct_count": correct,
        "incorrect_count": max(0, attempted - correct),
        "unanswered_count": max(0, question_count - attempted),
    }
