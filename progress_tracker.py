#!/usr/bin/env python3
"""
Progress Tracker - Records completed quiz sessions and maintains the learner's aggregates

One finished quiz touches five tables in a single transaction:
quiz_sessions, question_attempts, user_profiles, course_progress and daily_stats.
Either all of them reflect the session or none of them do.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from errors import InputValidationError, NotFoundError, SessionRecordingFailed
from quiz_logic import CANONICAL_CORRECT_SLOT, OPTION_LETTERS

logger = logging.getLogger(__name__)

CORRECT_LETTER = OPTION_LETTERS[CANONICAL_CORRECT_SLOT]


def _as_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def next_streak(current_streak: int, last_activity_date: Optional[Union[date, datetime, str]], today: Union[date, datetime]) -> int:
    """
    Streak length after activity on `today`

    Consecutive calendar days extend the streak, a repeat on the same day keeps it,
    and anything else (a gap, or a last date in the future) starts over at 1.
    """
    if last_activity_date is None:
        return 1

    diff_days = (_as_date(today) - _as_date(last_activity_date)).days
    if diff_days == 1:
        return (current_streak or 0) + 1
    if diff_days == 0:
        return current_streak or 0
    return 1


def accuracy(correct: int, total: int) -> float:
    return correct / total if total > 0 else 0.0


@dataclass
class SessionSubmission:
    course_type: str
    score_correct: int
    score_total: int
    duration_seconds: Optional[int] = None
    answers: List[Dict[str, Any]] = field(default_factory=list)

    def validate(self):
        """Reject submissions that could never be recorded"""
        if not self.course_type or not self.course_type.strip():
            raise InputValidationError("course_type is required")
        if self.score_total < 0 or self.score_correct < 0:
            raise InputValidationError("Scores cannot be negative")
        if self.score_correct > self.score_total:
            raise InputValidationError(
                "score_correct cannot exceed score_total",
                details={"score_correct": self.score_correct, "score_total": self.score_total},
            )
        if self.duration_seconds is not None and self.duration_seconds < 0:
            raise InputValidationError("duration_seconds cannot be negative")


@dataclass
class RecordedSession:
    session_id: int
    total_points: int
    streak_days: int
    accuracy: float
    answers_recorded: int


def normalize_answers(answers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Check every answer row and derive correctness from its original letter"""
    rows = []
    for position, answer in enumerate(answers):
        question_id = answer.get('question_id')
        letter = answer.get('selected_original_letter')
        if question_id is None or not letter:
            raise InputValidationError(
                f"Answer #{position + 1} is missing question_id or selected_original_letter",
                details={"answer_index": position},
            )
        letter = str(letter).strip().upper()
        if letter not in OPTION_LETTERS:
            raise InputValidationError(
                f"Answer #{position + 1} has unknown letter {letter!r}",
                details={"answer_index": position},
            )
        is_correct = letter == CORRECT_LETTER
        claimed = answer.get('is_correct')
        if claimed is not None and bool(claimed) != is_correct:
            logger.warning(f"Answer for question {question_id} claimed is_correct={claimed}, letter {letter} says {is_correct}")
        rows.append({'question_id': question_id, 'selected_original_letter': letter, 'is_correct': is_correct})
    return rows


class SessionRecorder:
    """Applies a finished quiz session to the learner's aggregates, all or nothing"""

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def record_session(self, user_id: str, submission: SessionSubmission, now: Optional[datetime] = None) -> RecordedSession:
        submission.validate()
        now = now or self.clock()
        today = now.date()

        try:
            with self.store.transaction():
                return self._apply(user_id, submission, now, today)
        except Exception as e:
            logger.error(f"Recording quiz session for user {user_id} failed and was rolled back: {e}")
            raise SessionRecordingFailed(e) from e

    def _apply(self, user_id: str, submission: SessionSubmission, now: datetime, today: date) -> RecordedSession:
        correct = submission.score_correct
        total = submission.score_total

        # 1-2. Session row and its answer log
        session_id = self.store.insert_quiz_session(
            user_id, submission.course_type, correct, total, submission.duration_seconds
        )
        answers = normalize_answers(submission.answers)
        self.store.insert_answer_log(session_id, user_id, answers)

        logged_correct = sum(1 for a in answers if a['is_correct'])
        if answers and logged_correct != correct:
            logger.warning(f"Session {session_id}: score_correct={correct} but answer log has {logged_correct} correct")

        # 3-6. Profile: points and streak
        profile = self.store.get_profile(user_id, for_update=True)
        if profile is None:
            raise NotFoundError(f"User profile {user_id} not found", details={"user_id": user_id})

        new_points = (profile.get('total_points') or 0) + correct
        new_streak = next_streak(profile.get('streak_days') or 0, profile.get('last_activity_date'), today)
        self.store.update_profile(user_id, new_points, new_streak, today)

        # 7. Per-course progress
        session_accuracy = accuracy(correct, total)
        progress = self.store.get_course_progress(user_id, submission.course_type, for_update=True)
        if progress is None:
            self.store.insert_course_progress(user_id, submission.course_type, total, correct, session_accuracy, now)
        else:
            self.store.update_course_progress(
                progress['progress_id'],
                (progress.get('total_questions_attempted') or 0) + total,
                (progress.get('total_correct_answers') or 0) + correct,
                max(float(progress.get('highest_accuracy') or 0), session_accuracy),
                (progress.get('times_completed') or 0) + 1,
                now,
            )

        # 8. Today's stats
        daily = self.store.get_daily_stat(user_id, today, for_update=True)
        if daily is None:
            self.store.insert_daily_stat(user_id, today, total, correct)
        else:
            self.store.update_daily_stat(
                daily['stat_id'],
                (daily.get('questions_answered_today') or 0) + total,
                (daily.get('correct_answers_today') or 0) + correct,
            )

        logger.info(f"Recorded session {session_id} for user {user_id}: {correct}/{total}, "
                    f"points {new_points}, streak {new_streak}")

        return RecordedSession(
            session_id=session_id,
            total_points=new_points,
            streak_days=new_streak,
            accuracy=session_accuracy,
            answers_recorded=len(answers),
        )
