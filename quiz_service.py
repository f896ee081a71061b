#!/usr/bin/env python3
"""
Quiz Service - High-level operations behind the REST API
One service instance owns one store connection for the length of a request
"""

import logging
import math
import random
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

import psycopg2

from errors import InputValidationError, NotFoundError, QuizError, StoreUnavailable
from progress_tracker import RecordedSession, SessionRecorder, SessionSubmission
from quiz_logic import (
    AnswerCheck, PresentedQuestion, WordItem, check_answer, difficulty_levels_for,
    group_difficulty_counts, parse_course_type, present_words,
)
from quiz_store import DATABASE_URL, HISTORY_ORDERING, QuizStore
from study_lists import DismissResult, StudyListManager

logger = logging.getLogger(__name__)


class QuizService:
    """High-level service for quiz operations"""

    def __init__(self, db_url: str = DATABASE_URL, store=None,
                 rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store if store is not None else QuizStore(db_url)
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.recorder = SessionRecorder(self.store, clock=self.clock)
        self.study_lists = StudyListManager(self.store, rng=self.rng)

    def __enter__(self):
        try:
            self.store.connect()
        except psycopg2.Error as e:
            logger.error(f"Database connection failed: {e}")
            raise StoreUnavailable("Could not connect to the database", details={"cause": type(e).__name__}) from e
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.store.close()

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        """Run the block in one store transaction and translate driver errors"""
        try:
            with self.store.transaction():
                yield
        except psycopg2.Error as e:
            logger.error(f"Database error: {e}")
            raise StoreUnavailable("The database request failed", details={"cause": type(e).__name__}) from e

    def health(self) -> bool:
        with self.unit_of_work():
            return self.store.ping()

    # === Questions ===

    def get_quiz_questions(self, limit: int, difficulty: Optional[str] = None) -> List[PresentedQuestion]:
        levels = difficulty_levels_for(difficulty)
        with self.unit_of_work():
            rows = self.store.get_random_words(limit, levels)

        if not rows:
            label = f"{difficulty} difficulty " if difficulty else ""
            raise NotFoundError(f"No {label}words available in the database")

        presented, rejected = present_words([WordItem.from_row(row) for row in rows], self.rng)
        if rejected:
            logger.error(f"Invalid words found in selection: {rejected}")
        if not presented:
            raise QuizError("All fetched words had issues during processing.",
                            details={"rejected_word_ids": rejected})
        return presented

    def get_difficulty_levels(self) -> List[Dict[str, Any]]:
        with self.unit_of_work():
            counts = self.store.count_words_by_level()
        return group_difficulty_counts(counts)

    def check_answer(self, question_id: int, selected_letter: str) -> AnswerCheck:
        with self.unit_of_work():
            row = self.store.get_word(question_id)
        if row is None:
            raise NotFoundError("The specified word could not be found or is not active",
                                details={"question_id": question_id})
        return check_answer(WordItem.from_row(row), selected_letter)

    # === Sessions and stats ===

    def record_session(self, user_id: str, submission: SessionSubmission) -> RecordedSession:
        return self.recorder.record_session(user_id, submission)

    def get_dashboard_stats(self, user_id: str) -> Dict[str, Any]:
        today = self.clock().date()
        with self.unit_of_work():
            profile = self.store.get_profile(user_id) or {}
            daily = self.store.get_daily_stat(user_id, today) or {}
            total_words = self.store.count_words()

        return {
            'streak_days': profile.get('streak_days') or 0,
            'total_points': profile.get('total_points') or 0,
            'last_activity_date': profile.get('last_activity_date'),
            'completed_today': daily.get('questions_answered_today') or 0,
            'correct_today': daily.get('correct_answers_today') or 0,
            'completed_quiz_today': bool(daily.get('completed_quiz_today')),
            'total_words_available': total_words,
        }

    def get_course_stats(self, user_id: str) -> List[Dict[str, Any]]:
        with self.unit_of_work():
            rows = self.store.list_course_progress(user_id)

        stats = []
        for row in rows:
            attempted = row.get('total_questions_attempted') or 0
            correct = row.get('total_correct_answers') or 0
            course = parse_course_type(row['course_type'])
            stats.append({
                'course_type': row['course_type'],
                'kind': course['kind'],
                'difficulty': course['difficulty'],
                'completed': row.get('times_completed') or 0,
                'accuracy': round(correct / attempted * 100) if attempted > 0 else 0,
                'highest_accuracy': float(row.get('highest_accuracy') or 0),
                'last_played_at': row.get('last_played_at'),
            })
        return stats

    def get_learning_history(self, user_id: str, page: int = 1, limit: int = 10,
                             sort_by: str = 'date_desc') -> Dict[str, Any]:
        if sort_by not in HISTORY_ORDERING:
            raise InputValidationError(
                f"sortBy must be one of {', '.join(HISTORY_ORDERING)}",
                details={"sortBy": sort_by},
            )
        if page < 1 or limit < 1:
            raise InputValidationError("page and limit must be positive")

        with self.unit_of_work():
            rows = self.store.get_answer_history(user_id, sort_by, limit, (page - 1) * limit)
            total = self.store.count_answer_history(user_id)

        items = []
        for row in rows:
            if row.get('word') is None:
                logger.warning(f"Learning history item {row['history_id']} has no word details. Skipping.")
                continue
            word = WordItem(
                word_id=row['question_id'],
                word=row['word'],
                options=[row.get('option_a'), row.get('option_b'), row.get('option_c'), row.get('option_d')],
                part_of_speech=row.get('part_of_speech'),
                definition=row.get('definition'),
            )
            items.append({
                'history_id': row['history_id'],
                'question_id': row['question_id'],
                'word': word.word,
                'selected_option_letter': row['selected_original_letter'],
                'selected_option_text': word.option_text(row['selected_original_letter']),
                'is_correct': row['is_correct'],
                'correct_option_letter': word.correct_letter,
                'correct_option_text': word.correct_text,
                'explanation': word.definition,
                'answered_at': row.get('answered_at'),
            })

        return {
            'data': items,
            'pagination': {
                'totalItems': total,
                'totalPages': math.ceil(total / limit) if total else 0,
                'currentPage': page,
                'pageSize': limit,
            },
        }

    # === Weakness list ===

    def add_weakness_item(self, user_id: str, word_id: int) -> Dict[str, Any]:
        with self.unit_of_work():
            return self.study_lists.add_weakness(user_id, word_id)

    def remove_weakness_item(self, user_id: str, word_id: int) -> bool:
        with self.unit_of_work():
            return self.study_lists.remove_weakness(user_id, word_id)

    def count_weakness_items(self, user_id: str) -> int:
        with self.unit_of_work():
            return self.study_lists.count_active_weaknesses(user_id)

    def get_weakness_questions(self, user_id: str, limit: int) -> List[PresentedQuestion]:
        with self.unit_of_work():
            return self.study_lists.weakness_questions(user_id, limit)

    # === Reports ===

    def submit_report(self, user_id: Optional[str], word_id: int, reason: str,
                      details: Optional[str] = None) -> Dict[str, Any]:
        with self.unit_of_work():
            return self.study_lists.submit_report(user_id, word_id, reason, details)

    def dismiss_report(self, user_id: str, report_id: int) -> DismissResult:
        with self.unit_of_work():
            return self.study_lists.dismiss_report(user_id, report_id)

    def get_reported_questions(self, user_id: str, limit: int) -> List[PresentedQuestion]:
        with self.unit_of_work():
            return self.study_lists.reported_questions(user_id, limit)
