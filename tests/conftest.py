"""
Shared fixtures: an in-memory QuizStore double with real transaction rollback,
seeded words and profiles, and an authenticated TestClient
"""

import copy
import random
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
import pytest

from errors import ConflictResolved, NotFoundError
from quiz_service import QuizService

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
YESTERDAY = TODAY - timedelta(days=1)

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class InjectedFailure(RuntimeError):
    pass


class InMemoryQuizStore:
    """Same surface as quiz_store.QuizStore, backed by dicts; rolls back on failure"""

    def __init__(self):
        self.state: Dict[str, Any] = {
            "words": {},
            "profiles": {},
            "sessions": [],
            "answers": [],
            "course_progress": {},
            "daily_stats": {},
            "weakness": {},
            "reports": [],
            "dismissals": [],
            "seq": {"session": 0, "answer": 0, "progress": 0, "stat": 0, "report": 0},
        }
        self.fail_on: Dict[str, Exception] = {}
        self.connected = False
        self.commits = 0
        self.rollbacks = 0
        self._clock = NOW

    # --- test helpers ---

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _next(self, name: str) -> int:
        self.state["seq"][name] += 1
        return self.state["seq"][name]

    def _check(self, operation: str):
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def add_word(self, word_id: int, word: str = None, options=None, difficulty_level: str = "B1",
                 is_active: bool = True, example_sentence: Optional[str] = None, **extra):
        word = word or f"word{word_id}"
        options = options if options is not None else [f"meaning of {word}", "wrong one", "wrong two", "wrong three"]
        self.state["words"][word_id] = {
            "id": word_id,
            "word": word,
            "part_of_speech": extra.get("part_of_speech", "noun"),
            "definition": extra.get("definition", f"meaning of {word}"),
            "difficulty_level": difficulty_level,
            "example_sentence": example_sentence if example_sentence is not None else f"The {word} was here.",
            "option_a": options[0],
            "option_b": options[1],
            "option_c": options[2],
            "option_d": options[3],
            "is_active": is_active,
            "created_at": NOW,
            "updated_at": NOW,
        }

    def add_profile(self, user_id: str, total_points: int = 0, streak_days: int = 0,
                    last_activity_date: Optional[date] = None):
        self.state["profiles"][user_id] = {
            "user_id": user_id,
            "total_points": total_points,
            "streak_days": streak_days,
            "last_activity_date": last_activity_date,
        }

    # --- connection and transactions ---

    def connect(self):
        self.connected = True

    def close(self):
        self.connected = False

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy(self.state)
        try:
            yield
        except BaseException:
            self.state = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    def ping(self) -> bool:
        return True

    # --- words ---

    def get_word(self, word_id: int, active_only: bool = True):
        row = self.state["words"].get(word_id)
        if row is None or (active_only and not row["is_active"]):
            return None
        return dict(row)

    def get_words_by_ids(self, word_ids):
        return [dict(self.state["words"][i]) for i in word_ids
                if i in self.state["words"] and self.state["words"][i]["is_active"]]

    def get_random_words(self, limit: int, difficulty_levels=None):
        rows = [r for r in self.state["words"].values() if r["is_active"]]
        if difficulty_levels:
            rows = [r for r in rows if r["difficulty_level"] in difficulty_levels]
        return [dict(r) for r in rows[:limit]]

    def count_words(self) -> int:
        return sum(1 for r in self.state["words"].values() if r["is_active"])

    def count_words_by_level(self):
        counts: Dict[str, int] = {}
        for r in self.state["words"].values():
            if r["is_active"] and r["difficulty_level"]:
                counts[r["difficulty_level"]] = counts.get(r["difficulty_level"], 0) + 1
        return counts

    # --- sessions and answers ---

    def insert_quiz_session(self, user_id, course_type, score_correct, score_total, duration_seconds):
        self._check("insert_quiz_session")
        session_id = self._next("session")
        self.state["sessions"].append({
            "session_id": session_id, "user_id": user_id, "course_type": course_type,
            "score_correct": score_correct, "score_total": score_total,
            "duration_seconds": duration_seconds, "created_at": self._tick(),
        })
        return session_id

    def insert_answer_log(self, session_id, user_id, answers):
        self._check("insert_answer_log")
        for a in answers:
            self.state["answers"].append({
                "id": self._next("answer"), "session_id": session_id, "user_id": user_id,
                "question_id": a["question_id"], "selected_original_letter": a["selected_original_letter"],
                "is_correct": a["is_correct"], "created_at": self._tick(),
            })
        return len(answers)

    def get_answer_history(self, user_id, sort_by, limit, offset):
        rows = [a for a in self.state["answers"] if a["user_id"] == user_id]
        newest_first = sorted(rows, key=lambda a: (a["created_at"], a["id"]), reverse=True)
        if sort_by == "date_asc":
            ordered = list(reversed(newest_first))
        elif sort_by == "correctness_desc":
            ordered = sorted(newest_first, key=lambda a: not a["is_correct"])
        elif sort_by == "correctness_asc":
            ordered = sorted(newest_first, key=lambda a: a["is_correct"])
        else:
            ordered = newest_first

        result = []
        for a in ordered[offset:offset + limit]:
            word = self.state["words"].get(a["question_id"], {})
            result.append({
                "history_id": a["id"],
                "question_id": a["question_id"],
                "selected_original_letter": a["selected_original_letter"],
                "is_correct": a["is_correct"],
                "answered_at": a["created_at"],
                "word": word.get("word"),
                "part_of_speech": word.get("part_of_speech"),
                "definition": word.get("definition"),
                "option_a": word.get("option_a"),
                "option_b": word.get("option_b"),
                "option_c": word.get("option_c"),
                "option_d": word.get("option_d"),
            })
        return result

    def count_answer_history(self, user_id):
        return sum(1 for a in self.state["answers"] if a["user_id"] == user_id)

    # --- profile ---

    def get_profile(self, user_id, for_update=False):
        self._check("get_profile")
        row = self.state["profiles"].get(user_id)
        return dict(row) if row else None

    def update_profile(self, user_id, total_points, streak_days, last_activity_date):
        self._check("update_profile")
        if user_id not in self.state["profiles"]:
            raise NotFoundError(f"User profile {user_id} not found")
        self.state["profiles"][user_id].update(
            total_points=total_points, streak_days=streak_days, last_activity_date=last_activity_date)

    # --- course progress ---

    def get_course_progress(self, user_id, course_type, for_update=False):
        row = self.state["course_progress"].get((user_id, course_type))
        return dict(row) if row else None

    def list_course_progress(self, user_id):
        rows = [dict(r) for (uid, _), r in self.state["course_progress"].items() if uid == user_id]
        return sorted(rows, key=lambda r: r["course_type"])

    def insert_course_progress(self, user_id, course_type, attempted, correct, highest_accuracy, played_at):
        self._check("insert_course_progress")
        self.state["course_progress"][(user_id, course_type)] = {
            "progress_id": self._next("progress"), "user_id": user_id, "course_type": course_type,
            "total_questions_attempted": attempted, "total_correct_answers": correct,
            "highest_accuracy": highest_accuracy, "times_completed": 1, "last_played_at": played_at,
        }

    def update_course_progress(self, progress_id, attempted, correct, highest_accuracy, times_completed, played_at):
        self._check("update_course_progress")
        for row in self.state["course_progress"].values():
            if row["progress_id"] == progress_id:
                row.update(total_questions_attempted=attempted, total_correct_answers=correct,
                           highest_accuracy=highest_accuracy, times_completed=times_completed,
                           last_played_at=played_at)

    # --- daily stats ---

    def get_daily_stat(self, user_id, stat_date, for_update=False):
        row = self.state["daily_stats"].get((user_id, stat_date))
        return dict(row) if row else None

    def insert_daily_stat(self, user_id, stat_date, answered, correct):
        self._check("insert_daily_stat")
        self.state["daily_stats"][(user_id, stat_date)] = {
            "stat_id": self._next("stat"), "user_id": user_id, "stat_date": stat_date,
            "questions_answered_today": answered, "correct_answers_today": correct,
            "completed_quiz_today": True,
        }

    def update_daily_stat(self, stat_id, answered, correct):
        self._check("update_daily_stat")
        for row in self.state["daily_stats"].values():
            if row["stat_id"] == stat_id:
                row.update(questions_answered_today=answered, correct_answers_today=correct,
                           completed_quiz_today=True)

    # --- weakness ---

    def upsert_weakness_item(self, user_id, word_id, status):
        key = (user_id, word_id)
        row = self.state["weakness"].get(key)
        if row is None:
            stamp = self._tick()
            row = {"user_id": user_id, "word_id": word_id, "status": status, "added_at": stamp, "updated_at": stamp}
            self.state["weakness"][key] = row
        elif row["status"] != status:
            row.update(status=status, updated_at=self._tick())
        return dict(row)

    def set_weakness_status(self, user_id, word_id, status):
        row = self.state["weakness"].get((user_id, word_id))
        if row is None or row["status"] == status:
            return 0
        row.update(status=status, updated_at=self._tick())
        return 1

    def list_weakness_items(self, user_id, exclude_status):
        rows = [dict(r) for (uid, _), r in self.state["weakness"].items()
                if uid == user_id and r["status"] != exclude_status]
        return sorted(rows, key=lambda r: (r["added_at"], r["word_id"]))

    # --- reports ---

    def insert_report(self, word_id, reason, details, user_id):
        if word_id not in self.state["words"]:
            raise NotFoundError(f"Invalid word_id: {word_id}. This word does not exist.")
        row = {"id": self._next("report"), "word_id": word_id, "report_reason": reason,
               "report_details": details, "user_id": user_id, "created_at": self._tick()}
        self.state["reports"].append(row)
        return dict(row)

    def get_report(self, report_id):
        for row in self.state["reports"]:
            if row["id"] == report_id:
                return dict(row)
        return None

    def insert_report_dismissal(self, user_id, report_id):
        if (user_id, report_id) in self.state["dismissals"]:
            raise ConflictResolved(f"Report {report_id} already dismissed for user {user_id}")
        self.state["dismissals"].append((user_id, report_id))

    def count_report_dismissals(self, user_id, report_id):
        return self.state["dismissals"].count((user_id, report_id))

    def list_undismissed_reports(self, user_id) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self.state["reports"]
                if r["user_id"] == user_id and (user_id, r["id"]) not in self.state["dismissals"]]
        return sorted(rows, key=lambda r: (r["created_at"], r["id"]))


@pytest.fixture
def store():
    s = InMemoryQuizStore()
    for word_id in range(1, 13):
        s.add_word(word_id, difficulty_level=["A1", "A2", "B1", "B2", "C1", "C2"][(word_id - 1) % 6])
    s.add_profile(USER_ID, total_points=100, streak_days=3, last_activity_date=YESTERDAY)
    s.add_profile(OTHER_USER_ID)
    return s


@pytest.fixture
def service(store):
    return QuizService(store=store, rng=random.Random(1234), clock=lambda: NOW)


@pytest.fixture
def client(service):
    from fastapi.testclient import TestClient
    from main import app, get_quiz_service

    app.dependency_overrides[get_quiz_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_token(user_id: str = USER_ID, **claims) -> str:
    from main import JWT_ALGORITHM, JWT_SECRET_KEY

    payload = {"sub": user_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    payload.update(claims)
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}
