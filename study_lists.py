#!/usr/bin/env python3
"""
Study Lists - Per-user weak-word list and question reports
Both lists feed the weakness-training and reported-questions quiz modes
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from errors import ConflictResolved, InputValidationError, NotFoundError
from quiz_logic import PresentedQuestion, WordItem, present_words

logger = logging.getLogger(__name__)

ACTIVE_MANUAL_ADD = "active_manual_add"
REMOVED_MANUAL = "removed_manual"
ACTIVE_AUTO_ADD = "active_auto_add"  # reserved for system-detected weaknesses

MAX_REPORT_REASON_LENGTH = 100
MAX_REPORT_DETAILS_LENGTH = 1000


@dataclass
class DismissResult:
    report_id: int
    already_dismissed: bool


class StudyListManager:
    """Weak-word and report state for one store connection; callers own the transaction"""

    def __init__(self, store, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()

    def _require_word(self, word_id: int):
        if self.store.get_word(word_id) is None:
            raise NotFoundError(f"Word {word_id} not found", details={"word_id": word_id})

    def _present(self, word_ids: List[int], limit: int) -> List[PresentedQuestion]:
        words = [WordItem.from_row(row) for row in self.store.get_words_by_ids(word_ids)]
        by_id = {word.word_id: word for word in words}
        ordered = [by_id[word_id] for word_id in word_ids if word_id in by_id]
        self.rng.shuffle(ordered)
        presented, rejected = present_words(ordered, self.rng)
        if rejected:
            logger.warning(f"Dropped {len(rejected)} unservable word(s) from study list: {rejected}")
        return presented[:limit]

    # === Weakness list ===

    def add_weakness(self, user_id: str, word_id: int) -> Dict[str, Any]:
        """Put a word on the user's weak list; adding an active word again changes nothing"""
        self._require_word(word_id)
        item = self.store.upsert_weakness_item(user_id, word_id, ACTIVE_MANUAL_ADD)
        logger.info(f"Word {word_id} is on the weakness list of user {user_id}")
        return item

    def remove_weakness(self, user_id: str, word_id: int) -> bool:
        """Mark a word removed; returns False when there was nothing active to remove"""
        changed = self.store.set_weakness_status(user_id, word_id, REMOVED_MANUAL) > 0
        if not changed:
            logger.info(f"Word {word_id} not in weakness list of user {user_id} or already removed")
        return changed

    def active_weakness_ids(self, user_id: str) -> List[int]:
        items = self.store.list_weakness_items(user_id, exclude_status=REMOVED_MANUAL)
        return list(dict.fromkeys(item['word_id'] for item in items))

    def count_active_weaknesses(self, user_id: str) -> int:
        return len(self.active_weakness_ids(user_id))

    def weakness_questions(self, user_id: str, limit: int) -> List[PresentedQuestion]:
        word_ids = self.active_weakness_ids(user_id)
        if not word_ids:
            return []
        return self._present(word_ids, limit)

    # === Reports ===

    def submit_report(self, user_id: Optional[str], word_id: int, reason: str, details: Optional[str] = None) -> Dict[str, Any]:
        reason = (reason or "").strip()
        if not reason:
            raise InputValidationError("Report reason is required")
        if len(reason) > MAX_REPORT_REASON_LENGTH:
            raise InputValidationError(f"Report reason is longer than {MAX_REPORT_REASON_LENGTH} characters")
        if details is not None:
            details = details.strip() or None
        if details and len(details) > MAX_REPORT_DETAILS_LENGTH:
            raise InputValidationError(f"Report details are longer than {MAX_REPORT_DETAILS_LENGTH} characters")

        self._require_word(word_id)
        report = self.store.insert_report(word_id, reason, details, user_id)
        logger.info(f"Report {report['id']} filed on word {word_id} ({reason})")
        return report

    def dismiss_report(self, user_id: str, report_id: int) -> DismissResult:
        """Hide one report from one user; dismissing twice is still a success"""
        if self.store.get_report(report_id) is None:
            raise NotFoundError(f"Report {report_id} not found", details={"report_id": report_id})
        try:
            self.store.insert_report_dismissal(user_id, report_id)
        except ConflictResolved:
            logger.info(f"Report {report_id} was already dismissed by user {user_id}")
            return DismissResult(report_id=report_id, already_dismissed=True)
        return DismissResult(report_id=report_id, already_dismissed=False)

    def reported_questions(self, user_id: str, limit: int) -> List[PresentedQuestion]:
        """One review entry per reported word, keyed by the first matching report"""
        first_report: Dict[int, int] = {}
        for report in self.store.list_undismissed_reports(user_id):
            first_report.setdefault(report['word_id'], report['id'])
        if not first_report:
            return []

        presented = self._present(list(first_report), limit)
        for question in presented:
            question.report_id = first_report[question.question_id]
        return presented
