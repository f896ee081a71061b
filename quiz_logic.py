#!/usr/bin/env python3
"""
Quiz Logic System - Option shuffling, answer checking and question presentation
Correctness is tracked by each option's original letter, never by its shuffled position
"""

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from errors import DataIntegrityError, InputValidationError

logger = logging.getLogger(__name__)

OPTION_LETTERS = ("A", "B", "C", "D")

# Content convention: option_a holds the definition, the rest are distractors
CANONICAL_CORRECT_SLOT = 0

MIN_SERVABLE_OPTIONS = 2

# CEFR levels grouped the way the course picker offers them
DIFFICULTY_GROUPS: Dict[str, List[str]] = {
    "beginner": ["A1", "A2"],
    "intermediate": ["B1", "B2"],
    "advanced": ["C1", "C2"],
}

MIXED_DIFFICULTY = "mixed"

GENERAL_COURSE = "general"
DIFFICULTY_COURSE_PREFIX = "difficulty-"
WEAKNESS_TRAINING_COURSE = "weakness-training"
REPORTED_QUESTIONS_COURSE = "reported-questions"


@dataclass
class WordItem:
    word_id: int
    word: str
    options: List[Optional[str]]
    part_of_speech: Optional[str] = None
    definition: Optional[str] = None
    example_sentence: Optional[str] = None
    difficulty_level: Optional[str] = None
    is_active: bool = True
    correct_slot: int = CANONICAL_CORRECT_SLOT
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WordItem":
        """Build a word item from a `words` table row"""
        return cls(
            word_id=row["id"],
            word=row.get("word") or "",
            options=[row.get("option_a"), row.get("option_b"), row.get("option_c"), row.get("option_d")],
            part_of_speech=row.get("part_of_speech"),
            definition=row.get("definition"),
            example_sentence=row.get("example_sentence"),
            difficulty_level=row.get("difficulty_level"),
            is_active=row.get("is_active", True),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @property
    def correct_letter(self) -> str:
        return OPTION_LETTERS[self.correct_slot]

    @property
    def correct_text(self) -> Optional[str]:
        if self.correct_slot >= len(self.options):
            return None
        return self.options[self.correct_slot]

    def option_text(self, letter: Optional[str]) -> Optional[str]:
        """Text of the option stored under an original letter"""
        if not letter:
            return None
        letter = letter.strip().upper()
        if letter not in OPTION_LETTERS:
            return None
        slot = OPTION_LETTERS.index(letter)
        return self.options[slot] if slot < len(self.options) else None

    def integrity_problem(self) -> Optional[str]:
        """Describe why this word cannot be served, or None when it can"""
        if len(self.options) != len(OPTION_LETTERS):
            return f"expected {len(OPTION_LETTERS)} option slots, found {len(self.options)}"
        if not 0 <= self.correct_slot < len(OPTION_LETTERS):
            return f"correct slot {self.correct_slot} is out of range"
        if not _has_text(self.correct_text):
            return f"canonical option {self.correct_letter} is empty"
        filled = sum(1 for text in self.options if _has_text(text))
        if filled < MIN_SERVABLE_OPTIONS:
            return f"only {filled} option(s) have text"
        return None


@dataclass
class PresentedOption:
    text: str
    original_letter: str


@dataclass
class PresentedQuestion:
    """A word as shown to one client: options in random order, no answer indicator"""
    question_id: int
    word: str
    question_text: str
    options: List[PresentedOption]
    permutation: List[int]
    part_of_speech: Optional[str] = None
    paragraph: Optional[str] = None
    difficulty: Optional[str] = None
    report_id: Optional[int] = None

    @property
    def label_of(self) -> Dict[int, str]:
        """Source slot index -> original letter, for every presented option"""
        return {slot: OPTION_LETTERS[slot] for slot in self.permutation}


@dataclass
class AnswerCheck:
    is_correct: bool
    correct_letter: str
    correct_text: str
    explanation: str
    difficulty: Optional[str] = None
    word_info: Dict[str, Any] = field(default_factory=dict)


def _has_text(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


def generate_question_text(word: str, part_of_speech: Optional[str], example_sentence: Optional[str]) -> str:
    """Question prompt with the target word highlighted inside its example sentence"""
    if not _has_text(example_sentence):
        return f'What is the definition of "{word}"?'

    highlighted = re.sub(
        rf"\b{re.escape(word)}\b",
        lambda match: f"**{match.group(0)}**",
        example_sentence,
        flags=re.IGNORECASE,
    )
    pos = f" ({part_of_speech})" if part_of_speech else ""
    return f'In the sentence: "{highlighted}" - What does the word "{word}"{pos} mean?'


def build_explanation(word: WordItem) -> str:
    pos = f" ({word.part_of_speech})" if word.part_of_speech else ""
    definition = word.definition if _has_text(word.definition) else word.correct_text
    return f'"{word.word}"{pos}: {definition}'


def shuffle_options(word: WordItem, rng: Optional[random.Random] = None) -> PresentedQuestion:
    """
    Present a word with its options in random order

    Args:
        word: Word item with options in canonical order
        rng: Random source; the module-level generator when omitted

    Returns:
        PresentedQuestion whose options keep their original letters

    Raises:
        DataIntegrityError: the word has no servable canonical option
    """
    problem = word.integrity_problem()
    if problem:
        raise DataIntegrityError(word.word_id, problem)

    rng = rng or random
    slots = [slot for slot, text in enumerate(word.options) if _has_text(text)]
    rng.shuffle(slots)

    return PresentedQuestion(
        question_id=word.word_id,
        word=word.word,
        question_text=generate_question_text(word.word, word.part_of_speech, word.example_sentence),
        options=[PresentedOption(text=word.options[slot], original_letter=OPTION_LETTERS[slot]) for slot in slots],
        permutation=slots,
        part_of_speech=word.part_of_speech,
        paragraph=word.example_sentence,
        difficulty=word.difficulty_level,
    )


def present_words(words: Sequence[WordItem], rng: Optional[random.Random] = None) -> Tuple[List[PresentedQuestion], List[int]]:
    """Shuffle every servable word; returns (presented, rejected word ids)"""
    presented = []
    rejected = []
    for word in words:
        try:
            presented.append(shuffle_options(word, rng))
        except DataIntegrityError as e:
            logger.error(f"Excluding word from quiz: {e}")
            rejected.append(word.word_id)
    return presented, rejected


def check_answer(word: WordItem, chosen_letter: str) -> AnswerCheck:
    """Compare a chosen original letter with the word's canonical answer"""
    letter = (chosen_letter or "").strip().upper()
    if letter not in OPTION_LETTERS:
        raise InputValidationError(
            f"Selected letter must be one of {', '.join(OPTION_LETTERS)}",
            details={"selected_original_letter": chosen_letter},
        )

    correct_text = word.correct_text
    if not _has_text(correct_text):
        logger.error(f"Word {word.word_id} has an empty canonical option {word.correct_letter}")
        raise DataIntegrityError(word.word_id, f"canonical option {word.correct_letter} is empty")

    return AnswerCheck(
        is_correct=letter == word.correct_letter,
        correct_letter=word.correct_letter,
        correct_text=correct_text,
        explanation=build_explanation(word),
        difficulty=word.difficulty_level,
        word_info={
            "word": word.word,
            "part_of_speech": word.part_of_speech,
            "definition": word.definition,
            "example_sentence": word.example_sentence,
        },
    )


def difficulty_levels_for(difficulty: Optional[str]) -> Optional[List[str]]:
    """CEFR levels matching a difficulty filter; None means no filter"""
    if not difficulty or difficulty == MIXED_DIFFICULTY:
        return None
    if difficulty in DIFFICULTY_GROUPS:
        return list(DIFFICULTY_GROUPS[difficulty])
    return [difficulty]


def group_difficulty_counts(level_counts: Dict[str, int]) -> List[Dict[str, Any]]:
    """Fold per-CEFR-level word counts into the beginner/intermediate/advanced groups"""
    groups = []
    for group_name, levels in DIFFICULTY_GROUPS.items():
        levels_in_db = [level for level in levels if level_counts.get(level)]
        count = sum(level_counts[level] for level in levels_in_db)
        if count > 0:
            groups.append({"level": group_name, "count": count, "cefr_levels": levels_in_db})
    return groups


def parse_course_type(course_type: str) -> Dict[str, Any]:
    """Split a course tag such as 'difficulty-beginner' into kind and difficulty"""
    if course_type.startswith(DIFFICULTY_COURSE_PREFIX):
        return {"kind": "difficulty", "difficulty": course_type[len(DIFFICULTY_COURSE_PREFIX):]}
    if course_type in (WEAKNESS_TRAINING_COURSE, REPORTED_QUESTIONS_COURSE):
        return {"kind": course_type, "difficulty": MIXED_DIFFICULTY}
    return {"kind": GENERAL_COURSE, "difficulty": MIXED_DIFFICULTY}
