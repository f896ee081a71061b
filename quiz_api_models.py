#!/usr/bin/env python3
"""
Quiz API Models - Pydantic request and response models for the REST API
"""

from __future__ import annotations
from typing import List, Dict, Optional, Any
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field

from progress_tracker import SessionSubmission
from quiz_logic import AnswerCheck, PresentedQuestion

# === Questions ===

class OptionData(BaseModel):
    """One presented option; the letter is its original slot, not its position"""
    text: str
    originalLetter: str

class QuestionData(BaseModel):
    """Question data returned to client (without correct answer)"""
    id: int
    word: str
    part_of_speech: Optional[str] = None
    question_text: str
    paragraph: Optional[str] = None
    difficulty: Optional[str] = None
    options: List[OptionData]
    report_id: Optional[int] = None

    @classmethod
    def from_presented(cls, question: PresentedQuestion) -> "QuestionData":
        return cls(
            id=question.question_id,
            word=question.word,
            part_of_speech=question.part_of_speech,
            question_text=question.question_text,
            paragraph=question.paragraph,
            difficulty=question.difficulty,
            options=[OptionData(text=o.text, originalLetter=o.original_letter) for o in question.options],
            report_id=question.report_id,
        )

class QuestionListResponse(BaseModel):
    success: bool = True
    count: int
    difficulty: str = "mixed"
    questions: List[QuestionData]

class DifficultyLevel(BaseModel):
    level: str
    count: int
    cefr_levels: List[str]

class DifficultyLevelsResponse(BaseModel):
    success: bool = True
    difficulties: List[DifficultyLevel]

class CheckAnswerRequest(BaseModel):
    """Request payload for checking a single answer"""
    model_config = ConfigDict(populate_by_name=True)

    question_id: int = Field(..., alias="questionId", description="Word/question ID")
    selected_original_letter: str = Field(..., alias="selectedOriginalLetter", min_length=1, max_length=1,
                                          description="Original letter (A-D) of the chosen option")

class CheckAnswerResponse(BaseModel):
    success: bool = True
    isCorrect: bool
    correctOriginalLetter: str
    correctAnswerText: str
    explanation: str
    difficulty: Optional[str] = None
    word_info: Dict[str, Any] = {}

    @classmethod
    def from_check(cls, result: AnswerCheck) -> "CheckAnswerResponse":
        return cls(
            isCorrect=result.is_correct,
            correctOriginalLetter=result.correct_letter,
            correctAnswerText=result.correct_text,
            explanation=result.explanation,
            difficulty=result.difficulty,
            word_info=result.word_info,
        )

# === Sessions ===

class AnsweredQuestion(BaseModel):
    """One answer inside a finished session"""
    question_id: Optional[int] = Field(None, description="Word/question ID")
    selected_original_letter: Optional[str] = Field(None, description="Original letter of the chosen option")
    is_correct: Optional[bool] = Field(None, description="Client's view of correctness; recomputed server-side")

class QuizSessionRequest(BaseModel):
    """Request payload for recording a finished quiz session"""
    course_type: str = Field(..., min_length=1, max_length=64, description="e.g. general, difficulty-beginner")
    score_correct: int = Field(..., ge=0)
    score_total: int = Field(..., ge=0)
    duration_seconds: Optional[int] = Field(None, ge=0)
    questions_answered_details: List[AnsweredQuestion] = Field(default_factory=list)

    def to_submission(self) -> SessionSubmission:
        return SessionSubmission(
            course_type=self.course_type,
            score_correct=self.score_correct,
            score_total=self.score_total,
            duration_seconds=self.duration_seconds,
            answers=[a.model_dump() for a in self.questions_answered_details],
        )

class QuizSessionResponse(BaseModel):
    success: bool = True
    message: str = "Quiz session recorded successfully"
    session_id: int
    total_points: int
    streak_days: int
    accuracy: float

class DashboardStatsResponse(BaseModel):
    success: bool = True
    streak_days: int
    completed_today: int
    correct_today: int
    completed_quiz_today: bool
    total_points: int
    last_activity_date: Optional[date] = None
    total_words_available: int

class CourseStat(BaseModel):
    course_type: str
    kind: str
    difficulty: str
    completed: int
    accuracy: int
    highest_accuracy: float
    last_played_at: Optional[datetime] = None

class CourseStatsResponse(BaseModel):
    success: bool = True
    course_stats: List[CourseStat]

# === History ===

class HistoryItem(BaseModel):
    history_id: int
    question_id: int
    word: str
    selected_option_letter: str
    selected_option_text: Optional[str] = None
    is_correct: bool
    correct_option_letter: str
    correct_option_text: Optional[str] = None
    explanation: Optional[str] = None
    answered_at: Optional[datetime] = None

class Pagination(BaseModel):
    totalItems: int
    totalPages: int
    currentPage: int
    pageSize: int

class LearningHistoryResponse(BaseModel):
    success: bool = True
    data: List[HistoryItem]
    pagination: Pagination

# === Weakness list and reports ===

class WeaknessItemRequest(BaseModel):
    word_id: int

class WeaknessItem(BaseModel):
    user_id: str
    word_id: int
    status: str
    added_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class WeaknessItemResponse(BaseModel):
    success: bool = True
    message: str
    item: Optional[WeaknessItem] = None

class CountResponse(BaseModel):
    success: bool = True
    count: int

class ReportRequest(BaseModel):
    word_id: int
    report_reason: str = Field(..., min_length=1)
    report_details: Optional[str] = None

class ReportResponse(BaseModel):
    success: bool = True
    message: str = "Report submitted successfully."
    report_id: int

class DismissResponse(BaseModel):
    success: bool = True
    message: str
    report_id: int
    already_dismissed: bool

class AckResponse(BaseModel):
    success: bool = True
    message: str

# === Error Models ===

class ErrorResponse(BaseModel):
    """Standard error response"""
    success: bool = False
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
