"""
Exam engine: creation by random sampling, delivery, attempts and scoring
"""
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from examprep.config import settings
from examprep.errors import (
    BadRequestError,
    ForbiddenError,
    InsufficientQuestionsError,
    InternalError,
    InvalidStateError,
    NotFoundError,
)
from examprep.models import Attempt, Exam, Question
from examprep.repositories import (
    AttemptRepository,
    ExamRepository,
    QuestionFilter,
    QuestionRepository,
)
from examprep.services import scoring
from examprep.utils.clock import utcnow

logger = logging.getLogger(__name__)


class ExamService:
    """
    Service owning the exam lifecycle
    
    Lifecycle: not_started --start--> in_progress --finish--> finished.
    Start and finish are idempotent and never move an exam backwards.
    Attempts may be recorded in any state, so finished exams stay reviewable.
    """
    
    def __init__(
        self,
        db: Session,
        rng: Optional[random.Random] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        self.db = db
        self.questions = QuestionRepository(db)
        self.exams = ExamRepository(db)
        self.attempts = AttemptRepository(db)
        self.rng = rng or random.Random()
        self.clock = clock
    
    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    
    def create_exam(
        self,
        user_id: UUID,
        skill_ids: Optional[Sequence[UUID]] = None,
        only_unsolved: bool = False,
        question_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create an exam from a uniform sample of the filtered question pool
        
        Args:
            user_id: Owner of the exam
            skill_ids: Restrict to these skills (empty = all skills)
            only_unsolved: Only questions attempted but never answered correctly
            question_count: Exam size (default from settings)
            
        Returns:
            Dictionary with exam metadata and its questions
            
        Raises:
            InsufficientQuestionsError: pool smaller than question_count, either
                at count time or after sampling (pool shrank in between)
        """
        count = question_count if question_count is not None else settings.DEFAULT_EXAM_QUESTION_COUNT
        if count < 1:
            raise BadRequestError("question_count must be at least 1")
        
        question_filter = QuestionFilter(
            user_id=user_id,
            skill_ids=list(skill_ids or []),
            only_unsolved=bool(only_unsolved),
        )
        
        total = self.questions.count_matching(question_filter)
        if total < count:
            logger.info(f"Exam creation rejected: {total} matching questions, {count} requested")
            raise InsufficientQuestionsError()
        
        chosen = self._sample_question_ids(question_filter, total, count)
        if len(chosen) < count:
            logger.warning(
                f"Question pool shrank during sampling: resolved {len(chosen)}/{count}"
            )
            raise InsufficientQuestionsError()
        
        exam = Exam(
            user_id=user_id,
            question_count=count,
            only_unsolved=question_filter.only_unsolved,
            filter_skill_ids=[str(skill_id) for skill_id in question_filter.skill_ids],
        )
        
        try:
            self.exams.add_with_questions(exam, chosen)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist exam for user {user_id}: {str(e)}")
            raise InternalError("Failed to create exam")
        
        logger.info(f"Exam created: {exam.id} ({count} questions) for user {user_id}")
        
        return self.get_exam_questions(user_id, exam.id)
    
    def _sample_question_ids(
        self,
        question_filter: QuestionFilter,
        total: int,
        count: int,
    ) -> List[UUID]:
        """
        Sample `count` distinct question ids by random offsets
        
        Offsets are drawn uniformly without replacement from [0, total) and each
        one is resolved with its own point query, so candidate ids are never
        materialized. An offset past the end of a shrunken pool resolves to
        nothing and the result comes back short.
        """
        offsets = self.rng.sample(range(total), count)
        
        chosen: List[UUID] = []
        seen = set()
        for offset in offsets:
            question_id = self.questions.question_id_at_offset(question_filter, offset)
            if question_id is None or question_id in seen:
                continue
            seen.add(question_id)
            chosen.append(question_id)
        
        return chosen
    
    # ------------------------------------------------------------------
    # Delivery and lifecycle
    # ------------------------------------------------------------------
    
    def get_exam_questions(self, user_id: UUID, exam_id: UUID) -> Dict[str, Any]:
        """Exam metadata plus its questions in stored order (no correctness data)"""
        exam = self._get_owned_exam(user_id, exam_id)
        questions = self.exams.list_questions(exam.id)
        
        return {
            "exam": self._exam_payload(exam),
            "questions": [self._question_payload(q) for q in questions],
        }
    
    def start_exam(self, user_id: UUID, exam_id: UUID) -> Dict[str, Any]:
        exam = self._get_owned_exam(user_id, exam_id)
        
        if exam.finished_at is not None:
            raise InvalidStateError("exam already finished")
        
        if exam.started_at is None:
            exam.started_at = self.clock()
            self._commit(f"start exam {exam_id}")
            logger.info(f"Exam started: {exam.id}")
        
        return {"exam": self._exam_payload(exam)}
    
    def finish_exam(self, user_id: UUID, exam_id: UUID) -> Dict[str, Any]:
        exam = self._get_owned_exam(user_id, exam_id)
        
        if exam.started_at is None:
            raise InvalidStateError("exam not started")
        
        if exam.finished_at is None:
            exam.finished_at = self.clock()
            self._commit(f"finish exam {exam_id}")
            logger.info(f"Exam finished: {exam.id}")
        
        return {"exam": self._exam_payload(exam)}
    
    def list_exams(self, user_id: UUID) -> Dict[str, Any]:
        """All of the user's exams, newest first, with best-ever counts"""
        exams = self.exams.list_for_user(user_id)
        attempts = self.attempts.list_for_exams(user_id, [exam.id for exam in exams])
        
        attempts_by_exam: Dict[UUID, List[Attempt]] = {}
        for attempt in attempts:
            attempts_by_exam.setdefault(attempt.exam_id, []).append(attempt)
        
        return {
            "exams": [
                {
                    **self._exam_payload(exam),
                    **scoring.exam_counts(exam.question_count, attempts_by_exam.get(exam.id, [])),
                }
                for exam in exams
            ]
        }
    
    def get_exam_results(self, user_id: UUID, exam_id: UUID) -> Dict[str, Any]:
        """Exam questions tagged correct / incorrect / unanswered"""
        exam = self._get_owned_exam(user_id, exam_id)
        questions = self.exams.list_questions(exam.id)
        attempts = self.attempts.list_for_exam(user_id, exam.id)
        statuses = scoring.question_statuses(attempts)
        
        return {
            "exam": {
                **self._exam_payload(exam),
                **scoring.exam_counts(exam.question_count, attempts),
            },
            "questions": [
                {
                    **self._question_payload(q),
                    "status": statuses.get(q.id, scoring.QUESTION_UNANSWERED),
                }
                for q in questions
            ],
        }
    
    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------
    
    def create_attempt(
        self,
        user_id: UUID,
        question_id: UUID,
        selected_option_id: UUID,
        exam_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        """
        Record an answer and return immediate feedback
        
        Correctness is copied from the selected option's flag; it is never
        recomputed afterwards.
        """
        if exam_id is not None:
            self._get_owned_exam(user_id, exam_id)
            if not self.exams.contains_question(exam_id, question_id):
                raise BadRequestError("question does not belong to exam")
        
        question = self.questions.get(question_id)
        if question is None:
            raise NotFoundError("question not found")
        
        option = self.questions.get_option(selected_option_id)
        if option is None:
            raise NotFoundError("option not found")
        if option.question_id != question_id:
            raise NotFoundError("option does not belong to question")
        
        correct_option = self.questions.get_correct_option(question_id)
        if correct_option is None:
            raise NotFoundError("correct option not found")
        
        attempt = Attempt(
            user_id=user_id,
            exam_id=exam_id,
            question_id=question_id,
            selected_option_id=selected_option_id,
            is_correct=bool(option.is_correct),
            created_at=self.clock(),
        )
        self.attempts.add(attempt)
        self._commit(f"record attempt on question {question_id}")
        
        logger.info(
            f"Attempt recorded: user={user_id}, question={question_id}, "
            f"exam={exam_id}, correct={attempt.is_correct}"
        )
        
        return {
            "attempt": {
                "id": attempt.id,
                "exam_id": attempt.exam_id,
                "question_id": attempt.question_id,
                "selected_option_id": attempt.selected_option_id,
                "is_correct": attempt.is_correct,
                "created_at": attempt.created_at,
            },
            "feedback": {
                "is_correct": attempt.is_correct,
                "correct_option_id": correct_option.id,
                "explanation_text": question.explanation_text,
            },
        }
    
    def list_exam_attempts(self, user_id: UUID, exam_id: UUID) -> List[Dict[str, Any]]:
        """Every attempt of the user inside an exam, oldest first, with the answer key"""
        exam = self._get_owned_exam(user_id, exam_id)
        attempts = self.attempts.list_for_exam(user_id, exam.id)
        correct_ids = self.questions.correct_option_ids(a.question_id for a in attempts)
        
        results = []
        for attempt in attempts:
            correct_option_id = correct_ids.get(attempt.question_id)
            if correct_option_id is None:
                raise NotFoundError("correct option not found")
            results.append({
                "id": attempt.id,
                "question_id": attempt.question_id,
                "selected_option_id": attempt.selected_option_id,
                "is_correct": attempt.is_correct,
                "correct_option_id": correct_option_id,
                "created_at": attempt.created_at,
            })
        
        return results
    
    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    
    def _get_owned_exam(self, user_id: UUID, exam_id: UUID) -> Exam:
        exam = self.exams.get(exam_id)
        if exam is None:
            raise NotFoundError("exam not found")
        if exam.user_id != user_id:
            raise ForbiddenError("exam does not belong to user")
        return exam
    
    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise InternalError(f"Failed to {action}")
    
    @staticmethod
    def _exam_payload(exam: Exam) -> Dict[str, Any]:
        return {
            "id": exam.id,
            "created_at": exam.created_at,
            "started_at": exam.started_at,
            "finished_at": exam.finished_at,
            "status": scoring.exam_status(exam.started_at, exam.finished_at),
            "question_count": exam.question_count,
        }
    
    @staticmethod
    def _question_payload(question: Question) -> Dict[str, Any]:
        return {
            "id": question.id,
            "statement": question.statement,
            "skill_id": question.skill_id,
            "options": [{"id": o.id, "text": o.text} for o in question.options],
        }
