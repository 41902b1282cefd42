"""Answer recording.

Answers for a question are always replaced as a whole: existing rows are
deleted before the new ones are inserted, so a question never carries a mix of
old and new selections.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..errors import AlreadySubmittedError, NotFoundError, ValidationError
from ..models import Answer, QuestionType
from .storage import FileStorageError, FileStore, FileUpload

logger = logging.getLogger(__name__)


class AnswerRecorder:
    """Writes a student's answers for an unsubmitted assignment.

    The recorder flushes but never commits; the calling service owns the
    transaction. Stored files follow that transaction: replaced files are
    removed only once it commits, and files saved during it are removed if
    it rolls back.
    """

    def __init__(self, db: Session, file_store: Optional[FileStore] = None):
        self.db = db
        self.file_store = file_store
        self._stale_files: List[str] = []
        self._saved_files: List[str] = []
        if file_store is not None:
            event.listen(db, "after_commit", self._on_commit)
            event.listen(db, "after_rollback", self._on_rollback)

    def save_answer(self, assignment, question, raw_value: Any) -> List[Answer]:
        """Replace the answer(s) to one question."""
        self._ensure_open(assignment)
        if question.assessment_id != assignment.assessment_id:
            raise NotFoundError(
                "Question", question.id,
                f"Question {question.id} does not belong to assessment {assignment.assessment_id}",
            )
        prepared = self._prepare(question, raw_value)
        return self._replace(assignment, question, prepared)

    def save_answers(self, assignment, assessment, answers: Dict[Any, Any]) -> Dict[int, List[Answer]]:
        """Replace the answers to several questions, keyed by question id.

        Every entry is validated before anything is written.
        """
        self._ensure_open(assignment)
        prepared = self.prepare_answers(assessment, answers)
        return self.write_prepared(assignment, prepared)

    def prepare_answers(self, assessment, answers: Dict[Any, Any]) -> List[Tuple[Any, Any]]:
        """Validate raw answers and pair each with its question, without writing."""
        prepared = []
        for raw_id, raw_value in (answers or {}).items():
            question_id = self._coerce_id(raw_id, "question id")
            question = assessment.get_question(question_id)
            if question is None:
                raise NotFoundError(
                    "Question", question_id,
                    f"Question {question_id} does not belong to assessment {assessment.id}",
                )
            prepared.append((question, self._prepare(question, raw_value)))
        return prepared

    def write_prepared(self, assignment, prepared: List[Tuple[Any, Any]]) -> Dict[int, List[Answer]]:
        """Write answers produced by ``prepare_answers``.

        No state check here: the submit path calls this after it has already
        claimed the assignment's submission.
        """
        return {
            question.id: self._replace(assignment, question, value)
            for question, value in prepared
        }

    def answers_by_question(self, assignment) -> Dict[int, List[Answer]]:
        grouped = defaultdict(list)
        rows = (
            self.db.query(Answer)
            .filter(Answer.assignment_id == assignment.id)
            .order_by(Answer.id)
            .all()
        )
        for answer in rows:
            grouped[answer.question_id].append(answer)
        return dict(grouped)

    def clear_answers(self, assignment) -> int:
        """Delete every answer of an assignment, including stored files."""
        rows = self.db.query(Answer).filter(Answer.assignment_id == assignment.id).all()
        for answer in rows:
            if answer.file_path:
                self._stale_files.append(answer.file_path)
            self.db.delete(answer)
        self.db.flush()
        self.db.expire(assignment, ["answers"])
        return len(rows)

    # Internal helpers

    @staticmethod
    def _ensure_open(assignment) -> None:
        if assignment.submitted_at is not None:
            raise AlreadySubmittedError(assignment.id)

    @staticmethod
    def _coerce_id(value: Any, label: str) -> int:
        if isinstance(value, bool):
            raise ValidationError(f"Invalid {label}: {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid {label}: {value!r}")

    def _prepare(self, question, raw_value: Any):
        """Normalize a raw value to what will be stored for this question type."""
        qtype = question.type

        if qtype == QuestionType.multiple:
            if raw_value is None:
                values = []
            elif isinstance(raw_value, (list, tuple, set)):
                values = list(raw_value)
            else:
                values = [raw_value]
            choice_ids = []
            for value in values:
                choice_id = self._check_choice(question, value)
                if choice_id not in choice_ids:
                    choice_ids.append(choice_id)
            return choice_ids

        if qtype in (QuestionType.one_choice, QuestionType.boolean):
            if raw_value is None:
                return None
            if isinstance(raw_value, (list, tuple, set)):
                if len(raw_value) != 1:
                    raise ValidationError(
                        f"Question {question.id} accepts exactly one choice, got {len(raw_value)}"
                    )
                raw_value = next(iter(raw_value))
            return self._check_choice(question, raw_value)

        if qtype == QuestionType.text:
            if raw_value is None:
                return None
            if not isinstance(raw_value, str):
                raise ValidationError(f"Question {question.id} expects a text answer")
            return raw_value

        if qtype == QuestionType.file:
            if raw_value is None:
                return None
            if not isinstance(raw_value, FileUpload):
                raise ValidationError(f"Question {question.id} expects a file upload")
            if self.file_store is None:
                raise ValidationError("File answers require a configured file store")
            return raw_value

        raise ValidationError(f"Unknown question type: {qtype}")

    def _check_choice(self, question, value: Any) -> int:
        choice_id = self._coerce_id(value, "choice id")
        if choice_id not in question.choice_ids:
            raise NotFoundError(
                "Choice", choice_id,
                f"Choice {choice_id} does not belong to question {question.id}",
            )
        return choice_id

    def _replace(self, assignment, question, value) -> List[Answer]:
        existing = (
            self.db.query(Answer)
            .filter(Answer.assignment_id == assignment.id, Answer.question_id == question.id)
            .all()
        )

        new_rows: List[Answer] = []
        self._stale_files.extend(a.file_path for a in existing if a.file_path)

        if question.type == QuestionType.multiple:
            new_rows = [
                Answer(assignment_id=assignment.id, question_id=question.id, choice_id=choice_id)
                for choice_id in value
            ]
        elif question.type in (QuestionType.one_choice, QuestionType.boolean):
            if value is not None:
                new_rows = [Answer(assignment_id=assignment.id, question_id=question.id, choice_id=value)]
        elif question.type == QuestionType.text:
            if value is not None:
                new_rows = [Answer(assignment_id=assignment.id, question_id=question.id, answer_text=value)]
        elif question.type == QuestionType.file:
            if value is not None:
                stored = self.file_store.save(value, folder=f"assignment_{assignment.id}")
                self._saved_files.append(stored["path"])
                new_rows = [Answer(
                    assignment_id=assignment.id,
                    question_id=question.id,
                    file_name=stored["name"],
                    file_path=stored["path"],
                    file_size=stored["size"],
                    mime_type=stored["mime_type"],
                )]

        for answer in existing:
            self.db.delete(answer)
        self.db.flush()
        self.db.add_all(new_rows)
        self.db.flush()
        self.db.expire(assignment, ["answers"])

        logger.debug(
            f"Recorded {len(new_rows)} answer row(s) for question {question.id} "
            f"on assignment {assignment.id}"
        )
        return new_rows

    def _on_commit(self, session) -> None:
        stale, self._stale_files = self._stale_files, []
        self._saved_files = []
        self._remove_files(stale)

    def _on_rollback(self, session) -> None:
        saved, self._saved_files = self._saved_files, []
        self._stale_files = []
        if saved:
            logger.info(f"Rolled back; removing {len(saved)} newly stored file(s)")
        self._remove_files(saved)

    def _remove_files(self, paths: List[str]) -> None:
        for path in paths:
            try:
                self.file_store.delete(path)
            except FileStorageError as e:
                logger.warning(f"Could not remove stored file {path}: {e}")
