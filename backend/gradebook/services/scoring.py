"""Automatic scoring of objective questions.

Each question type is handled by a strategy. Text and file questions are not
auto-scorable: their strategy returns None and the teacher grades them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from ..models import QuestionType

logger = logging.getLogger(__name__)


class ScoringStrategy(ABC):
    """Scores one question type."""

    @classmethod
    @abstractmethod
    def supported_types(cls) -> List[QuestionType]:
        pass

    @abstractmethod
    def score(self, question, answers: List) -> Optional[float]:
        """Score the answers given to ``question``; None when not auto-scorable."""
        pass

    def supports(self, question_type: QuestionType) -> bool:
        return question_type in self.supported_types()


class SingleChoiceStrategy(ScoringStrategy):
    """One correct choice: full points when the selected choice is correct."""

    @classmethod
    def supported_types(cls) -> List[QuestionType]:
        return [QuestionType.one_choice, QuestionType.boolean]

    def score(self, question, answers: List) -> Optional[float]:
        if not answers:
            return 0.0
        if len(answers) > 1:
            logger.warning(
                f"Question {question.id} is single-valued but has {len(answers)} answer rows; "
                "only the first is scored"
            )
        selected = answers[0].choice_id
        if selected is not None and selected in question.correct_choice_ids:
            return float(question.points)
        return 0.0


class MultipleChoiceStrategy(ScoringStrategy):
    """All-or-nothing: the selected set must equal the correct set exactly."""

    @classmethod
    def supported_types(cls) -> List[QuestionType]:
        return [QuestionType.multiple]

    def score(self, question, answers: List) -> Optional[float]:
        selected = {a.choice_id for a in answers if a.choice_id is not None}
        if selected and selected == question.correct_choice_ids:
            return float(question.points)
        return 0.0


class ManualGradingStrategy(ScoringStrategy):
    """Text and file answers are left for the teacher."""

    @classmethod
    def supported_types(cls) -> List[QuestionType]:
        return [QuestionType.text, QuestionType.file]

    def score(self, question, answers: List) -> Optional[float]:
        return None


class AutoScorer:
    """Dispatches scoring to the strategy registered for each question type."""

    def __init__(self, strategies: Optional[Iterable[ScoringStrategy]] = None):
        self.strategies: List[ScoringStrategy] = list(strategies) if strategies is not None else [
            SingleChoiceStrategy(),
            MultipleChoiceStrategy(),
            ManualGradingStrategy(),
        ]

    def register(self, strategy: ScoringStrategy) -> "AutoScorer":
        # Later registrations win over the defaults
        self.strategies.insert(0, strategy)
        return self

    def strategy_for(self, question_type: QuestionType) -> Optional[ScoringStrategy]:
        for strategy in self.strategies:
            if strategy.supports(question_type):
                return strategy
        return None

    def score(self, question, answers: List) -> Optional[float]:
        strategy = self.strategy_for(question.type)
        if strategy is None:
            logger.warning(f"No scoring strategy for question type {question.type}")
            return None
        return strategy.score(question, list(answers))

    def is_correct(self, question, answers: List) -> bool:
        result = self.score(question, answers)
        return result is not None and result == float(question.points) and bool(answers)

    def apply(self, question, answers: List) -> Optional[float]:
        """Score the question and write the result onto its answer rows.

        The first row carries the question's score and any further rows get 0,
        so summing answer scores gives the assignment total.
        """
        answers = list(answers)
        result = self.score(question, answers)
        if result is None or not answers:
            return result

        answers[0].score = result
        for extra in answers[1:]:
            extra.score = 0.0
        return result

    def auto_score_total(self, assessment, answers_by_question: Dict[int, List]) -> float:
        """Sum the objective component over all auto-scorable questions."""
        total = 0.0
        for question in assessment.questions:
            if not question.type.is_auto_scorable:
                continue
            answers = answers_by_question.get(question.id, [])
            if not answers:
                continue
            total += self.apply(question, answers) or 0.0
        return round(total, 2)
