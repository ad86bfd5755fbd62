"""
Multi-step answering of a questionnaire.

Separator questions split the questionnaire into steps. The respondent moves
forward with `next_step()` once the visible questions of the current step are
valid, back with `back()` without losing anything, and finishes with
`submit()` on the last step.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from .conditions import resolve_visibility, visible_questions
from .schema import QuestionSpec, QuestionnaireSchema
from .validation import ErrorSet, validate_answers, validate_submission
from .values import AnswerValues

logger = logging.getLogger(__name__)

STEP = "step"
FAILED = "failed"
COMPLETED = "completed"


class SessionClosedError(Exception):
    """Raised when a completed session is modified."""
    pass


class QuestionnaireSession:

    def __init__(self, schema: QuestionnaireSchema, values: Optional[AnswerValues] = None, step: int = 0, state: str = STEP):
        self.schema = schema
        self.values = values if values is not None else AnswerValues()
        self.step = min(max(step, 0), len(schema.steps) - 1)
        self.state = state
        self.errors = ErrorSet()

    @property
    def step_count(self) -> int:
        return len(self.schema.steps)

    @property
    def is_first_step(self) -> bool:
        return self.step == 0

    @property
    def is_last_step(self) -> bool:
        return self.step == self.step_count - 1

    @property
    def is_completed(self) -> bool:
        return self.state == COMPLETED

    def _ensure_open(self):
        if self.is_completed:
            raise SessionClosedError("This questionnaire has already been answered")

    def step_questions(self, step: Optional[int] = None) -> List[QuestionSpec]:
        return list(self.schema.steps[self.step if step is None else step])

    def current_questions(self) -> List[QuestionSpec]:
        """Visible questions of the current step."""
        return visible_questions(self.schema, self.values, self.step_questions())

    def visibility(self) -> Dict[int, bool]:
        return resolve_visibility(self.schema, self.values)

    def revealed_since(self, visibility: Dict[int, bool]) -> List[QuestionSpec]:
        """Questions of the current step that are visible now but were hidden in `visibility`."""
        return [q for q in self.current_questions() if not visibility.get(q.id, True)]

    def set_value(self, question_id: int, value):
        self._ensure_open()
        self.values.set_value(question_id, value)

    def get_value(self, question_id: int):
        return self.values.get_value(question_id)

    def next_step(self) -> bool:
        """Advance when the current step is valid. Returns True on success."""
        self._ensure_open()
        errors = validate_answers(self.schema, self.values, self.step_questions())
        if errors:
            self.state = FAILED
            self.errors = errors
            return False

        self.errors = ErrorSet()
        self.state = STEP
        if not self.is_last_step:
            self.step += 1
        return True

    def back(self):
        self._ensure_open()
        self.errors = ErrorSet()
        self.state = STEP
        if self.step > 0:
            self.step -= 1

    def visible_values(self) -> AnswerValues:
        """Values of visible questions only; hidden answers are never stored."""
        visibility = self.visibility()
        return self.values.only(qid for qid, visible in visibility.items() if visible)

    def submit(self, tos_agreement: bool = False, persist: Optional[Callable[[QuestionnaireSchema, AnswerValues], Any]] = None) -> ErrorSet:
        """
        Validate every step and, when valid, hand the visible values to
        `persist`. A StaleQuestionnaireError from either step propagates.
        """
        self._ensure_open()
        if not self.is_last_step:
            raise ValueError("Submit is only possible from the last step")

        errors = validate_submission(self.schema, self.values, tos_agreement)
        if errors:
            self.state = FAILED
            self.errors = errors
            logger.info(f"Questionnaire {self.schema.questionnaire_id}: submission rejected with {len(errors)} error(s)")
            return errors

        if persist is not None:
            persist(self.schema, self.visible_values())

        self.errors = ErrorSet()
        self.state = COMPLETED
        return self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionnaire_id": self.schema.questionnaire_id,
            "step": self.step,
            "state": self.state,
            "values": self.values.to_dict(),
        }

    @classmethod
    def from_dict(cls, schema: QuestionnaireSchema, data: Optional[Dict[str, Any]]) -> "QuestionnaireSession":
        if not data or data.get("questionnaire_id") != schema.questionnaire_id:
            return cls(schema)
        state = data.get("state", STEP)
        if state == FAILED:
            state = STEP
        return cls(
            schema,
            values=AnswerValues.from_dict(data.get("values")),
            step=data.get("step", 0),
            state=state,
        )
