"""
Read-only snapshot of a questionnaire.

The answering engine (values, conditions, validation, session) works on this
snapshot instead of model instances so that visibility and validation can be
computed without touching the database. The snapshot checks its structural
invariants once, when it is built.
"""
from typing import Dict, List, Optional, Sequence

from .models import Questionnaire, TEXT_TYPES, OPTION_TYPES, MATRIX_TYPES, CHOICE_TYPES


QUESTION_TYPES = TEXT_TYPES + CHOICE_TYPES + ("separator",)
CONDITION_TYPES = ("answered", "not_answered", "equal", "not_equal", "match")


class SchemaError(Exception):
    """Raised when a questionnaire breaks a structural invariant."""
    pass


class OptionSpec:
    def __init__(self, id: int, body: str = "", free_text: bool = False):
        self.id = id
        self.body = body
        self.free_text = free_text

    def __repr__(self):
        return f"OptionSpec({self.id}, {self.body!r})"


class RowSpec:
    def __init__(self, id: int, body: str = ""):
        self.id = id
        self.body = body

    def __repr__(self):
        return f"RowSpec({self.id}, {self.body!r})"


class ConditionSpec:
    def __init__(
        self,
        id: int,
        condition_question_id: int,
        condition_type: str,
        answer_option_id: Optional[int] = None,
        condition_value: Optional[str] = None,
        mandatory: bool = False,
    ):
        self.id = id
        self.condition_question_id = condition_question_id
        self.condition_type = condition_type
        self.answer_option_id = answer_option_id
        self.condition_value = condition_value
        self.mandatory = mandatory

    def __repr__(self):
        return f"ConditionSpec({self.condition_type} on {self.condition_question_id})"


class QuestionSpec:
    def __init__(
        self,
        id: int,
        position: int,
        question_type: str,
        body: str = "",
        mandatory: bool = False,
        max_characters: int = 0,
        max_choices: Optional[int] = None,
        options: Sequence[OptionSpec] = (),
        rows: Sequence[RowSpec] = (),
        conditions: Sequence[ConditionSpec] = (),
        description: str = "",
    ):
        self.id = id
        self.position = position
        self.question_type = question_type
        self.body = body
        self.description = description
        self.mandatory = mandatory
        self.max_characters = max_characters or 0
        self.max_choices = max_choices
        self.options = tuple(options)
        self.rows = tuple(rows)
        self.conditions = tuple(conditions)

    def __repr__(self):
        return f"QuestionSpec({self.id}, {self.question_type}, position={self.position})"

    @property
    def is_separator(self) -> bool:
        return self.question_type == "separator"

    @property
    def is_text(self) -> bool:
        return self.question_type in TEXT_TYPES

    @property
    def is_option(self) -> bool:
        return self.question_type in OPTION_TYPES

    @property
    def is_matrix(self) -> bool:
        return self.question_type in MATRIX_TYPES

    def option(self, option_id: int) -> Optional[OptionSpec]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def option_ids(self) -> List[int]:
        return [option.id for option in self.options]

    def row_ids(self) -> List[int]:
        return [row.id for row in self.rows]


class QuestionnaireSchema:
    """Questions in position order plus the derived step layout."""

    def __init__(self, questions: Sequence[QuestionSpec], tos_required: bool = True, questionnaire_id: Optional[int] = None):
        self.questionnaire_id = questionnaire_id
        self.tos_required = tos_required
        self.questions = tuple(sorted(questions, key=lambda q: q.position))
        self._by_id = {q.id: q for q in self.questions}
        self._check_invariants()
        self.steps = self._split_steps()

    def _check_invariants(self):
        if len(self._by_id) != len(self.questions):
            raise SchemaError("Question ids must be unique")

        positions = [q.position for q in self.questions]
        if len(set(positions)) != len(positions):
            raise SchemaError("Question positions must be unique within a questionnaire")

        for question in self.questions:
            if question.question_type not in QUESTION_TYPES:
                raise SchemaError(f"Question {question.id}: unknown type '{question.question_type}'")
            if question.is_option and not question.options:
                raise SchemaError(f"Question {question.id}: '{question.question_type}' requires answer options")
            if question.is_matrix and not (question.options and question.rows):
                raise SchemaError(f"Question {question.id}: '{question.question_type}' requires rows and answer options")
            for condition in question.conditions:
                self._check_condition(question, condition)

    def _check_condition(self, question: QuestionSpec, condition: ConditionSpec):
        if condition.condition_type not in CONDITION_TYPES:
            raise SchemaError(f"Question {question.id}: unknown condition type '{condition.condition_type}'")

        target = self._by_id.get(condition.condition_question_id)
        if target is None:
            raise SchemaError(
                f"Question {question.id}: condition question {condition.condition_question_id} is not in the questionnaire"
            )
        if target.is_separator:
            raise SchemaError(f"Question {question.id}: a separator cannot be a condition question")
        if target.position >= question.position:
            raise SchemaError(
                f"Question {question.id}: condition question {target.id} must come before it"
            )

        if condition.condition_type in ("equal", "not_equal"):
            if condition.answer_option_id is None or target.option(condition.answer_option_id) is None:
                raise SchemaError(
                    f"Question {question.id}: '{condition.condition_type}' condition needs an option of question {target.id}"
                )
        if condition.condition_type == "match" and not condition.condition_value:
            raise SchemaError(f"Question {question.id}: 'match' condition needs a value")

    def _split_steps(self) -> List[List[QuestionSpec]]:
        steps = [[]]
        for question in self.questions:
            if question.is_separator:
                steps.append([])
            else:
                steps[-1].append(question)
        steps = [step for step in steps if step]
        return steps or [[]]

    def __iter__(self):
        return iter(self.questions)

    def __len__(self):
        return len(self.questions)

    def get(self, question_id: int) -> Optional[QuestionSpec]:
        return self._by_id.get(question_id)

    def __contains__(self, question_id):
        return question_id in self._by_id

    def answerable(self) -> List[QuestionSpec]:
        return [q for q in self.questions if not q.is_separator]

    def step_of(self, question_id: int) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if any(q.id == question_id for q in step):
                return index
        return None

    def question_ids(self) -> set:
        return set(self._by_id)

    def option_ids(self) -> Dict[int, set]:
        return {q.id: set(q.option_ids()) for q in self.questions}

    def row_ids(self) -> Dict[int, set]:
        return {q.id: set(q.row_ids()) for q in self.questions}


def build_schema(questionnaire: Questionnaire) -> QuestionnaireSchema:
    """Load a questionnaire with its options, rows and conditions into a schema."""
    questions = (
        questionnaire.questions
        .order_by('position')
        .prefetch_related('answer_options', 'matrix_rows', 'display_conditions')
    )

    specs = []
    for question in questions:
        specs.append(QuestionSpec(
            id=question.id,
            position=question.position,
            question_type=question.question_type,
            body=question.body,
            description=question.description,
            mandatory=question.mandatory,
            max_characters=question.max_characters,
            max_choices=question.max_choices,
            options=[
                OptionSpec(option.id, option.body, option.free_text)
                for option in question.answer_options.all()
            ],
            rows=[RowSpec(row.id, row.body) for row in question.matrix_rows.all()],
            conditions=[
                ConditionSpec(
                    id=condition.id,
                    condition_question_id=condition.condition_question_id,
                    condition_type=condition.condition_type,
                    answer_option_id=condition.answer_option_id,
                    condition_value=condition.condition_value,
                    mandatory=condition.mandatory,
                )
                for condition in question.display_conditions.all()
            ],
        ))

    return QuestionnaireSchema(specs, tos_required=questionnaire.tos_required, questionnaire_id=questionnaire.id)
