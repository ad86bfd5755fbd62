"""
Validation of a respondent's answers before they are stored.

Every problem is collected into an ErrorSet so the respondent sees all of
them at once. Hidden questions are not validated.
"""
from typing import Dict, Iterable, List, Optional

from django.utils.translation import gettext_lazy as _

from .conditions import resolve_visibility
from .schema import QuestionSpec, QuestionnaireSchema
from .values import AnswerValues, ChoiceValue, MatrixValue, SortingValue, TextValue


BLANK = "blank"
TOO_MANY_CHOICES = "too_many_choices"
INCOMPLETE = "incomplete"
INCOMPLETE_MATRIX = "incomplete_matrix"
MISSING_CUSTOM_TEXT = "missing_custom_text"
TOO_LONG = "too_long"
TOS_AGREEMENT = "tos_agreement"

ERROR_MESSAGES = {
    BLANK: _("cannot be blank"),
    TOO_MANY_CHOICES: _("are too many"),
    INCOMPLETE: _("Choices are not complete"),
    INCOMPLETE_MATRIX: _("Choices are not complete"),
    MISSING_CUSTOM_TEXT: _("Please fill in the text for the selected option"),
    TOO_LONG: _("is too long"),
    TOS_AGREEMENT: _("must be accepted"),
}

VALUE_TYPES = {
    "short_answer": TextValue,
    "long_answer": TextValue,
    "single_option": ChoiceValue,
    "multiple_option": ChoiceValue,
    "sorting": SortingValue,
    "matrix_single": MatrixValue,
    "matrix_multiple": MatrixValue,
}


class StaleQuestionnaireError(Exception):
    """Raised when answers refer to questions, options or rows that no longer exist."""
    pass


class AnswerError:
    def __init__(self, question_id: Optional[int], kind: str):
        self.question_id = question_id
        self.kind = kind

    @property
    def message(self):
        return ERROR_MESSAGES.get(self.kind, self.kind)

    def __eq__(self, other):
        return isinstance(other, AnswerError) and (other.question_id, other.kind) == (self.question_id, self.kind)

    def __hash__(self):
        return hash((self.question_id, self.kind))

    def __repr__(self):
        return f"AnswerError({self.question_id}, {self.kind!r})"


class ErrorSet:
    """Ordered, de-duplicated collection of AnswerError."""

    def __init__(self, errors: Iterable[AnswerError] = ()):
        self._errors = []
        for error in errors:
            self.add(error.question_id, error.kind)

    def add(self, question_id: Optional[int], kind: str):
        error = AnswerError(question_id, kind)
        if error not in self._errors:
            self._errors.append(error)

    def extend(self, other: "ErrorSet"):
        for error in other:
            self.add(error.question_id, error.kind)

    def kinds(self, question_id: Optional[int]) -> List[str]:
        return [e.kind for e in self._errors if e.question_id == question_id]

    def for_question(self, question_id: Optional[int]) -> List[AnswerError]:
        return [e for e in self._errors if e.question_id == question_id]

    def question_ids(self) -> List[Optional[int]]:
        seen = []
        for error in self._errors:
            if error.question_id not in seen:
                seen.append(error.question_id)
        return seen

    def as_dict(self) -> Dict[Optional[int], List[str]]:
        result = {}
        for error in self._errors:
            result.setdefault(error.question_id, []).append(error.kind)
        return result

    def messages(self) -> Dict[Optional[int], List[str]]:
        result = {}
        for error in self._errors:
            result.setdefault(error.question_id, []).append(str(error.message))
        return result

    def __iter__(self):
        return iter(self._errors)

    def __len__(self):
        return len(self._errors)

    def __bool__(self):
        return bool(self._errors)

    def __contains__(self, item):
        return item in self._errors

    def __repr__(self):
        return f"ErrorSet({self._errors!r})"


def check_references(schema: QuestionnaireSchema, values: AnswerValues):
    """Raise StaleQuestionnaireError if values point outside the schema."""
    for question_id, value in values.items():
        question = schema.get(question_id)
        if question is None or question.is_separator:
            raise StaleQuestionnaireError(f"Question {question_id} is no longer part of the questionnaire")
        if value is None:
            continue

        expected = VALUE_TYPES[question.question_type]
        if not isinstance(value, expected):
            raise StaleQuestionnaireError(
                f"Question {question_id} is now '{question.question_type}' and cannot take a {value.kind} answer"
            )

        option_ids = set(question.option_ids())
        unknown_options = set(getattr(value, "option_ids", lambda: [])()) - option_ids
        if unknown_options:
            raise StaleQuestionnaireError(
                f"Question {question_id}: unknown answer options {sorted(unknown_options)}"
            )
        if isinstance(value, MatrixValue):
            unknown_rows = set(value.row_ids()) - set(question.row_ids())
            if unknown_rows:
                raise StaleQuestionnaireError(f"Question {question_id}: unknown matrix rows {sorted(unknown_rows)}")


def _validate_text(question: QuestionSpec, value, errors: ErrorSet):
    if value is None:
        if question.mandatory:
            errors.add(question.id, BLANK)
        return
    if question.max_characters and len(value.text) > question.max_characters:
        errors.add(question.id, TOO_LONG)


def _validate_options(question: QuestionSpec, value, errors: ErrorSet):
    if value is None:
        if question.mandatory:
            errors.add(question.id, BLANK)
        return

    count = len(value.option_ids())
    if question.question_type == "single_option" and count > 1:
        errors.add(question.id, TOO_MANY_CHOICES)
    if question.max_choices and count > question.max_choices:
        errors.add(question.id, TOO_MANY_CHOICES)

    for option_id in value.option_ids():
        option = question.option(option_id)
        if not option.free_text:
            continue
        custom_text = value.custom_text(option_id)
        if not custom_text.strip():
            errors.add(question.id, MISSING_CUSTOM_TEXT)
        elif question.max_characters and len(custom_text) > question.max_characters:
            errors.add(question.id, TOO_LONG)


def _validate_sorting(question: QuestionSpec, value, errors: ErrorSet):
    if value is None:
        if question.mandatory:
            errors.add(question.id, BLANK)
        return
    ordered = value.option_ids()
    if len(ordered) != len(set(ordered)) or set(ordered) != set(question.option_ids()):
        errors.add(question.id, INCOMPLETE)


def _validate_matrix(question: QuestionSpec, value, errors: ErrorSet):
    if value is None:
        if question.mandatory:
            errors.add(question.id, BLANK)
        return

    limit = 1 if question.question_type == "matrix_single" else question.max_choices
    for row_id in question.row_ids():
        if limit and len(value.options_for_row(row_id)) > limit:
            errors.add(question.id, TOO_MANY_CHOICES)
            break

    if question.mandatory and set(value.row_ids()) != set(question.row_ids()):
        errors.add(question.id, INCOMPLETE_MATRIX)


def validate_question(question: QuestionSpec, value, errors: ErrorSet):
    if question.is_text:
        _validate_text(question, value, errors)
    elif question.question_type == "sorting":
        _validate_sorting(question, value, errors)
    elif question.is_option:
        _validate_options(question, value, errors)
    elif question.is_matrix:
        _validate_matrix(question, value, errors)


def validate_answers(
    schema: QuestionnaireSchema,
    values: AnswerValues,
    questions: Optional[Iterable[QuestionSpec]] = None,
) -> ErrorSet:
    """Validate the visible questions among `questions` (default: all of them)."""
    check_references(schema, values)

    errors = ErrorSet()
    visibility = resolve_visibility(schema, values)
    if questions is None:
        questions = schema.answerable()

    for question in questions:
        if question.is_separator or not visibility[question.id]:
            continue
        validate_question(question, values.get_value(question.id), errors)

    return errors


def validate_submission(schema: QuestionnaireSchema, values: AnswerValues, tos_agreement: bool = False) -> ErrorSet:
    """Final check of a whole questionnaire, including the terms agreement."""
    errors = validate_answers(schema, values)
    if schema.tos_required and not tos_agreement:
        errors.add(None, TOS_AGREEMENT)
    return errors
