"""
Display conditions: decide which questions the respondent gets to see from the
answers given so far.

A question is visible when all of its mandatory conditions hold and, if it has
non-mandatory conditions, at least one of those holds too. Questions without
conditions are always visible.
"""
from typing import Dict, Iterable, Optional

from .schema import ConditionSpec, QuestionSpec, QuestionnaireSchema
from .values import AnswerValues, ChoiceValue, MatrixValue, SortingValue, TextValue


def _selected_option_ids(value):
    if isinstance(value, (ChoiceValue, SortingValue, MatrixValue)):
        return set(value.option_ids())
    return set()


def _matches(needle: str, haystack: Optional[str]) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


def _match_condition(condition: ConditionSpec, condition_question: QuestionSpec, value) -> bool:
    needle = condition.condition_value or ""
    if not needle:
        return False

    if isinstance(value, TextValue):
        return _matches(needle, value.text)

    if isinstance(value, ChoiceValue):
        for option_id in value.option_ids():
            option = condition_question.option(option_id)
            if option is not None and _matches(needle, option.body):
                return True
            if _matches(needle, value.custom_text(option_id)):
                return True

    return False


def condition_fulfilled(condition: ConditionSpec, condition_question: QuestionSpec, value) -> bool:
    """
    Evaluate one condition against the condition question's current value.
    `value` is None when the condition question has no (visible) answer.
    """
    condition_type = condition.condition_type

    if condition_type == "answered":
        return value is not None
    if condition_type == "not_answered":
        return value is None

    # the remaining types compare against an answer
    if value is None:
        return False

    if condition_type == "equal":
        return condition.answer_option_id in _selected_option_ids(value)
    if condition_type == "not_equal":
        return condition.answer_option_id not in _selected_option_ids(value)
    if condition_type == "match":
        return _match_condition(condition, condition_question, value)

    return False


def combine(mandatory: Iterable[bool], optional: Iterable[bool]) -> bool:
    optional = list(optional)
    return all(mandatory) and (not optional or any(optional))


def _question_visible(schema: QuestionnaireSchema, question: QuestionSpec, effective: Dict[int, object]) -> bool:
    if question.is_separator or not question.conditions:
        return True

    mandatory = []
    optional = []
    for condition in question.conditions:
        condition_question = schema.get(condition.condition_question_id)
        result = condition_fulfilled(condition, condition_question, effective.get(condition.condition_question_id))
        if condition.mandatory:
            mandatory.append(result)
        else:
            optional.append(result)

    return combine(mandatory, optional)


def resolve_visibility(schema: QuestionnaireSchema, values: AnswerValues) -> Dict[int, bool]:
    """
    Visibility of every question, keyed by question id.

    Questions are resolved in position order. Since condition questions always
    come first, a hidden question's value is already known to be void by the
    time a later question depends on it.
    """
    visibility = {}
    effective = {}

    for question in schema.questions:
        visible = _question_visible(schema, question, effective)
        visibility[question.id] = visible
        if visible:
            effective[question.id] = values.get_value(question.id)

    return visibility


def is_visible(schema: QuestionnaireSchema, question: QuestionSpec, values: AnswerValues) -> bool:
    return resolve_visibility(schema, values)[question.id]


def visible_questions(schema: QuestionnaireSchema, values: AnswerValues, questions: Optional[Iterable[QuestionSpec]] = None):
    """Visible answerable questions, optionally restricted to `questions` (e.g. one step)."""
    visibility = resolve_visibility(schema, values)
    if questions is None:
        questions = schema.answerable()
    return [q for q in questions if not q.is_separator and visibility[q.id]]
