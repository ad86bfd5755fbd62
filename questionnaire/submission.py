"""
Storing validated answers.

A submission is written in a single transaction: either the Submission with
all its Answers and AnswerChoices is committed, or nothing is.
"""
import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from .models import Questionnaire, Question, AnswerOption, MatrixRow, Submission, Answer, AnswerChoice
from .schema import QuestionnaireSchema
from .validation import StaleQuestionnaireError, check_references
from .values import AnswerValues, ChoiceValue, MatrixValue, SortingValue, TextValue

logger = logging.getLogger(__name__)


class AlreadyAnsweredError(Exception):
    """Raised when a respondent submits a questionnaire a second time."""
    pass


def has_answered(questionnaire: Questionnaire, session_token: Optional[str]) -> bool:
    if not session_token:
        return False
    return Submission.objects.filter(questionnaire=questionnaire, session_token=session_token).exists()


def check_schema_is_current(questionnaire: Questionnaire, schema: QuestionnaireSchema):
    """Compare the schema with the rows currently stored for the questionnaire."""
    if schema.questionnaire_id != questionnaire.id:
        raise StaleQuestionnaireError("The answers belong to another questionnaire")

    questions = dict(
        Question.objects.filter(questionnaire=questionnaire).values_list('id', 'question_type')
    )
    expected = {q.id: q.question_type for q in schema.questions}
    if questions != expected:
        raise StaleQuestionnaireError(f"Questionnaire {questionnaire.id} changed while it was being answered")

    options = {}
    for question_id, option_id in AnswerOption.objects.filter(question__questionnaire=questionnaire).values_list('question_id', 'id'):
        options.setdefault(question_id, set()).add(option_id)
    rows = {}
    for question_id, row_id in MatrixRow.objects.filter(question__questionnaire=questionnaire).values_list('question_id', 'id'):
        rows.setdefault(question_id, set()).add(row_id)

    for question in schema.questions:
        if options.get(question.id, set()) != set(question.option_ids()):
            raise StaleQuestionnaireError(f"Answer options of question {question.id} changed")
        if rows.get(question.id, set()) != set(question.row_ids()):
            raise StaleQuestionnaireError(f"Matrix rows of question {question.id} changed")


def _create_choices(answer: Answer, question, value):
    if isinstance(value, SortingValue):
        for position, option_id in enumerate(value.option_ids()):
            AnswerChoice.objects.create(
                answer=answer,
                answer_option_id=option_id,
                body=question.option(option_id).body,
                position=position,
            )

    elif isinstance(value, ChoiceValue):
        for option_id in value.option_ids():
            option = question.option(option_id)
            AnswerChoice.objects.create(
                answer=answer,
                answer_option_id=option_id,
                body=option.body,
                custom_body=value.custom_text(option_id) if option.free_text else None,
            )

    elif isinstance(value, MatrixValue):
        for row in question.rows:
            for option_id in value.options_for_row(row.id):
                AnswerChoice.objects.create(
                    answer=answer,
                    answer_option_id=option_id,
                    matrix_row_id=row.id,
                    body=question.option(option_id).body,
                )


def save_submission(
    questionnaire: Questionnaire,
    schema: QuestionnaireSchema,
    values: AnswerValues,
    session_token: str,
    user=None,
    tos_agreement: bool = False,
) -> Submission:
    """
    Persist already validated values. Raises AlreadyAnsweredError or
    StaleQuestionnaireError without writing anything.
    """
    with transaction.atomic():
        # serializes submissions against edits of the same questionnaire
        Questionnaire.objects.select_for_update().get(pk=questionnaire.pk)

        if has_answered(questionnaire, session_token):
            raise AlreadyAnsweredError(f"Questionnaire {questionnaire.id} was already answered by this respondent")

        check_schema_is_current(questionnaire, schema)
        check_references(schema, values)

        submission = Submission.objects.create(
            questionnaire=questionnaire,
            session_token=session_token,
            user=user if user is not None and user.is_authenticated else None,
            tos_agreement=tos_agreement,
        )

        for question in schema.answerable():
            value = values.get_value(question.id)
            if value is None:
                continue
            answer = Answer.objects.create(
                submission=submission,
                question_id=question.id,
                body=value.text if isinstance(value, TextValue) else None,
            )
            _create_choices(answer, question, value)

    logger.info(f"Questionnaire {questionnaire.id}: stored submission {submission.id}")
    return submission


def clean_answers(questionnaire: Questionnaire) -> int:
    deleted, _ = Submission.objects.filter(questionnaire=questionnaire).delete()
    if deleted:
        logger.info(f"Questionnaire {questionnaire.id}: deleted previous answers")
    return deleted


def publish(questionnaire: Questionnaire) -> Questionnaire:
    with transaction.atomic():
        if questionnaire.clean_after_publish:
            clean_answers(questionnaire)
        questionnaire.published_at = timezone.now()
        questionnaire.save(update_fields=['published_at'])
    return questionnaire


def unpublish(questionnaire: Questionnaire) -> Questionnaire:
    questionnaire.published_at = None
    questionnaire.save(update_fields=['published_at'])
    return questionnaire
