"""
Questionnaire import/export serialization module.

Provides functions for exporting questionnaires to ZIP archives and importing
them back, copying a questionnaire as a template, and tabulating answers.
Supports three export modes: structure, data, full.
"""
import json
import logging
import zipfile
from datetime import datetime, timezone
from io import StringIO
from typing import IO, Any, Dict, List, Optional, Tuple

import pandas as pd
from django.db import transaction

from .models import (
    Questionnaire, Question, AnswerOption, MatrixRow, DisplayCondition,
    Submission, QUESTION_TYPE_CHOICES, CONDITION_TYPE_CHOICES,
)
from .schema import SchemaError, build_schema

logger = logging.getLogger(__name__)

# Format version for compatibility checking
FORMAT_VERSION = "1.0"

# Valid export modes
EXPORT_MODES = ("structure", "data", "full")

VALID_QUESTION_TYPES = [choice[0] for choice in QUESTION_TYPE_CHOICES]
VALID_CONDITION_TYPES = [choice[0] for choice in CONDITION_TYPE_CHOICES]


class ImportError(Exception):
    """Raised when import validation or processing fails."""
    pass


class ExportError(Exception):
    """Raised when export processing fails."""
    pass


# =============================================================================
# EXPORT - Structure Serialization
# =============================================================================

def serialize_questionnaire_to_dict(questionnaire: Questionnaire) -> Dict[str, Any]:
    """Convert questionnaire and its questions to a JSON-serializable dict."""
    return {
        "title": questionnaire.title,
        "description": questionnaire.description,
        "tos": questionnaire.tos,
        "tos_required": questionnaire.tos_required,
        "clean_after_publish": questionnaire.clean_after_publish,
        "questions": serialize_questions(questionnaire),
    }


def _serialize_condition(condition: DisplayCondition, option_index: Dict[int, int]) -> Dict[str, Any]:
    """Conditions point at questions by position and options by index."""
    return {
        "condition_question_position": condition.condition_question.position,
        "condition_type": condition.condition_type,
        "answer_option_index": option_index.get(condition.answer_option_id),
        "condition_value": condition.condition_value,
        "mandatory": condition.mandatory,
    }


def serialize_questions(questionnaire: Questionnaire) -> List[Dict[str, Any]]:
    questions = list(
        questionnaire.ordered_questions()
        .prefetch_related('answer_options', 'matrix_rows', 'display_conditions__condition_question')
    )

    option_index = {}
    for question in questions:
        for index, option in enumerate(question.answer_options.all()):
            option_index[option.id] = index

    result = []
    for question in questions:
        result.append({
            "position": question.position,
            "question_type": question.question_type,
            "body": question.body,
            "description": question.description,
            "mandatory": question.mandatory,
            "max_characters": question.max_characters,
            "max_choices": question.max_choices,
            "answer_options": [
                {"body": option.body, "free_text": option.free_text}
                for option in question.answer_options.all()
            ],
            "matrix_rows": [row.body for row in question.matrix_rows.all()],
            "display_conditions": [
                _serialize_condition(condition, option_index)
                for condition in question.display_conditions.all()
            ],
        })

    return result


# =============================================================================
# EXPORT - Answers
# =============================================================================

def _answer_cell(question, answer) -> Any:
    choices = list(answer.choices.all())
    if question.question_type in ("short_answer", "long_answer"):
        return answer.body
    if question.question_type == "sorting":
        return [c.body for c in sorted(choices, key=lambda c: c.position or 0)]
    if question.question_type in ("matrix_single", "matrix_multiple"):
        return {
            row.body: [c.body for c in choices if c.matrix_row_id == row.id]
            for row in question.matrix_rows.all()
        }
    return [c.custom_body or c.body for c in choices]


def answers_dataframe(questionnaire: Questionnaire) -> pd.DataFrame:
    """One row per submission, one column per answerable question."""
    questions = list(
        questionnaire.ordered_questions()
        .exclude(question_type="separator")
        .prefetch_related('matrix_rows')
    )
    columns = [f"{q.position}. {q.body}" for q in questions]

    submissions = (
        Submission.objects
        .filter(questionnaire=questionnaire)
        .order_by('created_at', 'id')
        .prefetch_related('answers__choices')
    )

    rows = []
    for submission in submissions:
        by_question = {answer.question_id: answer for answer in submission.answers.all()}
        row = {
            "submission": submission.id,
            "created_at": submission.created_at.isoformat(),
        }
        for question, column in zip(questions, columns):
            answer = by_question.get(question.id)
            row[column] = _answer_cell(question, answer) if answer else None
        rows.append(row)

    return pd.DataFrame(rows, columns=["submission", "created_at"] + columns)


# =============================================================================
# EXPORT - ZIP Creation
# =============================================================================

def export_questionnaire_to_zip(
    questionnaire: Questionnaire,
    output: IO[bytes],
    mode: str = "structure"
) -> List[str]:
    """
    Export questionnaire to ZIP archive.

    Args:
        questionnaire: The questionnaire to export
        output: File-like object to write ZIP to
        mode: One of 'structure', 'data', 'full'

    Returns:
        List of warnings generated during export
    """
    if mode not in EXPORT_MODES:
        raise ExportError(f"Invalid export mode '{mode}'. Must be one of: {', '.join(EXPORT_MODES)}")

    warnings = []
    exported_at = datetime.now(timezone.utc).isoformat()

    with zipfile.ZipFile(output, 'w', zipfile.ZIP_DEFLATED) as zf:
        if mode in ("structure", "full"):
            data = {
                "version": FORMAT_VERSION,
                "exported_at": exported_at,
                "mode": mode,
                "questionnaire": serialize_questionnaire_to_dict(questionnaire),
            }
            zf.writestr("questionnaire.json", json.dumps(data, indent=2, ensure_ascii=False))

        if mode in ("data", "full"):
            frame = answers_dataframe(questionnaire)
            if frame.empty:
                warnings.append("Questionnaire has no answers yet.")
            buffer = StringIO()
            frame.to_csv(buffer, index=False)
            zf.writestr("answers.csv", buffer.getvalue())

    logger.info(f"Questionnaire {questionnaire.id} exported in '{mode}' mode")
    return warnings


# =============================================================================
# IMPORT - Validation
# =============================================================================

def validate_structure(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate parsed questionnaire.json content.

    Returns the 'questionnaire' payload. Raises ImportError if validation fails.
    """
    version = data.get("version")
    if version != FORMAT_VERSION:
        raise ImportError(f"Unsupported format version '{version}'. Supported: {FORMAT_VERSION}")

    payload = data.get("questionnaire")
    if not isinstance(payload, dict):
        raise ImportError("Missing 'questionnaire' field in questionnaire.json")
    if not payload.get("title"):
        raise ImportError("Missing 'questionnaire.title' field in questionnaire.json")

    positions = set()
    for question_data in payload.get("questions", []):
        position = question_data.get("position")
        if not isinstance(position, int) or position < 0:
            raise ImportError(f"Invalid question position '{position}'")
        if position in positions:
            raise ImportError(f"Duplicate question position {position}")
        positions.add(position)

        question_type = question_data.get("question_type", "short_answer")
        if question_type not in VALID_QUESTION_TYPES:
            raise ImportError(f"Invalid question_type '{question_type}' for question at position {position}")

        for condition_data in question_data.get("display_conditions", []):
            if condition_data.get("condition_type") not in VALID_CONDITION_TYPES:
                raise ImportError(
                    f"Invalid condition_type '{condition_data.get('condition_type')}' for question at position {position}"
                )

    return payload


def validate_archive(zip_file: zipfile.ZipFile) -> Dict[str, Any]:
    """Read and validate questionnaire.json from an archive."""
    if "questionnaire.json" not in zip_file.namelist():
        raise ImportError("Archive must contain questionnaire.json")

    try:
        content = zip_file.read("questionnaire.json").decode("utf-8")
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ImportError(f"Invalid questionnaire.json: {e}")

    return validate_structure(data)


# =============================================================================
# IMPORT - Structure
# =============================================================================

def create_questions(questionnaire: Questionnaire, questions_data: List[Dict[str, Any]]) -> Dict[int, Question]:
    """Create questions, options and rows; returns position->question mapping."""
    by_position = {}

    for question_data in questions_data:
        question = Question.objects.create(
            questionnaire=questionnaire,
            position=question_data["position"],
            question_type=question_data.get("question_type", "short_answer"),
            body=(question_data.get("body") or "")[:512],
            description=question_data.get("description") or "",
            mandatory=bool(question_data.get("mandatory", False)),
            max_characters=question_data.get("max_characters") or 0,
            max_choices=question_data.get("max_choices"),
        )
        for index, option_data in enumerate(question_data.get("answer_options", [])):
            AnswerOption.objects.create(
                question=question,
                body=option_data.get("body", "")[:512],
                free_text=bool(option_data.get("free_text", False)),
                position=index,
            )
        for index, row_body in enumerate(question_data.get("matrix_rows", [])):
            MatrixRow.objects.create(question=question, body=row_body[:512], position=index)

        by_position[question.position] = question

    return by_position


def create_conditions(by_position: Dict[int, Question], questions_data: List[Dict[str, Any]]):
    """Create display conditions once every question exists."""
    for question_data in questions_data:
        question = by_position[question_data["position"]]
        for condition_data in question_data.get("display_conditions", []):
            target_position = condition_data.get("condition_question_position")
            condition_question = by_position.get(target_position)
            if condition_question is None:
                raise ImportError(
                    f"Question at position {question.position}: condition refers to unknown position {target_position}"
                )

            answer_option = None
            option_index = condition_data.get("answer_option_index")
            if option_index is not None:
                options = list(condition_question.answer_options.all())
                if not 0 <= option_index < len(options):
                    raise ImportError(
                        f"Question at position {question.position}: condition refers to missing option {option_index}"
                    )
                answer_option = options[option_index]

            DisplayCondition.objects.create(
                question=question,
                condition_question=condition_question,
                condition_type=condition_data["condition_type"],
                answer_option=answer_option,
                condition_value=condition_data.get("condition_value"),
                mandatory=bool(condition_data.get("mandatory", False)),
            )


def import_questionnaire_from_dict(payload: Dict[str, Any], title: Optional[str] = None) -> Questionnaire:
    """
    Create a questionnaire from a validated payload. The result must form a
    valid schema, otherwise nothing is created.
    """
    with transaction.atomic():
        questionnaire = Questionnaire.objects.create(
            title=(title or payload["title"])[:256],
            description=payload.get("description") or "",
            tos=payload.get("tos") or "",
            tos_required=payload.get("tos_required", True),
            clean_after_publish=payload.get("clean_after_publish", True),
        )
        questions_data = payload.get("questions", [])
        by_position = create_questions(questionnaire, questions_data)
        create_conditions(by_position, questions_data)

        try:
            build_schema(questionnaire)
        except SchemaError as e:
            raise ImportError(f"Invalid questionnaire structure: {e}")

    logger.info(f"Imported questionnaire {questionnaire.id} with {len(by_position)} question(s)")
    return questionnaire


def import_questionnaire_from_zip(input_file: IO[bytes], title: Optional[str] = None) -> Tuple[Questionnaire, List[str]]:
    """
    Import questionnaire from ZIP archive.

    Returns:
        Tuple of (created_questionnaire, warnings)

    Raises:
        ImportError: If validation fails
    """
    warnings = []

    try:
        with zipfile.ZipFile(input_file, 'r') as zf:
            payload = validate_archive(zf)
            if "answers.csv" in zf.namelist():
                warnings.append("Answers in the archive are not imported.")
            questionnaire = import_questionnaire_from_dict(payload, title=title)
    except zipfile.BadZipFile:
        raise ImportError("Invalid ZIP archive")

    return questionnaire, warnings


def copy_questionnaire(questionnaire: Questionnaire, title: Optional[str] = None) -> Questionnaire:
    """Copy questions, options, rows and conditions into a new, unpublished questionnaire."""
    payload = serialize_questionnaire_to_dict(questionnaire)
    return import_questionnaire_from_dict(payload, title=title or f"Copy of {questionnaire.title}")
