from django.test import TestCase, SimpleTestCase, Client
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.urls import reverse
from io import BytesIO
from unittest import mock
import json
import os
import tempfile
import zipfile

from .conditions import combine, condition_fulfilled, is_visible, resolve_visibility, visible_questions
from .forms import QuestionnaireStepForm, initial_for_question
from .models import (
    Questionnaire, Question, AnswerOption, MatrixRow, DisplayCondition,
    Submission, Answer, AnswerChoice,
)
from .schema import (
    ConditionSpec, OptionSpec, QuestionSpec, QuestionnaireSchema, RowSpec,
    SchemaError, build_schema,
)
from .serialization import (
    answers_dataframe, copy_questionnaire, export_questionnaire_to_zip,
    import_questionnaire_from_zip, ImportError, ExportError, FORMAT_VERSION,
)
from .session import QuestionnaireSession, SessionClosedError, FAILED, STEP
from .submission import (
    AlreadyAnsweredError, clean_answers, has_answered, publish, save_submission, unpublish,
)
from .validation import (
    BLANK, INCOMPLETE, INCOMPLETE_MATRIX, MISSING_CUSTOM_TEXT, TOO_LONG, TOO_MANY_CHOICES, TOS_AGREEMENT,
    AnswerError, ErrorSet, StaleQuestionnaireError, validate_answers, validate_submission,
)
from .values import AnswerValues, ChoiceValue, MatrixValue, SortingValue, TextValue


def _spec(id, position, question_type="short_answer", options=(), rows=(), conditions=(), **kwargs):
    """Helper to build a question snapshot; options are ids or (id, body, free_text) tuples."""
    option_specs = [
        OptionSpec(*option) if isinstance(option, tuple) else OptionSpec(option, f"Option {option}")
        for option in options
    ]
    return QuestionSpec(
        id, position, question_type,
        options=option_specs,
        rows=[RowSpec(row, f"Row {row}") for row in rows],
        conditions=conditions,
        **kwargs
    )


def _condition(target, condition_type, option=None, value=None, mandatory=False, id=1):
    return ConditionSpec(id, target, condition_type, answer_option_id=option, condition_value=value, mandatory=mandatory)


def _add_question(questionnaire, position, question_type="short_answer", options=(), rows=(), **kwargs):
    """Helper to create a question with its options and rows; options are bodies or (body, free_text)."""
    kwargs.setdefault('body', f"Question {position}")
    question = Question.objects.create(
        questionnaire=questionnaire,
        position=position,
        question_type=question_type,
        **kwargs
    )
    for index, option in enumerate(options):
        body, free_text = option if isinstance(option, tuple) else (option, False)
        AnswerOption.objects.create(question=question, body=body, free_text=free_text, position=index)
    for index, body in enumerate(rows):
        MatrixRow.objects.create(question=question, body=body, position=index)
    return question


def _option(question, body):
    return question.answer_options.get(body=body)


# =============================================================================
# Schema
# =============================================================================

class SchemaTest(SimpleTestCase):
    """Tests for the structural invariants of a questionnaire snapshot."""

    def test_separators_split_steps(self):
        """
        GIVEN questions with a separator between them
        WHEN the schema is built
        THEN questions are grouped into steps and the separator is not answerable
        """
        schema = QuestionnaireSchema([
            _spec(1, 1),
            _spec(2, 2, "separator"),
            _spec(3, 3),
            _spec(4, 4),
        ])

        self.assertEqual([[q.id for q in step] for step in schema.steps], [[1], [3, 4]])
        self.assertEqual([q.id for q in schema.answerable()], [1, 3, 4])
        self.assertEqual(schema.step_of(4), 1)

    def test_leading_and_trailing_separators_make_no_empty_steps(self):
        schema = QuestionnaireSchema([
            _spec(1, 1, "separator"),
            _spec(2, 2),
            _spec(3, 3, "separator"),
        ])

        self.assertEqual(len(schema.steps), 1)

    def test_empty_questionnaire_has_one_empty_step(self):
        schema = QuestionnaireSchema([])

        self.assertEqual(schema.steps, [[]])
        self.assertEqual(schema.answerable(), [])

    def test_questions_sorted_by_position(self):
        schema = QuestionnaireSchema([_spec(1, 5), _spec(2, 1), _spec(3, 3)])

        self.assertEqual([q.id for q in schema], [2, 3, 1])

    def test_duplicate_position_rejected(self):
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([_spec(1, 1), _spec(2, 1)])

    def test_option_question_without_options_rejected(self):
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([_spec(1, 1, "single_option")])

    def test_matrix_without_rows_rejected(self):
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([_spec(1, 1, "matrix_single", options=[11])])

    def test_forward_condition_rejected(self):
        """
        GIVEN a question conditioned on a later question
        WHEN the schema is built
        THEN a SchemaError is raised
        """
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([
                _spec(1, 1, conditions=[_condition(2, "answered")]),
                _spec(2, 2),
            ])

    def test_self_condition_rejected(self):
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([_spec(1, 1, conditions=[_condition(1, "answered")])])

    def test_condition_on_separator_rejected(self):
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([
                _spec(1, 1, "separator"),
                _spec(2, 2, conditions=[_condition(1, "answered")]),
            ])

    def test_equal_condition_needs_option_of_condition_question(self):
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([
                _spec(1, 1, "single_option", options=[11, 12]),
                _spec(2, 2, conditions=[_condition(1, "equal", option=99)]),
            ])

    def test_match_condition_needs_value(self):
        with self.assertRaises(SchemaError):
            QuestionnaireSchema([
                _spec(1, 1),
                _spec(2, 2, conditions=[_condition(1, "match")]),
            ])


# =============================================================================
# Display conditions
# =============================================================================

class DisplayConditionEvaluatorTest(SimpleTestCase):
    """Tests for question visibility."""

    def _schema(self, *conditions, condition_type="single_option"):
        return QuestionnaireSchema([
            _spec(1, 1, condition_type, options=[(11, "Yes", False), (12, "No", False), (13, "Other", True)])
            if condition_type != "short_answer" else _spec(1, 1),
            _spec(2, 2, conditions=list(conditions)),
        ])

    def _visible(self, schema, value):
        values = AnswerValues()
        if value is not None:
            values.set_value(1, value)
        return is_visible(schema, schema.get(2), values)

    def test_question_without_conditions_always_visible(self):
        schema = self._schema()

        self.assertTrue(self._visible(schema, None))
        self.assertTrue(self._visible(schema, ChoiceValue([12])))

    def test_answered(self):
        schema = self._schema(_condition(1, "answered"))

        self.assertFalse(self._visible(schema, None))
        self.assertFalse(self._visible(schema, ChoiceValue()))
        self.assertTrue(self._visible(schema, ChoiceValue([11])))

    def test_not_answered(self):
        schema = self._schema(_condition(1, "not_answered"))

        self.assertTrue(self._visible(schema, None))
        self.assertFalse(self._visible(schema, ChoiceValue([11])))

    def test_equal(self):
        """
        GIVEN a question shown when option "Yes" is selected
        WHEN different options are selected
        THEN it is visible only when "Yes" is among them
        """
        schema = self._schema(_condition(1, "equal", option=11))

        self.assertTrue(self._visible(schema, ChoiceValue([11])))
        self.assertFalse(self._visible(schema, ChoiceValue([12])))
        self.assertFalse(self._visible(schema, None))

    def test_not_equal(self):
        schema = self._schema(_condition(1, "not_equal", option=11))

        self.assertTrue(self._visible(schema, ChoiceValue([12])))
        self.assertFalse(self._visible(schema, ChoiceValue([11])))
        self.assertFalse(self._visible(schema, None))

    def test_match_text_is_case_insensitive(self):
        schema = self._schema(_condition(1, "match", value="CACATUA"), condition_type="short_answer")

        self.assertTrue(self._visible(schema, TextValue("I have a cacatua at home")))
        self.assertFalse(self._visible(schema, TextValue("I have a parrot")))
        self.assertFalse(self._visible(schema, None))

    def test_match_option_body(self):
        schema = self._schema(_condition(1, "match", value="other"))

        self.assertTrue(self._visible(schema, ChoiceValue({13: "Cacatua"})))
        self.assertFalse(self._visible(schema, ChoiceValue([11])))

    def test_match_custom_text(self):
        schema = self._schema(_condition(1, "match", value="cacatua"))

        self.assertTrue(self._visible(schema, ChoiceValue({13: "Cacatua"})))

    def test_mandatory_and_optional_conditions(self):
        """
        GIVEN a question with one mandatory and two optional conditions
        WHEN options are selected
        THEN the mandatory one and at least one optional one must hold
        """
        schema = QuestionnaireSchema([
            _spec(1, 1, "multiple_option", options=[11, 12, 13]),
            _spec(2, 2, conditions=[
                _condition(1, "equal", option=11, mandatory=True, id=1),
                _condition(1, "equal", option=12, id=2),
                _condition(1, "equal", option=13, id=3),
            ]),
        ])

        self.assertFalse(self._visible(schema, ChoiceValue([11])))
        self.assertTrue(self._visible(schema, ChoiceValue([11, 12])))
        self.assertTrue(self._visible(schema, ChoiceValue([11, 13])))
        self.assertFalse(self._visible(schema, ChoiceValue([12, 13])))

    def test_two_mandatory_conditions_on_same_question(self):
        schema = QuestionnaireSchema([
            _spec(1, 1, "multiple_option", options=[11, 12, 13]),
            _spec(2, 2, conditions=[
                _condition(1, "equal", option=11, mandatory=True, id=1),
                _condition(1, "equal", option=12, mandatory=True, id=2),
            ]),
        ])

        self.assertFalse(self._visible(schema, ChoiceValue([11])))
        self.assertTrue(self._visible(schema, ChoiceValue([11, 12])))

    def test_hidden_condition_question_counts_as_unanswered(self):
        """
        GIVEN q3 shown when q2 is answered, and q2 shown when q1 is "Yes"
        WHEN q1 is "No" and a stale answer for q2 remains
        THEN both q2 and q3 are hidden
        """
        schema = QuestionnaireSchema([
            _spec(1, 1, "single_option", options=[11, 12]),
            _spec(2, 2, conditions=[_condition(1, "equal", option=11)]),
            _spec(3, 3, conditions=[_condition(2, "answered")]),
        ])
        values = AnswerValues({1: ChoiceValue([12]), 2: TextValue("left over")})

        visibility = resolve_visibility(schema, values)

        self.assertEqual(visibility, {1: True, 2: False, 3: False})
        self.assertEqual([q.id for q in visible_questions(schema, values)], [1])

    def test_combine(self):
        self.assertTrue(combine([], []))
        self.assertTrue(combine([True], []))
        self.assertFalse(combine([True], [False]))
        self.assertTrue(combine([], [False, True]))

    def test_condition_fulfilled_on_sorting_value(self):
        condition_question = _spec(1, 1, "sorting", options=[11, 12])

        self.assertTrue(condition_fulfilled(_condition(1, "equal", option=12), condition_question, SortingValue([12, 11])))


# =============================================================================
# Validation
# =============================================================================

class ValidationTest(SimpleTestCase):
    """Tests for answer validation."""

    def _errors(self, question, value, **kwargs):
        schema = QuestionnaireSchema([question], **kwargs)
        values = AnswerValues()
        if value is not None:
            values.set_value(question.id, value)
        return validate_answers(schema, values)

    def test_mandatory_text_blank(self):
        errors = self._errors(_spec(1, 1, mandatory=True), TextValue("   "))

        self.assertEqual(errors.kinds(1), [BLANK])

    def test_optional_text_blank_is_fine(self):
        self.assertFalse(self._errors(_spec(1, 1), None))

    def test_text_too_long(self):
        errors = self._errors(_spec(1, 1, max_characters=5), TextValue("abcdefg"))

        self.assertEqual(errors.kinds(1), [TOO_LONG])

    def test_too_many_choices(self):
        """
        GIVEN a multiple option question allowing two choices
        WHEN three options are selected
        THEN a too_many_choices error is reported
        """
        question = _spec(1, 1, "multiple_option", options=[11, 12, 13], max_choices=2)

        self.assertEqual(self._errors(question, ChoiceValue([11, 12, 13])).kinds(1), [TOO_MANY_CHOICES])
        self.assertFalse(self._errors(question, ChoiceValue([11, 12])))

    def test_single_option_accepts_one_choice(self):
        question = _spec(1, 1, "single_option", options=[11, 12])

        self.assertEqual(self._errors(question, ChoiceValue([11, 12])).kinds(1), [TOO_MANY_CHOICES])

    def test_missing_custom_text(self):
        question = _spec(1, 1, "single_option", options=[(11, "Cat", False), (13, "Other", True)])

        self.assertEqual(self._errors(question, ChoiceValue({13: " "})).kinds(1), [MISSING_CUSTOM_TEXT])
        self.assertFalse(self._errors(question, ChoiceValue({13: "Cacatua"})))

    def test_incomplete_matrix(self):
        """
        GIVEN a mandatory 2x2 single option matrix
        WHEN only the first row is answered
        THEN an incomplete_matrix error is reported
        """
        question = _spec(1, 1, "matrix_single", options=[11, 12], rows=[21, 22], mandatory=True)

        self.assertEqual(self._errors(question, MatrixValue([(21, 11)])).kinds(1), [INCOMPLETE_MATRIX])
        self.assertFalse(self._errors(question, MatrixValue([(21, 11), (22, 12)])))

    def test_optional_matrix_may_be_partial(self):
        question = _spec(1, 1, "matrix_single", options=[11, 12], rows=[21, 22])

        self.assertFalse(self._errors(question, MatrixValue([(21, 11)])))

    def test_matrix_single_one_choice_per_row(self):
        question = _spec(1, 1, "matrix_single", options=[11, 12], rows=[21, 22])

        self.assertEqual(self._errors(question, MatrixValue([(21, 11), (21, 12)])).kinds(1), [TOO_MANY_CHOICES])

    def test_matrix_multiple_max_choices_per_row(self):
        question = _spec(1, 1, "matrix_multiple", options=[11, 12], rows=[21, 22], max_choices=1)

        self.assertEqual(self._errors(question, MatrixValue([(21, 11), (21, 12)])).kinds(1), [TOO_MANY_CHOICES])
        self.assertFalse(self._errors(question, MatrixValue([(21, 11), (22, 12)])))

    def test_sorting_must_rank_every_option(self):
        question = _spec(1, 1, "sorting", options=[11, 12, 13])

        self.assertEqual(self._errors(question, SortingValue([11, 12])).kinds(1), [INCOMPLETE])
        self.assertFalse(self._errors(question, SortingValue([13, 11, 12])))

    def test_hidden_questions_are_not_validated(self):
        """
        GIVEN a mandatory question hidden by its display condition
        WHEN it has no answer
        THEN no error is reported for it
        """
        schema = QuestionnaireSchema([
            _spec(1, 1, "single_option", options=[11, 12]),
            _spec(2, 2, mandatory=True, conditions=[_condition(1, "equal", option=11)]),
        ])

        errors = validate_answers(schema, AnswerValues({1: ChoiceValue([12])}))
        self.assertFalse(errors)

        errors = validate_answers(schema, AnswerValues({1: ChoiceValue([11])}))
        self.assertEqual(errors.kinds(2), [BLANK])

    def test_tos_agreement_required(self):
        schema = QuestionnaireSchema([_spec(1, 1)])

        self.assertEqual(validate_submission(schema, AnswerValues()).kinds(None), [TOS_AGREEMENT])
        self.assertFalse(validate_submission(schema, AnswerValues(), tos_agreement=True))

    def test_tos_agreement_not_required(self):
        schema = QuestionnaireSchema([_spec(1, 1)], tos_required=False)

        self.assertFalse(validate_submission(schema, AnswerValues()))

    def test_unknown_question_is_stale(self):
        schema = QuestionnaireSchema([_spec(1, 1)])

        with self.assertRaises(StaleQuestionnaireError):
            validate_answers(schema, AnswerValues({99: TextValue("hello")}))

    def test_unknown_option_is_stale(self):
        schema = QuestionnaireSchema([_spec(1, 1, "single_option", options=[11])])

        with self.assertRaises(StaleQuestionnaireError):
            validate_answers(schema, AnswerValues({1: ChoiceValue([12])}))

    def test_value_of_wrong_kind_is_stale(self):
        schema = QuestionnaireSchema([_spec(1, 1, "single_option", options=[11])])

        with self.assertRaises(StaleQuestionnaireError):
            validate_answers(schema, AnswerValues({1: TextValue("11")}))

    def test_error_set(self):
        errors = ErrorSet()
        errors.add(1, BLANK)
        errors.add(1, BLANK)
        errors.add(None, TOS_AGREEMENT)

        self.assertEqual(len(errors), 2)
        self.assertIn(AnswerError(1, BLANK), errors)
        self.assertEqual(errors.as_dict(), {1: [BLANK], None: [TOS_AGREEMENT]})
        self.assertEqual(errors.messages()[1], ["cannot be blank"])


# =============================================================================
# Session
# =============================================================================

class QuestionnaireSessionTest(SimpleTestCase):
    """Tests for multi-step answering."""

    def setUp(self):
        self.schema = QuestionnaireSchema([
            _spec(1, 1, mandatory=True),
            _spec(2, 2, "separator"),
            _spec(3, 3, "single_option", options=[31, 32]),
            _spec(4, 4, mandatory=True, conditions=[_condition(3, "equal", option=31)]),
        ], questionnaire_id=7)

    def test_initial_state(self):
        session = QuestionnaireSession(self.schema)

        self.assertEqual(session.step_count, 2)
        self.assertTrue(session.is_first_step)
        self.assertFalse(session.is_last_step)
        self.assertEqual([q.id for q in session.step_questions()], [1])

    def test_invalid_step_does_not_advance(self):
        """
        GIVEN a mandatory question without answer on the first step
        WHEN the respondent continues
        THEN the session fails and stays on the first step
        """
        session = QuestionnaireSession(self.schema)

        self.assertFalse(session.next_step())
        self.assertEqual(session.state, FAILED)
        self.assertEqual(session.step, 0)
        self.assertEqual(session.errors.kinds(1), [BLANK])

    def test_back_keeps_values(self):
        session = QuestionnaireSession(self.schema)
        session.set_value(1, TextValue("hello"))
        self.assertTrue(session.next_step())
        self.assertEqual(session.step, 1)

        session.set_value(3, ChoiceValue([32]))
        session.back()

        self.assertEqual(session.step, 0)
        self.assertEqual(session.get_value(1), TextValue("hello"))
        self.assertEqual(session.get_value(3), ChoiceValue([32]))

    def test_submit_only_from_last_step(self):
        session = QuestionnaireSession(self.schema)

        with self.assertRaises(ValueError):
            session.submit(tos_agreement=True)

    def test_submit_without_tos(self):
        persist = mock.Mock()
        session = QuestionnaireSession(self.schema, AnswerValues({1: TextValue("hello")}), step=1)

        errors = session.submit(tos_agreement=False, persist=persist)

        self.assertEqual(errors.kinds(None), [TOS_AGREEMENT])
        self.assertEqual(session.state, FAILED)
        persist.assert_not_called()

    def test_submit_persists_visible_values_only(self):
        """
        GIVEN an answer left for a question that is now hidden
        WHEN the session is submitted
        THEN only the visible answers are handed over and the session completes
        """
        persist = mock.Mock()
        values = AnswerValues({1: TextValue("hello"), 3: ChoiceValue([32]), 4: TextValue("left over")})
        session = QuestionnaireSession(self.schema, values, step=1)

        errors = session.submit(tos_agreement=True, persist=persist)

        self.assertFalse(errors)
        self.assertTrue(session.is_completed)
        persisted = persist.call_args[0][1]
        self.assertEqual(sorted(persisted.question_ids()), [1, 3])

    def test_completed_session_is_closed(self):
        session = QuestionnaireSession(self.schema, AnswerValues({1: TextValue("hello")}), step=1)
        session.submit(tos_agreement=True)

        with self.assertRaises(SessionClosedError):
            session.set_value(1, TextValue("again"))

    def test_dict_round_trip(self):
        session = QuestionnaireSession(self.schema, AnswerValues({1: TextValue("hello"), 3: ChoiceValue([31])}), step=1)

        restored = QuestionnaireSession.from_dict(self.schema, json.loads(json.dumps(session.to_dict())))

        self.assertEqual(restored.step, 1)
        self.assertEqual(restored.get_value(1), TextValue("hello"))
        self.assertEqual(restored.get_value(3), ChoiceValue([31]))

    def test_from_dict_of_other_questionnaire_starts_over(self):
        data = QuestionnaireSession(self.schema, AnswerValues({1: TextValue("hello")}), step=1).to_dict()
        data["questionnaire_id"] = 8

        restored = QuestionnaireSession.from_dict(self.schema, data)

        self.assertEqual(restored.step, 0)
        self.assertEqual(len(restored.values), 0)

    def test_revealed_since(self):
        """
        GIVEN the step visibility before "Option 31" was chosen
        WHEN the respondent chooses it
        THEN the dependent question of the same step is reported as revealed
        """
        session = QuestionnaireSession(self.schema, AnswerValues({1: TextValue("hello")}), step=1)
        shown = session.visibility()

        session.set_value(3, ChoiceValue([31]))

        self.assertEqual([q.id for q in session.revealed_since(shown)], [4])
        self.assertEqual(session.revealed_since(session.visibility()), [])

    def test_from_dict_of_failed_session_resumes(self):
        session = QuestionnaireSession(self.schema)
        session.next_step()

        restored = QuestionnaireSession.from_dict(self.schema, session.to_dict())

        self.assertEqual(restored.state, STEP)


# =============================================================================
# Persistence
# =============================================================================

class SaveSubmissionTest(TestCase):
    """Tests for storing answers."""

    def setUp(self):
        self.questionnaire = Questionnaire.objects.create(title="Pets", tos_required=False)
        self.pets = _add_question(
            self.questionnaire, 1, "multiple_option",
            options=["Cat", "Dog", ("Other", True)], body="Favourite pets",
        )
        self.sorting = _add_question(
            self.questionnaire, 2, "sorting",
            options=["chocolate", "like", "We", "dark", "all"],
        )
        self.matrix = _add_question(
            self.questionnaire, 3, "matrix_single",
            options=["Yes", "No"], rows=["Morning", "Evening"],
        )
        self.comment = _add_question(self.questionnaire, 4)
        self.schema = build_schema(self.questionnaire)

    def _values(self):
        sorted_ids = [_option(self.sorting, body).id for body in ["We", "all", "like", "dark", "chocolate"]]
        morning, evening = self.matrix.matrix_rows.all()
        return AnswerValues({
            self.pets.id: ChoiceValue({_option(self.pets, "Other").id: "Cacatua"}),
            self.sorting.id: SortingValue(sorted_ids),
            self.matrix.id: MatrixValue([
                (morning.id, _option(self.matrix, "Yes").id),
                (evening.id, _option(self.matrix, "No").id),
            ]),
        })

    def test_custom_body_stored(self):
        save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        choice = AnswerChoice.objects.get(answer__question=self.pets)
        self.assertEqual(choice.body, "Other")
        self.assertEqual(choice.custom_body, "Cacatua")

    def test_sorting_positions(self):
        """
        GIVEN options ranked by the respondent
        WHEN the submission is saved
        THEN each choice stores its rank starting at 0
        """
        save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        choices = AnswerChoice.objects.filter(answer__question=self.sorting).order_by('position')
        self.assertEqual([c.position for c in choices], [0, 1, 2, 3, 4])
        self.assertEqual(" ".join(c.body for c in choices), "We all like dark chocolate")

    def test_matrix_choices_reference_rows(self):
        save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        choices = AnswerChoice.objects.filter(answer__question=self.matrix)
        self.assertEqual(
            sorted((c.matrix_row.body, c.body) for c in choices),
            [("Evening", "No"), ("Morning", "Yes")],
        )

    def test_unanswered_questions_not_stored(self):
        submission = save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        self.assertEqual(submission.answers.count(), 3)
        self.assertFalse(Answer.objects.filter(question=self.comment).exists())

    def test_text_answer_body(self):
        values = AnswerValues({self.comment.id: TextValue("Nice questionnaire")})

        save_submission(self.questionnaire, self.schema, values, "token-1")

        self.assertEqual(Answer.objects.get(question=self.comment).body, "Nice questionnaire")

    def test_already_answered(self):
        save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        with self.assertRaises(AlreadyAnsweredError):
            save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        self.assertEqual(Submission.objects.count(), 1)
        self.assertTrue(has_answered(self.questionnaire, "token-1"))
        self.assertFalse(has_answered(self.questionnaire, "token-2"))
        self.assertFalse(has_answered(self.questionnaire, None))

    def test_user_recorded(self):
        user = User.objects.create_user(username='respondent', password='testpass123')

        submission = save_submission(self.questionnaire, self.schema, self._values(), f"user-{user.pk}", user=user)

        self.assertEqual(submission.user, user)

    def test_changed_questionnaire_is_stale(self):
        """
        GIVEN a snapshot taken before an option was added
        WHEN answers are saved with it
        THEN StaleQuestionnaireError is raised and nothing is stored
        """
        AnswerOption.objects.create(question=self.pets, body="Fish", position=3)

        with self.assertRaises(StaleQuestionnaireError):
            save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        self.assertEqual(Submission.objects.count(), 0)

    def test_failure_rolls_back(self):
        with mock.patch('questionnaire.submission._create_choices', side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                save_submission(self.questionnaire, self.schema, self._values(), "token-1")

        self.assertEqual(Submission.objects.count(), 0)
        self.assertEqual(Answer.objects.count(), 0)

    def test_too_many_choices_stores_nothing(self):
        self.pets.max_choices = 1
        self.pets.save()
        schema = build_schema(self.questionnaire)
        values = AnswerValues({self.pets.id: ChoiceValue([_option(self.pets, "Cat").id, _option(self.pets, "Dog").id])})
        session = QuestionnaireSession(schema, values)

        errors = session.submit(
            persist=lambda schema, values: save_submission(self.questionnaire, schema, values, "token-1")
        )

        self.assertEqual(errors.kinds(self.pets.id), [TOO_MANY_CHOICES])
        self.assertEqual(Submission.objects.count(), 0)
        self.assertEqual(AnswerChoice.objects.count(), 0)


class EditingLifecycleTest(TestCase):
    """Tests for answers being cleaned when questions change, and publishing."""

    def setUp(self):
        self.questionnaire = Questionnaire.objects.create(title="Lifecycle", tos_required=False)
        self.first = _add_question(self.questionnaire, 1, "single_option", options=["Yes", "No"])
        self.second = _add_question(self.questionnaire, 2)
        DisplayCondition.objects.create(
            question=self.second,
            condition_question=self.first,
            condition_type="equal",
            answer_option=_option(self.first, "Yes"),
        )
        self._answer()

    def _answer(self, token="token-1"):
        values = AnswerValues({self.first.id: ChoiceValue([_option(self.first, "Yes").id])})
        return save_submission(self.questionnaire, build_schema(self.questionnaire), values, token)

    def test_editing_question_deletes_answers(self):
        """
        GIVEN a questionnaire with answers
        WHEN a question is edited
        THEN the previous answers are deleted
        """
        self.second.body = "Changed"
        self.second.save()

        self.assertEqual(Submission.objects.filter(questionnaire=self.questionnaire).count(), 0)

    def test_adding_option_deletes_answers(self):
        AnswerOption.objects.create(question=self.first, body="Maybe", position=2)

        self.assertFalse(self.questionnaire.has_answers())

    def test_deleting_condition_deletes_answers(self):
        self.second.display_conditions.all().delete()

        self.assertFalse(self.questionnaire.has_answers())

    def test_clean_answers(self):
        self._answer("token-2")

        clean_answers(self.questionnaire)

        self.assertFalse(self.questionnaire.has_answers())
        self.assertEqual(AnswerChoice.objects.count(), 0)

    def test_publish_cleans_answers(self):
        publish(self.questionnaire)

        self.assertTrue(self.questionnaire.is_published())
        self.assertFalse(self.questionnaire.has_answers())

    def test_publish_keeps_answers_when_configured(self):
        self.questionnaire.clean_after_publish = False
        self.questionnaire.save()

        publish(self.questionnaire)

        self.assertTrue(self.questionnaire.has_answers())

    def test_unpublish(self):
        publish(self.questionnaire)
        unpublish(self.questionnaire)

        self.assertFalse(self.questionnaire.is_published())

    def test_published_questionnaire_with_answers_is_locked(self):
        """
        GIVEN a published questionnaire that has answers
        WHEN a question is validated for editing
        THEN a ValidationError is raised
        """
        self.questionnaire.clean_after_publish = False
        self.questionnaire.save()
        publish(self.questionnaire)

        with self.assertRaises(ValidationError):
            self.second.clean()

    def test_unpublished_questionnaire_is_editable(self):
        self.second.clean()

    def test_condition_must_refer_to_earlier_question(self):
        condition = DisplayCondition(question=self.first, condition_question=self.second, condition_type="answered")

        with self.assertRaises(ValidationError):
            condition.clean()

    def test_equal_condition_needs_option_of_condition_question(self):
        third = _add_question(self.questionnaire, 3, "single_option", options=["A"])
        condition = DisplayCondition(
            question=third,
            condition_question=self.first,
            condition_type="equal",
            answer_option=_option(third, "A"),
        )

        with self.assertRaises(ValidationError):
            condition.clean()

    def test_build_schema_loads_conditions(self):
        schema = build_schema(self.questionnaire)

        condition = schema.get(self.second.id).conditions[0]
        self.assertEqual(condition.condition_question_id, self.first.id)
        self.assertEqual(condition.answer_option_id, _option(self.first, "Yes").id)


# =============================================================================
# Forms
# =============================================================================

class QuestionnaireStepFormTest(SimpleTestCase):
    """Tests for converting form data to answer values and back."""

    def setUp(self):
        self.pets = _spec(1, 1, "single_option", options=[(11, "Cat", False), (13, "Other", True)])
        self.ranking = _spec(2, 2, "sorting", options=[21, 22, 23])
        self.matrix = _spec(3, 3, "matrix_multiple", options=[31, 32], rows=[41, 42])
        self.comment = _spec(4, 4)

    def test_to_values(self):
        form = QuestionnaireStepForm([self.pets, self.ranking, self.matrix, self.comment], data={
            'q_1': '13',
            'q_1_custom_13': 'Cacatua',
            'q_2': ['23', '21', '22'],
            'q_3_row_41': ['31', '32'],
            'q_3_row_42': ['32'],
            'q_4': 'Hello',
        })
        self.assertTrue(form.is_valid(), form.errors)

        values = form.to_values(AnswerValues())

        self.assertEqual(values.get_value(1), ChoiceValue({13: "Cacatua"}))
        self.assertEqual(values.get_value(2), SortingValue([23, 21, 22]))
        self.assertEqual(values.get_value(3), MatrixValue([(41, 31), (41, 32), (42, 32)]))
        self.assertEqual(values.get_value(4), TextValue("Hello"))

    def test_custom_text_of_unselected_option_ignored(self):
        form = QuestionnaireStepForm([self.pets], data={'q_1': '11', 'q_1_custom_13': 'Cacatua'})
        self.assertTrue(form.is_valid())

        values = form.to_values(AnswerValues())

        self.assertEqual(values.get_value(1), ChoiceValue([11]))

    def test_unknown_option_is_invalid(self):
        form = QuestionnaireStepForm([self.pets], data={'q_1': '99'})

        self.assertFalse(form.is_valid())

    def test_initial_from_values(self):
        initial = initial_for_question(self.pets, ChoiceValue({13: "Cacatua"}))

        self.assertEqual(initial, {'q_1': '13', 'q_1_custom_13': 'Cacatua'})

    def test_sorting_rendered_in_ranked_order(self):
        """
        GIVEN a ranking C, A, B stored for a sorting question
        WHEN the step form is rendered
        THEN the options are listed in that order with their positions filled in
        """
        ranking = _spec(1, 1, "sorting", options=[(10, "A", False), (11, "B", False), (12, "C", False)])
        form = QuestionnaireStepForm([ranking], AnswerValues({1: SortingValue([12, 10, 11])}))

        html = str(form['q_1'])

        self.assertNotIn('<select', html)
        self.assertLess(html.index('>C<'), html.index('>A<'))
        self.assertLess(html.index('>A<'), html.index('>B<'))
        self.assertIn('name="q_1_rank_12" id="id_q_1_12" value="1"', html)
        self.assertIn('name="q_1_rank_11" id="id_q_1_11" value="3"', html)

    def test_sorting_parsed_from_positions(self):
        ranking = _spec(1, 1, "sorting", options=[(10, "A", False), (11, "B", False), (12, "C", False)])
        form = QuestionnaireStepForm([ranking], data={'q_1_rank_10': '2', 'q_1_rank_11': '3', 'q_1_rank_12': '1'})
        self.assertTrue(form.is_valid(), form.errors)

        values = form.to_values(AnswerValues())

        self.assertEqual(values.get_value(1), SortingValue([12, 10, 11]))

    def test_sorting_partially_ranked(self):
        ranking = _spec(1, 1, "sorting", options=[(10, "A", False), (11, "B", False), (12, "C", False)])
        form = QuestionnaireStepForm([ranking], data={'q_1_rank_11': '1', 'q_1_rank_12': ''})
        self.assertTrue(form.is_valid(), form.errors)

        values = form.to_values(AnswerValues())

        self.assertEqual(values.get_value(1), SortingValue([11]))

    def test_form_prefilled_from_values(self):
        form = QuestionnaireStepForm([self.comment], AnswerValues({4: TextValue("Earlier")}))

        self.assertEqual(form.initial['q_4'], "Earlier")


# =============================================================================
# Views
# =============================================================================

class AnswerQuestionnaireViewTest(TestCase):
    """Tests for answering a questionnaire in the browser."""

    def setUp(self):
        self.client = Client()
        self.questionnaire = Questionnaire.objects.create(title="Pet survey", tos="Be nice")
        self.pets = _add_question(
            self.questionnaire, 1, "single_option", mandatory=True,
            options=["Cat", "Dog", ("Other", True)], body="Favourite pet",
        )
        self.name = _add_question(self.questionnaire, 2, mandatory=True, body="Pet name")
        _add_question(self.questionnaire, 3, "separator")
        self.comment = _add_question(self.questionnaire, 4, body="Anything else?")
        self.url = reverse('answer_questionnaire', args=[str(self.questionnaire.uuid)])

    def _first_step(self, **extra):
        data = {
            'action': 'continue',
            f'q_{self.pets.id}': str(_option(self.pets, "Other").id),
            f'q_{self.pets.id}_custom_{_option(self.pets, "Other").id}': 'Cacatua',
            f'q_{self.name.id}': 'Kiki',
        }
        data.update(extra)
        return self.client.post(self.url, data)

    def test_first_step(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Step 1 of 2")
        self.assertContains(response, "Favourite pet")
        self.assertNotContains(response, "Anything else?")

    def test_unknown_questionnaire(self):
        response = self.client.get(reverse('answer_questionnaire', args=['00000000-0000-0000-0000-000000000000']))

        self.assertEqual(response.status_code, 404)

    def test_continue_with_errors(self):
        """
        GIVEN the first step with a mandatory question left blank
        WHEN the respondent continues
        THEN the step is shown again with the errors and the typed custom text
        """
        response = self._first_step(**{f'q_{self.name.id}': ''})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "There was a problem answering the form.")
        self.assertContains(response, "cannot be blank")
        self.assertContains(response, 'value="Cacatua"')
        self.assertContains(response, "Step 1 of 2")

    def test_continue_and_back(self):
        response = self._first_step()
        self.assertRedirects(response, self.url)

        response = self.client.get(self.url)
        self.assertContains(response, "Step 2 of 2")
        self.assertContains(response, "Anything else?")

        response = self.client.post(self.url, {'action': 'back', f'q_{self.comment.id}': 'Later'})
        self.assertRedirects(response, self.url)

        response = self.client.get(self.url)
        self.assertContains(response, "Step 1 of 2")
        self.assertContains(response, 'value="Kiki"')

    def test_submit_requires_tos(self):
        self._first_step()

        response = self.client.post(self.url, {'action': 'submit'})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "must be accepted")
        self.assertEqual(Submission.objects.count(), 0)

    def test_submit(self):
        """
        GIVEN a respondent who completed every step
        WHEN the questionnaire is submitted with the terms accepted
        THEN the answers are stored and the form cannot be answered again
        """
        self._first_step()

        response = self.client.post(
            self.url,
            {'action': 'submit', f'q_{self.comment.id}': 'Thanks', 'tos_agreement': 'on'},
            follow=True,
        )

        self.assertContains(response, "Form successfully answered.")
        self.assertContains(response, "You have already answered this form.")
        submission = Submission.objects.get()
        self.assertTrue(submission.tos_agreement)
        self.assertEqual(AnswerChoice.objects.get(answer__question=self.pets).custom_body, "Cacatua")
        self.assertEqual(Answer.objects.get(question=self.comment).body, "Thanks")

        response = self.client.get(self.url)
        self.assertContains(response, "You have already answered this form.")

    def test_answers_of_other_respondents_not_shown(self):
        self._first_step()

        other = Client()
        response = other.get(self.url)

        self.assertNotContains(response, "Cacatua")
        self.assertNotContains(response, "Kiki")

    def test_changed_choices_restart(self):
        response = self.client.post(self.url, {'action': 'continue', f'q_{self.pets.id}': '999999'}, follow=True)

        self.assertContains(response, "The form has changed while you were answering it.")
        self.assertContains(response, "Step 1 of 2")

    def test_conditional_question_hidden(self):
        self.name.delete()
        follow_up = _add_question(self.questionnaire, 2, body="Which dog?")
        DisplayCondition.objects.create(
            question=follow_up,
            condition_question=self.pets,
            condition_type="equal",
            answer_option=_option(self.pets, "Dog"),
        )

        response = self.client.get(self.url)

        self.assertContains(response, f'data-question-id="{follow_up.id}" data-answer-idx="2" hidden')

    def test_no_questions(self):
        empty = Questionnaire.objects.create(title="Empty")

        response = self.client.get(reverse('answer_questionnaire', args=[str(empty.uuid)]))

        self.assertContains(response, "No questions configured for this form yet.")

    def test_max_choices_shown(self):
        self.pets.max_choices = 1
        self.pets.save()

        response = self.client.get(self.url)

        self.assertContains(response, "Max choices: 1")


class RevealedQuestionViewTest(TestCase):
    """Tests for questions shown by an answer given on the same step."""

    def setUp(self):
        self.client = Client()
        self.questionnaire = Questionnaire.objects.create(title="Dogs", tos_required=False)
        self.pet = _add_question(self.questionnaire, 1, "single_option", options=["Cat", "Dog"], body="Pet")
        self.breed = _add_question(self.questionnaire, 2, body="Which dog breed?")
        DisplayCondition.objects.create(
            question=self.breed,
            condition_question=self.pet,
            condition_type="equal",
            answer_option=_option(self.pet, "Dog"),
        )
        self.url = reverse('answer_questionnaire', args=[str(self.questionnaire.uuid)])

    def test_revealed_question_shown_before_submit(self):
        """
        GIVEN a hidden question that depends on an answer of the same step
        WHEN the respondent chooses that answer and submits
        THEN nothing is stored and the step is shown again with the question visible
        """
        response = self.client.get(self.url)
        self.assertContains(response, 'data-answer-idx="2" hidden')

        response = self.client.post(
            self.url,
            {'action': 'submit', f'q_{self.pet.id}': str(_option(self.pet, "Dog").id)},
            follow=True,
        )

        self.assertEqual(Submission.objects.count(), 0)
        self.assertContains(response, "Please answer the questions that were added to this step.")
        self.assertContains(response, f'data-question-id="{self.breed.id}" data-answer-idx="2">')
        self.assertNotContains(response, 'data-answer-idx="2" hidden')

        response = self.client.post(
            self.url,
            {
                'action': 'submit',
                f'q_{self.pet.id}': str(_option(self.pet, "Dog").id),
                f'q_{self.breed.id}': 'Beagle',
            },
            follow=True,
        )

        self.assertContains(response, "Form successfully answered.")
        self.assertEqual(Answer.objects.get(question=self.breed).body, "Beagle")

    def test_answer_without_reveal_submits_directly(self):
        response = self.client.post(
            self.url,
            {'action': 'submit', f'q_{self.pet.id}': str(_option(self.pet, "Cat").id)},
            follow=True,
        )

        self.assertContains(response, "Form successfully answered.")
        self.assertFalse(Answer.objects.filter(question=self.breed).exists())


class SortingViewTest(TestCase):
    """Tests for ranking options in the browser."""

    def setUp(self):
        self.client = Client()
        self.questionnaire = Questionnaire.objects.create(title="Chocolate", tos_required=False)
        self.sorting = _add_question(
            self.questionnaire, 1, "sorting",
            options=["chocolate", "like", "We", "dark", "all"],
        )
        self.url = reverse('answer_questionnaire', args=[str(self.questionnaire.uuid)])

    def test_ranking_stored_in_submitted_order(self):
        """
        GIVEN a sorting question
        WHEN the respondent submits positions for every option
        THEN the stored choices follow that ranking
        """
        ranking = ["We", "all", "like", "dark", "chocolate"]
        data = {'action': 'submit'}
        for rank, body in enumerate(ranking, 1):
            data[f'q_{self.sorting.id}_rank_{_option(self.sorting, body).id}'] = str(rank)

        response = self.client.post(self.url, data, follow=True)

        self.assertContains(response, "Form successfully answered.")
        choices = AnswerChoice.objects.filter(answer__question=self.sorting).order_by('position')
        self.assertEqual([c.position for c in choices], [0, 1, 2, 3, 4])
        self.assertEqual(" ".join(c.body for c in choices), "We all like dark chocolate")

    def test_partial_ranking_shown_again(self):
        data = {
            'action': 'submit',
            f'q_{self.sorting.id}_rank_{_option(self.sorting, "dark").id}': '1',
        }

        response = self.client.post(self.url, data)

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Choices are not complete")
        dark_id = _option(self.sorting, "dark").id
        self.assertContains(
            response,
            f'name="q_{self.sorting.id}_rank_{dark_id}" id="id_q_{self.sorting.id}_{dark_id}" value="1"',
        )
        self.assertEqual(Submission.objects.count(), 0)


class DownloadAnswersViewTest(TestCase):
    """Tests for the answers CSV download."""

    def setUp(self):
        self.client = Client()
        self.staff = User.objects.create_user(username='staff', password='testpass123', is_staff=True)
        self.questionnaire = Questionnaire.objects.create(title="Download", tos_required=False)
        self.question = _add_question(self.questionnaire, 1, body="Your name")
        save_submission(
            self.questionnaire, build_schema(self.questionnaire),
            AnswerValues({self.question.id: TextValue("Ada")}), "token-1",
        )
        self.url = reverse('download_answers', args=[str(self.questionnaire.uuid)])

    def test_requires_staff(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 302)

    def test_download_csv(self):
        self.client.login(username='staff', password='testpass123')

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response['Content-Type'].startswith('text/csv'))
        content = response.content.decode('utf-8')
        self.assertIn("1. Your name", content)
        self.assertIn("Ada", content)


# =============================================================================
# Serialization
# =============================================================================

class SerializationTest(TestCase):
    """Tests for export, import and copy of questionnaires."""

    def setUp(self):
        self.questionnaire = Questionnaire.objects.create(title="Export me", tos="Terms", tos_required=False)
        self.pets = _add_question(self.questionnaire, 1, "single_option", options=["Cat", ("Other", True)], body="Pet")
        _add_question(self.questionnaire, 2, "separator")
        self.follow_up = _add_question(self.questionnaire, 3, body="Tell us more", max_characters=100)
        self.matrix = _add_question(self.questionnaire, 4, "matrix_multiple", options=["Yes", "No"], rows=["Morning"], max_choices=1)
        DisplayCondition.objects.create(
            question=self.follow_up,
            condition_question=self.pets,
            condition_type="equal",
            answer_option=_option(self.pets, "Other"),
            mandatory=True,
        )

    def _answer(self):
        values = AnswerValues({
            self.pets.id: ChoiceValue({_option(self.pets, "Other").id: "Cacatua"}),
            self.follow_up.id: TextValue("It talks"),
        })
        return save_submission(self.questionnaire, build_schema(self.questionnaire), values, "token-1")

    def _export(self, mode="structure"):
        output = BytesIO()
        warnings = export_questionnaire_to_zip(self.questionnaire, output, mode)
        output.seek(0)
        return output, warnings

    def test_export_structure(self):
        output, warnings = self._export()

        with zipfile.ZipFile(output) as zf:
            self.assertEqual(zf.namelist(), ["questionnaire.json"])
            data = json.loads(zf.read("questionnaire.json"))

        self.assertEqual(data["version"], FORMAT_VERSION)
        self.assertEqual(data["questionnaire"]["title"], "Export me")
        questions = data["questionnaire"]["questions"]
        self.assertEqual([q["question_type"] for q in questions], ["single_option", "separator", "short_answer", "matrix_multiple"])
        self.assertEqual(questions[2]["display_conditions"][0]["condition_question_position"], 1)
        self.assertEqual(questions[2]["display_conditions"][0]["answer_option_index"], 1)

    def test_export_data_without_answers_warns(self):
        output, warnings = self._export("data")

        with zipfile.ZipFile(output) as zf:
            self.assertEqual(zf.namelist(), ["answers.csv"])
        self.assertEqual(len(warnings), 1)

    def test_export_full(self):
        self._answer()

        output, warnings = self._export("full")

        with zipfile.ZipFile(output) as zf:
            self.assertIn("questionnaire.json", zf.namelist())
            csv = zf.read("answers.csv").decode("utf-8")
        self.assertEqual(warnings, [])
        self.assertIn("Cacatua", csv)
        self.assertIn("It talks", csv)

    def test_export_invalid_mode(self):
        with self.assertRaises(ExportError):
            export_questionnaire_to_zip(self.questionnaire, BytesIO(), "everything")

    def test_answers_dataframe(self):
        self._answer()

        frame = answers_dataframe(self.questionnaire)

        self.assertEqual(len(frame), 1)
        self.assertEqual(
            list(frame.columns),
            ["submission", "created_at", "1. Pet", "3. Tell us more", "4. Question 4"],
        )
        self.assertEqual(frame.iloc[0]["1. Pet"], ["Cacatua"])
        self.assertEqual(frame.iloc[0]["3. Tell us more"], "It talks")
        self.assertIsNone(frame.iloc[0]["4. Question 4"])

    def test_import_round_trip(self):
        """
        GIVEN an exported questionnaire
        WHEN the archive is imported
        THEN a new questionnaire with the same questions and remapped conditions is created
        """
        output, _ = self._export()

        imported, warnings = import_questionnaire_from_zip(output)

        self.assertNotEqual(imported.pk, self.questionnaire.pk)
        self.assertEqual(imported.title, "Export me")
        self.assertEqual(imported.questions.count(), 4)
        condition = DisplayCondition.objects.get(question__questionnaire=imported)
        self.assertEqual(condition.condition_question.questionnaire, imported)
        self.assertEqual(condition.answer_option.body, "Other")
        self.assertTrue(condition.mandatory)
        matrix = imported.questions.get(position=4)
        self.assertEqual(matrix.max_choices, 1)
        self.assertEqual([row.body for row in matrix.matrix_rows.all()], ["Morning"])

    def test_import_ignores_answers(self):
        self._answer()
        output, _ = self._export("full")

        imported, warnings = import_questionnaire_from_zip(output)

        self.assertFalse(imported.has_answers())
        self.assertEqual(len(warnings), 1)

    def test_import_invalid_zip(self):
        with self.assertRaises(ImportError):
            import_questionnaire_from_zip(BytesIO(b"not a zip"))

    def test_import_without_structure(self):
        output, _ = self._export("data")

        with self.assertRaises(ImportError):
            import_questionnaire_from_zip(output)

    def test_import_unsupported_version(self):
        output = BytesIO()
        with zipfile.ZipFile(output, 'w') as zf:
            zf.writestr("questionnaire.json", json.dumps({"version": "0.1", "questionnaire": {"title": "Old"}}))
        output.seek(0)

        with self.assertRaises(ImportError):
            import_questionnaire_from_zip(output)

    def test_import_forward_condition_creates_nothing(self):
        """
        GIVEN an archive where a question depends on a later one
        WHEN it is imported
        THEN ImportError is raised and no questionnaire is created
        """
        payload = {
            "version": FORMAT_VERSION,
            "questionnaire": {
                "title": "Broken",
                "questions": [
                    {
                        "position": 1,
                        "question_type": "short_answer",
                        "display_conditions": [
                            {"condition_question_position": 2, "condition_type": "answered"},
                        ],
                    },
                    {"position": 2, "question_type": "short_answer"},
                ],
            },
        }
        output = BytesIO()
        with zipfile.ZipFile(output, 'w') as zf:
            zf.writestr("questionnaire.json", json.dumps(payload))
        output.seek(0)
        count = Questionnaire.objects.count()

        with self.assertRaises(ImportError):
            import_questionnaire_from_zip(output)

        self.assertEqual(Questionnaire.objects.count(), count)

    def test_copy_questionnaire(self):
        self._answer()
        publish(self.questionnaire)

        copy = copy_questionnaire(self.questionnaire)

        self.assertEqual(copy.title, "Copy of Export me")
        self.assertFalse(copy.is_published())
        self.assertFalse(copy.has_answers())
        self.assertEqual(copy.tos, "Terms")
        condition = DisplayCondition.objects.get(question__questionnaire=copy)
        self.assertEqual(condition.condition_question, copy.questions.get(position=1))
        self.assertEqual(condition.answer_option.question, condition.condition_question)


class CLICommandTest(TestCase):
    """Tests for CLI export/import management commands."""

    def setUp(self):
        self.questionnaire = Questionnaire.objects.create(title="CLI questionnaire")
        _add_question(self.questionnaire, 1, body="CLI test question")

    def test_export_command_to_file(self):
        """
        GIVEN a questionnaire exists
        WHEN export_questionnaire command is called with --output
        THEN it creates a valid ZIP file
        """
        from django.core.management import call_command

        with tempfile.NamedTemporaryFile(suffix='.zip', delete=False) as f:
            output_path = f.name

        try:
            call_command('export_questionnaire', str(self.questionnaire.uuid), '--output', output_path)

            with zipfile.ZipFile(output_path, 'r') as zf:
                self.assertIn("questionnaire.json", zf.namelist())
        finally:
            os.unlink(output_path)

    def test_export_command_by_id_with_mode(self):
        from django.core.management import call_command

        with tempfile.NamedTemporaryFile(suffix='.zip', delete=False) as f:
            output_path = f.name

        try:
            call_command('export_questionnaire', str(self.questionnaire.pk), '--mode', 'full', '--output', output_path)

            with zipfile.ZipFile(output_path, 'r') as zf:
                self.assertIn("questionnaire.json", zf.namelist())
                self.assertIn("answers.csv", zf.namelist())
        finally:
            os.unlink(output_path)

    def test_export_command_questionnaire_not_found(self):
        from django.core.management import call_command
        from django.core.management.base import CommandError

        with self.assertRaises(CommandError) as context:
            call_command('export_questionnaire', 'nonexistent')
        self.assertIn("not found", str(context.exception))

    def test_import_command_from_file(self):
        """
        GIVEN a valid ZIP archive file
        WHEN import_questionnaire command is called
        THEN it creates the questionnaire
        """
        from django.core.management import call_command

        output = BytesIO()
        export_questionnaire_to_zip(self.questionnaire, output, mode="structure")

        with tempfile.NamedTemporaryFile(suffix='.zip', delete=False) as f:
            f.write(output.getvalue())
            import_path = f.name

        try:
            call_command('import_questionnaire', import_path)

            self.assertEqual(Questionnaire.objects.filter(title="CLI questionnaire").count(), 2)
        finally:
            os.unlink(import_path)

    def test_import_command_with_title(self):
        from django.core.management import call_command

        output = BytesIO()
        export_questionnaire_to_zip(self.questionnaire, output, mode="structure")

        with tempfile.NamedTemporaryFile(suffix='.zip', delete=False) as f:
            f.write(output.getvalue())
            import_path = f.name

        try:
            call_command('import_questionnaire', import_path, '--title', 'Renamed')

            imported = Questionnaire.objects.get(title="Renamed")
            self.assertEqual(imported.questions.get().body, "CLI test question")
        finally:
            os.unlink(import_path)

    def test_import_command_file_not_found(self):
        from django.core.management import call_command
        from django.core.management.base import CommandError

        with self.assertRaises(CommandError) as context:
            call_command('import_questionnaire', '/nonexistent/path/to/file.zip')
        self.assertIn("not found", str(context.exception))
