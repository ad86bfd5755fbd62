import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


QUESTION_TYPE_CHOICES = (
    ("short_answer", _("Short answer")),
    ("long_answer", _("Long answer")),
    ("single_option", _("Single option")),
    ("multiple_option", _("Multiple option")),
    ("sorting", _("Sorting")),
    ("matrix_single", _("Matrix (single option)")),
    ("matrix_multiple", _("Matrix (multiple option)")),
    ("separator", _("Separator")),
)

TEXT_TYPES = ("short_answer", "long_answer")
OPTION_TYPES = ("single_option", "multiple_option", "sorting")
MATRIX_TYPES = ("matrix_single", "matrix_multiple")
CHOICE_TYPES = OPTION_TYPES + MATRIX_TYPES

CONDITION_TYPE_CHOICES = (
    ("answered", _("Answered")),
    ("not_answered", _("Not answered")),
    ("equal", _("Equal")),
    ("not_equal", _("Not equal")),
    ("match", _("Match")),
)


#questionnaires
#example - citizen budget survey
class Questionnaire(models.Model):
    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    title = models.CharField(max_length=256)
    description = models.TextField(blank=True, default="")
    tos = models.TextField(blank=True, default="", help_text=_('Terms the respondent agrees to when submitting'))
    tos_required = models.BooleanField(default=True)
    published_at = models.DateTimeField(null=True, blank=True)
    clean_after_publish = models.BooleanField(default=True, help_text=_('Delete previous answers when the questionnaire is published'))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = 'questionnaire'

    def __str__(self):
        return self.title

    def ordered_questions(self):
        return self.questions.order_by('position')

    def is_published(self):
        return self.published_at is not None

    def has_answers(self):
        return self.submissions.exists()

    def questions_editable(self):
        """Unpublished questionnaires, or questionnaires nobody answered yet, can be edited."""
        return not self.is_published() or not self.has_answers()


class Question(models.Model):
    questionnaire = models.ForeignKey("Questionnaire", on_delete=models.CASCADE, related_name='questions')
    position = models.PositiveIntegerField(default=0) # unique in questionnaire
    question_type = models.CharField(max_length=20, choices=QUESTION_TYPE_CHOICES, default="short_answer")
    body = models.CharField(max_length=512, blank=True, default="")
    description = models.TextField(blank=True, default="")
    mandatory = models.BooleanField(default=False)
    max_characters = models.PositiveIntegerField(default=0, help_text=_('0 means no limit'))
    max_choices = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        app_label = 'questionnaire'
        ordering = ['position']
        unique_together = ('questionnaire', 'position')

    def __str__(self):
        return f"{self.position}. {self.body}"

    def clean(self):
        if self.questionnaire_id and not self.questionnaire.questions_editable():
            raise ValidationError(_("Questions cannot be edited once the published questionnaire has answers."))
        if self.max_choices is not None and self.question_type not in CHOICE_TYPES:
            raise ValidationError({'max_choices': _("Only choice questions accept a maximum of choices.")})

    def is_separator(self):
        return self.question_type == "separator"


class AnswerOption(models.Model):
    question = models.ForeignKey("Question", on_delete=models.CASCADE, related_name='answer_options')
    body = models.CharField(max_length=512)
    free_text = models.BooleanField(default=False, help_text=_('Selecting this option asks for a custom text'))
    position = models.PositiveIntegerField(default=0)

    class Meta:
        app_label = 'questionnaire'
        ordering = ['position', 'id']

    def __str__(self):
        return self.body


class MatrixRow(models.Model):
    question = models.ForeignKey("Question", on_delete=models.CASCADE, related_name='matrix_rows')
    body = models.CharField(max_length=512)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        app_label = 'questionnaire'
        ordering = ['position', 'id']

    def __str__(self):
        return self.body


class DisplayCondition(models.Model):
    question = models.ForeignKey("Question", on_delete=models.CASCADE, related_name='display_conditions')
    condition_question = models.ForeignKey("Question", on_delete=models.CASCADE, related_name='dependent_conditions')
    condition_type = models.CharField(max_length=20, choices=CONDITION_TYPE_CHOICES)
    answer_option = models.ForeignKey("AnswerOption", null=True, blank=True, on_delete=models.CASCADE)
    condition_value = models.CharField(max_length=512, null=True, blank=True)
    mandatory = models.BooleanField(default=False)

    class Meta:
        app_label = 'questionnaire'
        ordering = ['id']

    def __str__(self):
        return f"{self.question_id} {self.condition_type} {self.condition_question_id}"

    def clean(self):
        question = self.question
        condition_question = self.condition_question
        if condition_question.questionnaire_id != question.questionnaire_id:
            raise ValidationError({'condition_question': _("The condition question must belong to the same questionnaire.")})
        if condition_question.position >= question.position:
            raise ValidationError({'condition_question': _("The condition question must come before the question.")})
        if self.condition_type in ("equal", "not_equal"):
            if self.answer_option_id is None:
                raise ValidationError({'answer_option': _("This condition needs an answer option.")})
            if self.answer_option.question_id != condition_question.id:
                raise ValidationError({'answer_option': _("The answer option must belong to the condition question.")})
        if self.condition_type == "match" and not self.condition_value:
            raise ValidationError({'condition_value': _("This condition needs a value to match.")})


class Submission(models.Model):
    questionnaire = models.ForeignKey("Questionnaire", on_delete=models.CASCADE, related_name='submissions')
    session_token = models.CharField(max_length=128, help_text=_('Identifies the respondent'))
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    tos_agreement = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        app_label = 'questionnaire'
        unique_together = ('questionnaire', 'session_token')

    def __str__(self):
        return f"{self.questionnaire_id} - {self.session_token}"


class Answer(models.Model):
    submission = models.ForeignKey("Submission", on_delete=models.CASCADE, related_name='answers')
    question = models.ForeignKey("Question", on_delete=models.CASCADE, related_name='answers')
    body = models.TextField(null=True, blank=True)

    class Meta:
        app_label = 'questionnaire'
        ordering = ['question__position']
        unique_together = ('submission', 'question')

    def __str__(self):
        return f"{self.submission_id} - {self.question_id}"


class AnswerChoice(models.Model):
    answer = models.ForeignKey("Answer", on_delete=models.CASCADE, related_name='choices')
    answer_option = models.ForeignKey("AnswerOption", on_delete=models.CASCADE)
    matrix_row = models.ForeignKey("MatrixRow", null=True, blank=True, on_delete=models.CASCADE)
    body = models.TextField(blank=True, default="")
    custom_body = models.TextField(null=True, blank=True)
    position = models.PositiveIntegerField(null=True, blank=True) # sorting rank

    class Meta:
        app_label = 'questionnaire'
        ordering = ['id']

    def __str__(self):
        return self.body

    def clean(self):
        question_id = self.answer.question_id
        if self.answer_option.question_id != question_id:
            raise ValidationError({'answer_option': _("The answer option must belong to the answered question.")})
        if self.matrix_row_id is not None and self.matrix_row.question_id != question_id:
            raise ValidationError({'matrix_row': _("The matrix row must belong to the answered question.")})
