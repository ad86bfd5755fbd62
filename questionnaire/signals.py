from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .models import Questionnaire, Question, AnswerOption, MatrixRow, DisplayCondition
from .submission import clean_answers


def _questionnaire_for(instance):
    if isinstance(instance, Question):
        questionnaire_id = instance.questionnaire_id
    else:
        # the question may already be gone when this runs from a cascade
        questionnaire_id = Question.objects.filter(pk=instance.question_id).values_list('questionnaire_id', flat=True).first()
    if questionnaire_id is None:
        return None
    return Questionnaire.objects.filter(pk=questionnaire_id).first()


@receiver(post_save, sender=Question)
@receiver(post_save, sender=AnswerOption)
@receiver(post_save, sender=MatrixRow)
@receiver(post_save, sender=DisplayCondition)
@receiver(post_delete, sender=Question)
@receiver(post_delete, sender=AnswerOption)
@receiver(post_delete, sender=MatrixRow)
@receiver(post_delete, sender=DisplayCondition)
def delete_answers_on_edit(sender, instance, **kwargs):
    """Editing the questions of a questionnaire invalidates its answers."""
    if kwargs.get('raw'):
        return
    questionnaire = _questionnaire_for(instance)
    if questionnaire is not None and questionnaire.has_answers():
        clean_answers(questionnaire)
