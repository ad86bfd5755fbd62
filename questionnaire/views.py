import logging

from django.conf import settings
from django.contrib import messages
from django.contrib.admin.views.decorators import staff_member_required
from django.http import HttpResponse, HttpResponseRedirect
from django.shortcuts import render, get_object_or_404
from django.urls import reverse
from django.utils.translation import gettext as _

from .forms import QuestionnaireStepForm, question_field_name, custom_field_name, row_field_name
from .models import Questionnaire
from .schema import build_schema
from .serialization import answers_dataframe
from .session import QuestionnaireSession
from .submission import AlreadyAnsweredError, has_answered, save_submission
from .validation import StaleQuestionnaireError

logger = logging.getLogger(__name__)


def _session_key(questionnaire):
    prefix = getattr(settings, 'QUESTIONNAIRE_SESSION_PREFIX', 'questionnaire_')
    return f"{prefix}{questionnaire.uuid}"


def respondent_token(request):
    """Authenticated users answer once per account, anonymous ones once per browser session."""
    if request.user.is_authenticated:
        return f"user-{request.user.pk}"
    if not request.session.session_key:
        request.session.save()
    return request.session.session_key


def _field_names(question):
    if question.is_matrix:
        return [row_field_name(question, row) for row in question.rows]
    names = [question_field_name(question)]
    names.extend(custom_field_name(question, option) for option in question.options if option.free_text)
    return names


def _question_items(form, session):
    visibility = session.visibility()
    error_messages = session.errors.messages()
    items = []
    for index, question in enumerate(session.step_questions()):
        items.append({
            'question': question,
            'index': index,
            'fields': [form[name] for name in _field_names(question)],
            'visible': visibility[question.id],
            'errors': error_messages.get(question.id, []),
        })
    return items


def answer_questionnaire(request, questionnaire_uuid):
    questionnaire = get_object_or_404(Questionnaire, uuid=questionnaire_uuid)
    session_key = _session_key(questionnaire)
    token = respondent_token(request)

    if has_answered(questionnaire, token):
        request.session.pop(session_key, None)
        return render(request, 'questionnaire/already_answered.html', {'questionnaire': questionnaire})

    schema = build_schema(questionnaire)
    if not schema.answerable():
        return render(request, 'questionnaire/answer.html', {'questionnaire': questionnaire, 'questions': []})

    session = QuestionnaireSession.from_dict(schema, request.session.get(session_key))
    page_url = reverse('answer_questionnaire', args=[str(questionnaire.uuid)])

    if request.method == 'POST':
        form = QuestionnaireStepForm(session.step_questions(), session.values, data=request.POST)
        action = request.POST.get('action', 'submit')

        try:
            if not form.is_valid():
                raise StaleQuestionnaireError(f"Invalid choices submitted for questionnaire {questionnaire.id}")
            shown = session.visibility()
            form.to_values(session.values)
            revealed = session.revealed_since(shown)

            if action == 'back':
                session.back()
            elif revealed:
                # the respondent has not seen these yet, stay on the step
                messages.info(request, _("Please answer the questions that were added to this step."))
            elif action == 'continue' or not session.is_last_step:
                session.next_step()
            else:
                tos_agreement = request.POST.get('tos_agreement') in ('on', 'true', '1')
                session.submit(
                    tos_agreement=tos_agreement,
                    persist=lambda schema, values: save_submission(
                        questionnaire, schema, values, token,
                        user=request.user, tos_agreement=tos_agreement,
                    ),
                )
        except StaleQuestionnaireError as e:
            logger.warning(f"Rejected stale answers: {e}")
            request.session.pop(session_key, None)
            messages.error(request, _("The form has changed while you were answering it. Please answer it again."))
            return HttpResponseRedirect(page_url)
        except AlreadyAnsweredError:
            request.session.pop(session_key, None)
            return HttpResponseRedirect(page_url)

        if session.is_completed:
            request.session.pop(session_key, None)
            messages.success(request, _("Form successfully answered."))
            return HttpResponseRedirect(page_url)

        request.session[session_key] = session.to_dict()

        if not session.errors:
            return HttpResponseRedirect(page_url)

        messages.error(request, _("There was a problem answering the form."))
        # re-render the submitted data, not the stored values
        form = QuestionnaireStepForm(session.step_questions(), session.values, data=request.POST)
        form.is_valid()
    else:
        form = QuestionnaireStepForm(session.step_questions(), session.values)

    return render(request, 'questionnaire/answer.html', {
        'questionnaire': questionnaire,
        'form': form,
        'questions': _question_items(form, session),
        'step_number': session.step + 1,
        'step_count': session.step_count,
        'is_first_step': session.is_first_step,
        'is_last_step': session.is_last_step,
        'tos_error': session.errors.messages().get(None, []),
    })


@staff_member_required
def download_answers(request, questionnaire_uuid):
    questionnaire = get_object_or_404(Questionnaire, uuid=questionnaire_uuid)

    response = HttpResponse(content_type="text/csv")
    response["Content-Disposition"] = f"attachment; filename=questionnaire_{questionnaire.uuid}_answers.csv"
    answers_dataframe(questionnaire).to_csv(response, index=False)
    return response
