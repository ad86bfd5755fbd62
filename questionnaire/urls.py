from django.urls import path

from . import views

urlpatterns = [
    path('questionnaires/<uuid:questionnaire_uuid>/', views.answer_questionnaire, name='answer_questionnaire'),
    path('questionnaires/<uuid:questionnaire_uuid>/answers.csv', views.download_answers, name='download_answers'),
]
