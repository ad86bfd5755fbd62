from django.contrib import admin
from .models import Questionnaire, Question, AnswerOption, MatrixRow, DisplayCondition, Submission, Answer, AnswerChoice
from .submission import publish, unpublish

class QuestionInLine(admin.TabularInline):
	model = Question
	fields = ('position', 'question_type', 'body', 'mandatory', 'max_characters', 'max_choices')
	extra = 0

class AnswerOptionInLine(admin.TabularInline):
	model = AnswerOption
	fields = ('position', 'body', 'free_text')
	extra = 0

class MatrixRowInLine(admin.TabularInline):
	model = MatrixRow
	fields = ('position', 'body')
	extra = 0

class DisplayConditionInLine(admin.TabularInline):
	model = DisplayCondition
	fk_name = 'question'
	fields = ('condition_question', 'condition_type', 'answer_option', 'condition_value', 'mandatory')
	extra = 0

class QuestionnaireAdmin(admin.ModelAdmin):
	list_display = ('title', 'uuid', 'published_at', 'clean_after_publish')
	actions = ['publish_questionnaires', 'unpublish_questionnaires']

	inlines = [
		QuestionInLine,
	]

	@admin.action(description="Publish selected questionnaires")
	def publish_questionnaires(self, request, queryset):
		for questionnaire in queryset:
			publish(questionnaire)

	@admin.action(description="Unpublish selected questionnaires")
	def unpublish_questionnaires(self, request, queryset):
		for questionnaire in queryset:
			unpublish(questionnaire)

class QuestionAdmin(admin.ModelAdmin):
	list_display = ('questionnaire', 'position', 'question_type', 'body', 'mandatory')

	inlines = [
		AnswerOptionInLine,
		MatrixRowInLine,
		DisplayConditionInLine,
	]

class AnswerInLine(admin.TabularInline):
	model = Answer
	fields = ('question', 'body')
	extra = 0

class SubmissionAdmin(admin.ModelAdmin):
	list_display = ('questionnaire', 'session_token', 'user', 'created_at')

	inlines = [
		AnswerInLine,
	]


admin.site.register(Questionnaire, QuestionnaireAdmin)
admin.site.register(Question, QuestionAdmin)
admin.site.register(Submission, SubmissionAdmin)
admin.site.register(AnswerChoice)
