from django import forms

from .values import AnswerValues, ChoiceValue, MatrixValue, SortingValue, TextValue


def question_field_name(question):
    return f"q_{question.id}"


def custom_field_name(question, option):
    return f"q_{question.id}_custom_{option.id}"


def row_field_name(question, row):
    return f"q_{question.id}_row_{row.id}"


class SortingWidget(forms.SelectMultiple):
    """
    One position input per option, listed in the current ranking. The
    submitted positions are turned back into option ids in ranked order.
    """
    template_name = 'questionnaire/widgets/sorting.html'

    def rank_name(self, name, option_id):
        return f"{name}_rank_{option_id}"

    def get_context(self, name, value, attrs):
        context = super().get_context(name, value, attrs)
        ranked = [str(v) for v in (value or [])]
        labels = {str(option_id): label for option_id, label in self.choices}
        ordered = [v for v in ranked if v in labels] + [v for v in labels if v not in ranked]
        widget_id = context['widget']['attrs'].get('id') or name

        context['widget']['size'] = len(ordered)
        context['widget']['ranking'] = [
            {
                'label': labels[option_id],
                'name': self.rank_name(name, option_id),
                'id': f"{widget_id}_{option_id}",
                'rank': ranked.index(option_id) + 1 if option_id in ranked else '',
            }
            for option_id in ordered
        ]
        return context

    def value_from_datadict(self, data, files, name):
        ranks = []
        for option_id, _ in self.choices:
            raw = data.get(self.rank_name(name, option_id))
            if raw in (None, ''):
                continue
            try:
                ranks.append((int(raw), str(option_id)))
            except (TypeError, ValueError):
                continue
        if ranks:
            return [option_id for _, option_id in sorted(ranks)]
        # a plain list of ids in ranked order
        return super().value_from_datadict(data, files, name)

    def value_omitted_from_data(self, data, files, name):
        return False


class QuestionnaireStepForm(forms.Form):
    """
    Fields for the questions of one step. Every field is optional here:
    whether an answer is required depends on display conditions, which the
    validation module checks on the whole set of answers.
    """

    def _get_fields_for_question(self, question):
        label = question.body
        help_text = question.description
        choices = [(str(option.id), option.body) for option in question.options]
        fields = {}
        name = question_field_name(question)

        if question.question_type == 'short_answer':
            attrs = {'maxlength': question.max_characters} if question.max_characters else {}
            fields[name] = forms.CharField(widget=forms.TextInput(attrs=attrs), label=label, help_text=help_text, required=False, strip=False)

        elif question.question_type == 'long_answer':
            attrs = {'maxlength': question.max_characters} if question.max_characters else {}
            fields[name] = forms.CharField(widget=forms.Textarea(attrs=attrs), label=label, help_text=help_text, required=False, strip=False)

        elif question.question_type == 'single_option':
            fields[name] = forms.ChoiceField(widget=forms.RadioSelect, choices=choices, label=label, help_text=help_text, required=False)

        elif question.question_type == 'multiple_option':
            fields[name] = forms.MultipleChoiceField(widget=forms.CheckboxSelectMultiple, choices=choices, label=label, help_text=help_text, required=False)

        elif question.question_type == 'sorting':
            fields[name] = forms.MultipleChoiceField(widget=SortingWidget, choices=choices, label=label, help_text=help_text, required=False)

        elif question.question_type == 'matrix_single':
            for row in question.rows:
                fields[row_field_name(question, row)] = forms.ChoiceField(widget=forms.RadioSelect, choices=choices, label=row.body, required=False)

        elif question.question_type == 'matrix_multiple':
            for row in question.rows:
                fields[row_field_name(question, row)] = forms.MultipleChoiceField(widget=forms.CheckboxSelectMultiple, choices=choices, label=row.body, required=False)

        if question.question_type in ('single_option', 'multiple_option'):
            for option in question.options:
                if option.free_text:
                    fields[custom_field_name(question, option)] = forms.CharField(label=option.body, required=False, strip=False)

        return fields

    def __init__(self, questions, values=None, *args, **kwargs):
        super().__init__(*args, **kwargs)

        self.questions = list(questions)
        values = values if values is not None else AnswerValues()

        for question in self.questions:
            for name, field in self._get_fields_for_question(question).items():
                self.fields[name] = field
            self.initial.update(initial_for_question(question, values.raw_value(question.id)))

    def to_values(self, values: AnswerValues) -> AnswerValues:
        """Write the answers of this step into `values` (form must be valid)."""
        data = self.cleaned_data

        for question in self.questions:
            name = question_field_name(question)

            if question.question_type in ('short_answer', 'long_answer'):
                values.set_value(question.id, TextValue(data.get(name, "")))

            elif question.question_type in ('single_option', 'multiple_option'):
                selected = data.get(name) or []
                if isinstance(selected, str):
                    selected = [selected]
                selections = {}
                for option_id in selected:
                    option = question.option(int(option_id))
                    custom = data.get(custom_field_name(question, option), "") if option.free_text else ""
                    selections[option.id] = custom or ""
                values.set_value(question.id, ChoiceValue(selections))

            elif question.question_type == 'sorting':
                values.set_value(question.id, SortingValue(int(v) for v in data.get(name) or []))

            elif question.question_type in ('matrix_single', 'matrix_multiple'):
                cells = []
                for row in question.rows:
                    selected = data.get(row_field_name(question, row)) or []
                    if isinstance(selected, str):
                        selected = [selected]
                    cells.extend((row.id, int(option_id)) for option_id in selected)
                values.set_value(question.id, MatrixValue(cells))

        return values


def initial_for_question(question, value):
    """Form initial data for one question from the respondent's own value."""
    initial = {}
    if value is None:
        return initial
    name = question_field_name(question)

    if isinstance(value, TextValue):
        initial[name] = value.text

    elif isinstance(value, ChoiceValue):
        ids = [str(option_id) for option_id in value.option_ids()]
        if question.question_type == 'single_option':
            initial[name] = ids[0] if ids else None
        else:
            initial[name] = ids
        for option in question.options:
            if option.free_text and value.custom_text(option.id):
                initial[custom_field_name(question, option)] = value.custom_text(option.id)

    elif isinstance(value, SortingValue):
        initial[name] = [str(option_id) for option_id in value.option_ids()]

    elif isinstance(value, MatrixValue):
        for row in question.rows:
            ids = [str(option_id) for option_id in value.options_for_row(row.id)]
            if question.question_type == 'matrix_single':
                initial[row_field_name(question, row)] = ids[0] if ids else None
            else:
                initial[row_field_name(question, row)] = ids

    return initial
