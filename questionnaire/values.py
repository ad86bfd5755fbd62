"""
In-memory answer values, one per question, held while the respondent is
still filling the questionnaire.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple


class TextValue:
    kind = "text"

    def __init__(self, text: Optional[str] = ""):
        self.text = text or ""

    def is_empty(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "text": self.text}

    def __eq__(self, other):
        return isinstance(other, TextValue) and other.text == self.text

    def __repr__(self):
        return f"TextValue({self.text!r})"


class ChoiceValue:
    """Selected option ids, each with the custom text typed for it (if any)."""
    kind = "choice"

    def __init__(self, selections=None):
        if selections is None:
            selections = {}
        elif not isinstance(selections, dict):
            selections = {option_id: "" for option_id in selections}
        self.selections = {int(k): (v or "") for k, v in selections.items()}

    def option_ids(self) -> List[int]:
        return list(self.selections)

    def custom_text(self, option_id: int) -> str:
        return self.selections.get(option_id, "")

    def is_empty(self) -> bool:
        return not self.selections

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "selections": [[k, v] for k, v in self.selections.items()]}

    def __eq__(self, other):
        return isinstance(other, ChoiceValue) and other.selections == self.selections

    def __repr__(self):
        return f"ChoiceValue({self.selections!r})"


class SortingValue:
    kind = "sorting"

    def __init__(self, option_ids: Iterable[int] = ()):
        self.ordered = [int(option_id) for option_id in option_ids]

    def option_ids(self) -> List[int]:
        return list(self.ordered)

    def is_empty(self) -> bool:
        return not self.ordered

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "ordered": list(self.ordered)}

    def __eq__(self, other):
        return isinstance(other, SortingValue) and other.ordered == self.ordered

    def __repr__(self):
        return f"SortingValue({self.ordered!r})"


class MatrixValue:
    """Selected (row_id, option_id) cells."""
    kind = "matrix"

    def __init__(self, cells: Iterable[Tuple[int, int]] = ()):
        self.cells = {(int(row_id), int(option_id)) for row_id, option_id in cells}

    def option_ids(self) -> List[int]:
        return sorted({option_id for _, option_id in self.cells})

    def row_ids(self) -> List[int]:
        return sorted({row_id for row_id, _ in self.cells})

    def options_for_row(self, row_id: int) -> List[int]:
        return sorted(option_id for r, option_id in self.cells if r == row_id)

    def is_empty(self) -> bool:
        return not self.cells

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "cells": sorted([row_id, option_id] for row_id, option_id in self.cells)}

    def __eq__(self, other):
        return isinstance(other, MatrixValue) and other.cells == self.cells

    def __repr__(self):
        return f"MatrixValue({sorted(self.cells)!r})"


def value_from_dict(data: Dict[str, Any]):
    kind = data.get("kind")
    if kind == TextValue.kind:
        return TextValue(data.get("text", ""))
    if kind == ChoiceValue.kind:
        return ChoiceValue({option_id: text for option_id, text in data.get("selections", [])})
    if kind == SortingValue.kind:
        return SortingValue(data.get("ordered", []))
    if kind == MatrixValue.kind:
        return MatrixValue(tuple(cell) for cell in data.get("cells", []))
    raise ValueError(f"Unknown answer value kind '{kind}'")


class AnswerValues:
    """The respondent's current answers keyed by question id."""

    def __init__(self, values=None):
        self._values = {}
        for question_id, value in (values or {}).items():
            self.set_value(question_id, value)

    def set_value(self, question_id: int, value):
        self._values[int(question_id)] = value

    def get_value(self, question_id: int):
        """Return the value for the question, or None when it has no answer."""
        value = self._values.get(question_id)
        if value is None or value.is_empty():
            return None
        return value

    def raw_value(self, question_id: int):
        return self._values.get(question_id)

    def clear(self, question_id: int):
        self._values.pop(question_id, None)

    def question_ids(self) -> List[int]:
        return list(self._values)

    def items(self):
        return self._values.items()

    def copy(self) -> "AnswerValues":
        return AnswerValues(dict(self._values))

    def only(self, question_ids: Iterable[int]) -> "AnswerValues":
        keep = set(question_ids)
        return AnswerValues({k: v for k, v in self._values.items() if k in keep})

    def to_dict(self) -> Dict[str, Any]:
        # JSON keys must be strings
        return {str(question_id): value.to_dict() for question_id, value in self._values.items()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AnswerValues":
        return cls({int(k): value_from_dict(v) for k, v in (data or {}).items()})

    def __contains__(self, question_id):
        return self.get_value(question_id) is not None

    def __len__(self):
        return len(self._values)

    def __repr__(self):
        return f"AnswerValues({self._values!r})"
