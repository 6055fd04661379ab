"""
Answer Payload Schemas

Typed answer keys (stored on Question.correct_answer) and typed user
submissions, one variant per question format. Stored keys carry a
``format`` discriminator so the evaluator can dispatch exhaustively:

    {"format": "multiple_choice", "answer": "b"}
    {"format": "code", "language": "python", "test_cases": [{"input": "1 2", "expected": "3"}]}
    {"format": "text", "answer": "O(n log n)", "acceptable_answers": ["n log n"]}
    {"format": "ranking", "ranking": ["a", "c", "b"]}

Submissions are parsed against the question's format; a payload that
does not fit it is rejected with ValidationFailed.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from codedrill.exceptions import FieldError, ValidationFailed


# =============================================================================
# ENUMS
# =============================================================================

class QuestionFormat(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    CODE = "code"
    TEXT = "text"
    RANKING = "ranking"


def stringify_ranking(value: Any) -> Any:
    """
    Render numeric ranking ids as strings so [1, 2] and ["1", "2"] compare equal.

    Whole floats render without a fraction (2.0 -> "2"). Anything that is not
    a list, and elements that are not numbers, are left for field validation.
    """
    if not isinstance(value, list):
        return value
    rendered = []
    for item in value:
        if isinstance(item, bool):
            rendered.append(item)
        elif isinstance(item, int):
            rendered.append(str(item))
        elif isinstance(item, float):
            rendered.append(str(int(item)) if item.is_integer() else str(item))
        else:
            rendered.append(item)
    return rendered


# =============================================================================
# ANSWER KEYS
# =============================================================================

class CodeTestCase(BaseModel):
    """One stdin/expected-stdout pair for a code question."""

    input: str = ""
    expected: str


class MultipleChoiceKey(BaseModel):
    format: Literal["multiple_choice"] = "multiple_choice"
    answer: str = Field(..., min_length=1)


class CodeKey(BaseModel):
    format: Literal["code"] = "code"
    language: str = "python"
    test_cases: List[CodeTestCase] = Field(..., min_length=1)


class TextKey(BaseModel):
    format: Literal["text"] = "text"
    answer: str = Field(..., min_length=1)
    acceptable_answers: List[str] = Field(default_factory=list)

    def variants(self) -> List[str]:
        """The canonical answer followed by every accepted alternative."""
        return [self.answer] + [a for a in self.acceptable_answers if a]


class RankingKey(BaseModel):
    format: Literal["ranking"] = "ranking"
    ranking: List[str] = Field(..., min_length=1)

    @field_validator("ranking", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Any:
        return stringify_ranking(v)


AnswerKey = Annotated[
    Union[MultipleChoiceKey, CodeKey, TextKey, RankingKey],
    Field(discriminator="format"),
]

_answer_key_adapter = TypeAdapter(AnswerKey)


# =============================================================================
# SUBMISSIONS
# =============================================================================

class MultipleChoiceAnswer(BaseModel):
    answer: str = Field(..., min_length=1)


class CodeAnswer(BaseModel):
    code: str = Field(..., min_length=1)
    language: Optional[str] = None  # defaults to the key's language

    @field_validator("code")
    @classmethod
    def code_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("code must not be blank")
        return v


class TextAnswer(BaseModel):
    answer: str = Field(..., min_length=1)


class RankingAnswer(BaseModel):
    ranking: List[str] = Field(..., min_length=1)

    @field_validator("ranking", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Any:
        return stringify_ranking(v)


Submission = Union[MultipleChoiceAnswer, CodeAnswer, TextAnswer, RankingAnswer]

SUBMISSION_MODELS = {
    QuestionFormat.MULTIPLE_CHOICE: MultipleChoiceAnswer,
    QuestionFormat.CODE: CodeAnswer,
    QuestionFormat.TEXT: TextAnswer,
    QuestionFormat.RANKING: RankingAnswer,
}


# =============================================================================
# PARSING
# =============================================================================

def _field_errors(exc: ValidationError, prefix: str) -> List[FieldError]:
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        field = f"{prefix}.{loc}" if loc else prefix
        errors.append(FieldError(field=field, message=err.get("msg", "invalid value")))
    return errors


def parse_answer_key(raw: Dict[str, Any]) -> AnswerKey:
    """
    Parse a stored answer key into its typed variant.

    Raises:
        ValidationFailed: if the stored payload is malformed
    """
    try:
        return _answer_key_adapter.validate_python(raw)
    except ValidationError as e:
        raise ValidationFailed(_field_errors(e, "correct_answer"))


def parse_submission(question_format: str, raw: Any) -> Submission:
    """
    Parse a user's answer payload against the question's format.

    Args:
        question_format: One of the QuestionFormat values
        raw: The submitted JSON object

    Returns:
        The typed submission for that format

    Raises:
        ValidationFailed: unknown format or payload that does not fit it
    """
    try:
        fmt = QuestionFormat(question_format)
    except ValueError:
        raise ValidationFailed([
            FieldError("question_format", f"unsupported question format '{question_format}'")
        ])

    if not isinstance(raw, dict):
        raise ValidationFailed([FieldError("user_answer", "must be a JSON object")])

    model = SUBMISSION_MODELS[fmt]
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ValidationFailed(_field_errors(e, "user_answer"))
