"""
Answer Evaluator

Decides whether a submission is correct for a question. No side effects.

- multiple_choice: selection id equals the key's id
- ranking: same length and element-wise equal
- text: TextMatcher against the key's answer and every acceptable variant
- code: every test case passes in the execution sandbox

Code answers fail closed: if the sandbox is unreachable or errors, the
answer is graded incorrect. There is no structural fallback.
"""

import logging
from typing import Optional

from codedrill.config import EngineConfig
from codedrill.exceptions import ExecutionBackendError, FieldError, ValidationFailed
from codedrill.models.models import Question
from codedrill.schemas.answers import (
    AnswerKey,
    CodeAnswer,
    CodeKey,
    MultipleChoiceAnswer,
    MultipleChoiceKey,
    RankingAnswer,
    RankingKey,
    Submission,
    TextAnswer,
    TextKey,
    parse_answer_key,
)
from codedrill.services.code_sandbox import CodeSandbox
from codedrill.services.text_matcher import TextMatcher

logger = logging.getLogger(__name__)


class AnswerEvaluator:

    def __init__(self, text_matcher: TextMatcher, sandbox: CodeSandbox):
        self.text_matcher = text_matcher
        self.sandbox = sandbox

    @classmethod
    def from_config(cls, config: EngineConfig, sandbox: Optional[CodeSandbox] = None) -> "AnswerEvaluator":
        return cls(
            text_matcher=TextMatcher.from_config(config),
            sandbox=sandbox or CodeSandbox.from_config(config),
        )

    def evaluate(self, question: Question, submission: Submission) -> bool:
        """
        Grade a parsed submission against the question's stored key.

        Raises:
            ValidationFailed: the stored key is malformed, or the submission
                variant does not match the key's format
        """
        key = parse_answer_key(question.correct_answer)
        if key.format != question.question_format:
            raise ValidationFailed([
                FieldError("correct_answer", f"key format '{key.format}' does not match question format")
            ])
        return self._dispatch(question.id, key, submission)

    def _dispatch(self, question_id: str, key: AnswerKey, submission: Submission) -> bool:
        if isinstance(key, MultipleChoiceKey) and isinstance(submission, MultipleChoiceAnswer):
            return submission.answer == key.answer
        if isinstance(key, RankingKey) and isinstance(submission, RankingAnswer):
            return self.check_ranking(submission, key)
        if isinstance(key, TextKey) and isinstance(submission, TextAnswer):
            return self.text_matcher.matches_any(submission.answer, key.variants())
        if isinstance(key, CodeKey) and isinstance(submission, CodeAnswer):
            return self.check_code(question_id, submission, key)

        raise ValidationFailed([
            FieldError("user_answer", f"answer does not fit a {key.format} question")
        ])

    @staticmethod
    def check_ranking(submission: RankingAnswer, key: RankingKey) -> bool:
        if len(submission.ranking) != len(key.ranking):
            return False
        return all(str(a) == str(b) for a, b in zip(submission.ranking, key.ranking))

    def check_code(self, question_id: str, submission: CodeAnswer, key: CodeKey) -> bool:
        language = submission.language or key.language
        try:
            report = self.sandbox.run_tests(submission.code, language, key.test_cases)
        except ExecutionBackendError as e:
            logger.warning("Sandbox unavailable for question %s, grading incorrect: %s", question_id, e.message)
            return False

        if not report.all_passed:
            logger.info(
                "Code answer for question %s passed %d/%d test cases",
                question_id, report.passed_count, report.total_count,
            )
        return report.all_passed
