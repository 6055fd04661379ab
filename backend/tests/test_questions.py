"""
Tests for answer submission and the Questions API.
"""

import pytest
from datetime import datetime
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from codedrill.exceptions import NotFoundError, ValidationFailed
from codedrill.models.models import Question, QuestionAttempt, ReviewState, TrainingPlanItem, User, UserSkill
from codedrill.schemas.requests import CreatePlanRequest, SubmitAnswerRequest
from codedrill.services.answer_evaluator import AnswerEvaluator
from codedrill.services.proficiency import ProficiencyTracker
from codedrill.services.submission import SubmissionService
from codedrill.services.training_plan import DifficultyAdapter, create_training_plan

NOW = datetime(2024, 3, 5, 12, 0, 0)


def answer(payload, time_taken=30, hints=0, **kwargs) -> SubmitAnswerRequest:
    return SubmitAnswerRequest(user_answer=payload, time_taken_seconds=time_taken, hints_used=hints, **kwargs)


class StreakOutageTracker(ProficiencyTracker):
    """Tracker whose streak update always fails"""

    def update_streak(self, db, user_id, now=None):
        raise RuntimeError("streak store unavailable")


class TestSubmission:

    @pytest.mark.integration
    def test_correct_multiple_choice(self, db: Session, submission_service: SubmissionService,
                                     test_user: User, mc_question: Question):
        result = submission_service.submit(db, test_user.id, mc_question.id, answer({"answer": "b"}), now=NOW)

        assert result.is_correct
        assert result.quality == 5
        # base 300 plus time bonus 300 * 0.5 * 0.2
        assert result.points_earned == 330
        assert result.attempt_number == 1
        assert result.correct_answer == {"format": "multiple_choice", "answer": "b"}
        assert result.wrong_answer_explanation is None
        assert result.failed_side_effects == []

    @pytest.mark.integration
    def test_wrong_multiple_choice(self, db: Session, submission_service: SubmissionService,
                                   test_user: User, mc_question: Question):
        result = submission_service.submit(db, test_user.id, mc_question.id, answer({"answer": "a"}), now=NOW)

        assert not result.is_correct
        assert result.points_earned == 0
        assert result.quality == 1
        assert result.wrong_answer_explanation == "Sorting costs O(n log n)."

    @pytest.mark.integration
    def test_attempt_numbers_and_question_stats(self, db: Session, submission_service: SubmissionService,
                                                test_user: User, mc_question: Question):
        submission_service.submit(db, test_user.id, mc_question.id, answer({"answer": "b"}, time_taken=30), now=NOW)
        second = submission_service.submit(
            db, test_user.id, mc_question.id, answer({"answer": "c"}, time_taken=90), now=NOW
        )

        assert second.attempt_number == 2
        db.refresh(mc_question)
        assert mc_question.total_attempts == 2
        assert mc_question.correct_attempts == 1
        assert mc_question.average_time_seconds == pytest.approx(60.0)

    @pytest.mark.integration
    def test_side_effects_applied(self, db: Session, submission_service: SubmissionService,
                                  test_user: User, mc_question: Question):
        result = submission_service.submit(db, test_user.id, mc_question.id, answer({"answer": "b"}), now=NOW)

        review = db.query(ReviewState).filter(
            ReviewState.user_id == test_user.id, ReviewState.question_id == mc_question.id
        ).one()
        assert review.repetitions == 1
        assert review.quality_rating == 5

        skill = db.query(UserSkill).filter(UserSkill.user_id == test_user.id).one()
        assert skill.topic_id == "topic-hashing"
        assert result.new_proficiency_level == 100.0

        db.refresh(test_user)
        assert test_user.current_streak_days == 1
        assert test_user.total_study_time_seconds == 30

    @pytest.mark.integration
    def test_question_without_topic_skips_proficiency(self, db: Session, submission_service: SubmissionService,
                                                      test_user: User, ranking_question: Question):
        ranking = ["O(1)", "O(log n)", "O(n)", "O(n^2)"]
        result = submission_service.submit(db, test_user.id, ranking_question.id, answer({"ranking": ranking}), now=NOW)

        assert result.is_correct
        assert result.new_proficiency_level is None
        assert db.query(UserSkill).count() == 0

    @pytest.mark.integration
    def test_failed_side_effect_keeps_attempt(self, db: Session, config, passing_sandbox,
                                              test_user: User, mc_question: Question):
        service = SubmissionService(
            evaluator=AnswerEvaluator.from_config(config, sandbox=passing_sandbox),
            tracker=StreakOutageTracker(),
            adapter=DifficultyAdapter(),
            side_effect_retries=1,
        )
        result = service.submit(db, test_user.id, mc_question.id, answer({"answer": "b"}), now=NOW)

        assert result.is_correct
        assert result.failed_side_effects == ["streak"]
        assert db.query(QuestionAttempt).filter(QuestionAttempt.id == result.attempt_id).count() == 1
        assert db.query(ReviewState).count() == 1

    @pytest.mark.integration
    def test_code_answer_through_sandbox(self, db: Session, submission_service: SubmissionService,
                                         test_user: User, code_question: Question):
        request = answer({"code": "print(sum(map(int, input().split())))", "language": "python"}, time_taken=60)
        result = submission_service.submit(db, test_user.id, code_question.id, request, now=NOW)

        assert result.is_correct
        assert result.points_earned == 440

    @pytest.mark.integration
    def test_unreachable_sandbox_records_incorrect(self, db: Session, config, unreachable_sandbox,
                                                   test_user: User, code_question: Question):
        service = SubmissionService.from_config(config, sandbox=unreachable_sandbox)
        result = service.submit(db, test_user.id, code_question.id, answer({"code": "print(3)"}), now=NOW)

        assert not result.is_correct
        assert result.points_earned == 0
        assert db.query(QuestionAttempt).count() == 1

    @pytest.mark.integration
    def test_payload_must_fit_format(self, db: Session, submission_service: SubmissionService,
                                     test_user: User, mc_question: Question):
        with pytest.raises(ValidationFailed):
            submission_service.submit(db, test_user.id, mc_question.id, answer({"ranking": ["a", "b"]}), now=NOW)
        assert db.query(QuestionAttempt).count() == 0

    @pytest.mark.integration
    def test_range_checks(self, db: Session, submission_service: SubmissionService,
                          test_user: User, mc_question: Question):
        with pytest.raises(ValidationFailed) as exc_info:
            submission_service.submit(
                db, test_user.id, mc_question.id, answer({"answer": "b"}, time_taken=-1, hints=4), now=NOW
            )
        assert {e.field for e in exc_info.value.errors} == {"time_taken_seconds", "hints_used"}

    @pytest.mark.integration
    def test_unknown_question(self, db: Session, submission_service: SubmissionService, test_user: User):
        with pytest.raises(NotFoundError):
            submission_service.submit(db, test_user.id, "missing", answer({"answer": "b"}), now=NOW)

    @pytest.mark.integration
    def test_unknown_plan(self, db: Session, submission_service: SubmissionService,
                          test_user: User, mc_question: Question):
        with pytest.raises(NotFoundError):
            submission_service.submit(
                db, test_user.id, mc_question.id, answer({"answer": "b"}, training_plan_id="no-plan"), now=NOW
            )
        assert db.query(QuestionAttempt).count() == 0

    @pytest.mark.integration
    def test_plan_item_completed(self, db: Session, submission_service: SubmissionService,
                                 test_user: User, mc_question: Question):
        plan = create_training_plan(
            db, test_user.id,
            CreatePlanRequest(name="One", duration_days=1, questions_per_day=1, adaptive_difficulty=False),
            now=NOW,
        )
        submission_service.submit(
            db, test_user.id, mc_question.id, answer({"answer": "b"}, training_plan_id=plan.id), now=NOW
        )

        item = db.query(TrainingPlanItem).filter(TrainingPlanItem.plan_id == plan.id).one()
        assert item.is_completed
        db.refresh(plan)
        assert plan.progress_percentage == 100.0
        attempt = db.query(QuestionAttempt).one()
        assert attempt.training_plan_id == plan.id


class TestQuestionsEndpoints:

    @pytest.mark.api
    def test_list_questions(self, client: TestClient, auth_headers, mc_question: Question,
                            text_question: Question, ranking_question: Question):
        response = client.get("/api/questions", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [q["id"] for q in data["questions"]] == ["q-rank", "q-text", "q-mc"]

        response = client.get("/api/questions?question_format=text", headers=auth_headers)
        assert response.json()["total"] == 1

    @pytest.mark.api
    def test_get_question_hides_answer(self, client: TestClient, auth_headers, mc_question: Question):
        response = client.get(f"/api/questions/{mc_question.id}", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["hint_count"] == 3
        assert "correct_answer" not in data

    @pytest.mark.api
    def test_unknown_question_is_404(self, client: TestClient, auth_headers):
        assert client.get("/api/questions/missing", headers=auth_headers).status_code == 404

    @pytest.mark.api
    def test_random_question(self, client: TestClient, auth_headers, mc_question: Question, text_question: Question):
        response = client.get(f"/api/questions/random?exclude={text_question.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id"] == mc_question.id

        response = client.get("/api/questions/random?min_difficulty=90", headers=auth_headers)
        assert response.status_code == 404

    @pytest.mark.api
    def test_hints(self, client: TestClient, auth_headers, mc_question: Question, text_question: Question):
        response = client.get(f"/api/questions/{mc_question.id}/hint?level=2", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["hint"] == "What finds a value in O(1)?"

        assert client.get(f"/api/questions/{mc_question.id}/hint?level=0", headers=auth_headers).status_code == 422
        assert client.get(f"/api/questions/{mc_question.id}/hint?level=4", headers=auth_headers).status_code == 422
        assert client.get(f"/api/questions/{text_question.id}/hint?level=2", headers=auth_headers).status_code == 404

    @pytest.mark.api
    def test_submit_answer(self, client: TestClient, auth_headers, mc_question: Question):
        response = client.post(f"/api/questions/{mc_question.id}/answer", headers=auth_headers, json={
            "user_answer": {"answer": "b"},
            "time_taken_seconds": 30,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["is_correct"] is True
        assert data["points_earned"] == 330
        assert data["quality_rating"] == 5
        assert data["attempt_number"] == 1
        assert data["new_proficiency_level"] == 100.0

        attempts = client.get(f"/api/questions/{mc_question.id}/attempts", headers=auth_headers).json()
        assert [a["attempt_number"] for a in attempts] == [1]

    @pytest.mark.api
    def test_submit_code_answer(self, client: TestClient, auth_headers, code_question: Question):
        response = client.post(f"/api/questions/{code_question.id}/answer", headers=auth_headers, json={
            "user_answer": {"code": "a, b = map(int, input().split())\nprint(a + b)"},
            "time_taken_seconds": 200,
        })
        assert response.status_code == 200
        assert response.json()["is_correct"] is True

    @pytest.mark.api
    def test_submit_validation_is_422(self, client: TestClient, auth_headers, mc_question: Question):
        response = client.post(f"/api/questions/{mc_question.id}/answer", headers=auth_headers, json={
            "user_answer": {"ranking": ["a"]},
            "time_taken_seconds": 30,
        })
        assert response.status_code == 422
        assert response.json()["errors"]

    @pytest.mark.api
    def test_requires_token(self, client: TestClient, mc_question: Question):
        response = client.post(f"/api/questions/{mc_question.id}/answer", json={
            "user_answer": {"answer": "b"}, "time_taken_seconds": 30,
        })
        assert response.status_code == 401
