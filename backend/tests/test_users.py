"""
Tests for topic proficiency, streaks and the Users API.
"""

import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from codedrill.exceptions import NotFoundError
from codedrill.models.models import Problem, ProblemTopic, Question, Topic, User, UserSkill
from codedrill.services.proficiency import (
    ProficiencyTracker,
    next_topic_review_date,
    primary_topic_id,
)

NOW = datetime(2024, 3, 1, 18, 30, 0)


@pytest.fixture
def tracker() -> ProficiencyTracker:
    return ProficiencyTracker()


class TestTopicReviewDate:

    @pytest.mark.unit
    @pytest.mark.parametrize("proficiency,correct,days", [
        (95.0, False, 1),
        (40.0, True, 2),
        (60.0, True, 5),
        (80.0, True, 10),
        (85.0, True, 20),
        (100.0, True, 20),
    ])
    def test_steps(self, proficiency, correct, days):
        assert next_topic_review_date(proficiency, correct, NOW) == NOW + timedelta(days=days)


class TestSkillRecords:

    @pytest.mark.integration
    def test_first_attempt_creates_skill(self, db: Session, tracker, test_user: User, test_topic: Topic):
        skill = tracker.record_attempt(db, test_user.id, test_topic.id, True, now=NOW)
        db.commit()

        assert skill.questions_attempted == 1
        assert skill.questions_correct == 1
        assert skill.proficiency_level == 100.0
        assert skill.needs_review is False
        assert skill.improvement_rate is None
        assert skill.next_review_at == NOW + timedelta(days=20)

    @pytest.mark.integration
    def test_accumulates_and_tracks_improvement(self, db: Session, tracker, test_user: User, test_topic: Topic):
        tracker.record_attempt(db, test_user.id, test_topic.id, True, now=NOW)
        skill = tracker.record_attempt(db, test_user.id, test_topic.id, False, now=NOW)
        db.commit()

        assert skill.questions_attempted == 2
        assert skill.proficiency_level == 50.0
        assert skill.improvement_rate == pytest.approx(-50.0)
        assert skill.needs_review is True
        assert skill.next_review_at == NOW + timedelta(days=1)
        assert db.query(UserSkill).filter(UserSkill.user_id == test_user.id).count() == 1

    @pytest.mark.integration
    def test_needs_review_iff_below_threshold(self, db: Session, tracker, test_user: User, test_topic: Topic):
        results = [True, True, True, False, False]
        for correct in results:
            skill = tracker.record_attempt(db, test_user.id, test_topic.id, correct, now=NOW)
            assert 0.0 <= skill.proficiency_level <= 100.0
            assert skill.needs_review == (skill.proficiency_level < 70)

    @pytest.mark.integration
    def test_concurrent_create_reuses_existing_skill(self, db: Session, tracker, test_user: User,
                                                     test_topic: Topic, monkeypatch):
        first = tracker.record_attempt(db, test_user.id, test_topic.id, True, now=NOW)
        db.commit()
        first_id = first.id

        # Another writer created the skill between our lookup and our insert
        real_lookup = tracker._locked_skill
        misses = []

        def lookup_misses_once(session, user_id, topic_id):
            if not misses:
                misses.append(topic_id)
                return None
            return real_lookup(session, user_id, topic_id)

        monkeypatch.setattr(tracker, "_locked_skill", lookup_misses_once)

        skill = tracker.record_attempt(db, test_user.id, test_topic.id, False, now=NOW)
        db.commit()

        assert misses == [test_topic.id]
        assert skill.id == first_id
        assert skill.questions_attempted == 2
        assert skill.proficiency_level == 50.0
        assert db.query(UserSkill).filter(UserSkill.user_id == test_user.id).count() == 1

    @pytest.mark.integration
    def test_get_skill_not_found(self, db: Session, tracker, test_user: User):
        with pytest.raises(NotFoundError):
            tracker.get_skill(db, test_user.id, "no-such-topic")

    @pytest.mark.integration
    def test_review_queue_only_due_and_weak(self, db: Session, tracker, test_user: User, test_topic: Topic):
        strong = Topic(id="topic-arrays", name="Arrays", slug="arrays")
        db.add(strong)
        db.commit()
        tracker.record_attempt(db, test_user.id, test_topic.id, False, now=NOW - timedelta(days=3))
        tracker.record_attempt(db, test_user.id, strong.id, True, now=NOW - timedelta(days=3))
        db.commit()

        queue = tracker.get_review_queue(db, test_user.id, now=NOW)
        assert [s.topic_id for s in queue] == [test_topic.id]

    @pytest.mark.integration
    def test_primary_topic_preferred(self, db: Session, test_problem: Problem, test_topic: Topic, mc_question: Question):
        other = Topic(id="topic-arrays", name="Arrays", slug="arrays")
        db.add(other)
        db.add(ProblemTopic(problem_id=test_problem.id, topic_id=other.id, relevance_score=5.0, is_primary=False))
        db.commit()

        assert primary_topic_id(db, mc_question) == test_topic.id

    @pytest.mark.integration
    def test_question_without_problem_has_no_topic(self, db: Session, ranking_question: Question):
        assert primary_topic_id(db, ranking_question) is None


class TestEngagement:

    @pytest.mark.integration
    def test_streak_progression(self, db: Session, tracker, test_user: User):
        assert tracker.update_streak(db, test_user.id, now=NOW) == 1
        assert tracker.update_streak(db, test_user.id, now=NOW + timedelta(hours=2)) == 1
        assert tracker.update_streak(db, test_user.id, now=NOW + timedelta(days=1)) == 2
        assert tracker.update_streak(db, test_user.id, now=NOW + timedelta(days=4)) == 1

    @pytest.mark.integration
    def test_streak_uses_calendar_days(self, db: Session, tracker, test_user: User):
        late = datetime(2024, 3, 1, 23, 50)
        tracker.update_streak(db, test_user.id, now=late)
        assert tracker.update_streak(db, test_user.id, now=late + timedelta(minutes=20)) == 2

    @pytest.mark.integration
    def test_streak_unknown_user(self, db: Session, tracker):
        with pytest.raises(NotFoundError):
            tracker.update_streak(db, "ghost", now=NOW)

    @pytest.mark.integration
    def test_study_time_accumulates(self, db: Session, tracker, test_user: User):
        tracker.add_study_time(db, test_user.id, 90)
        tracker.add_study_time(db, test_user.id, 30)
        tracker.add_study_time(db, test_user.id, 0)
        db.commit()
        db.refresh(test_user)
        assert test_user.total_study_time_seconds == 120

    @pytest.mark.integration
    def test_user_stats(self, db: Session, tracker, test_user: User, test_topic: Topic, mc_question: Question,
                        text_question: Question, make_attempts):
        make_attempts(test_user, [mc_question, text_question, mc_question], correct_count=1)
        tracker.record_attempt(db, test_user.id, test_topic.id, True, now=NOW)
        db.commit()

        stats = tracker.get_user_stats(db, test_user.id)
        assert stats["total_attempts"] == 3
        assert stats["correct_attempts"] == 1
        assert stats["accuracy_rate"] == pytest.approx(33.3)
        assert stats["questions_answered"] == 2
        assert stats["problems_attempted"] == 1
        assert stats["problems_solved"] == 1
        assert stats["strong_topics"] == ["Hashing"]
        assert stats["weak_topics"] == []


class TestUsersEndpoints:

    @pytest.mark.api
    def test_my_stats(self, client: TestClient, auth_headers):
        response = client.get("/api/users/me/stats", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total_attempts"] == 0
        assert data["accuracy_rate"] == 0.0

    @pytest.mark.api
    def test_my_skills(self, client: TestClient, db: Session, auth_headers, test_user: User, test_topic: Topic):
        ProficiencyTracker().record_attempt(db, test_user.id, test_topic.id, True)
        db.commit()

        response = client.get("/api/users/me/skills", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()[0]["topic_id"] == test_topic.id

        response = client.get(f"/api/users/me/skills/{test_topic.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["proficiency_level"] == 100.0

    @pytest.mark.api
    def test_unknown_skill_is_404(self, client: TestClient, auth_headers):
        response = client.get("/api/users/me/skills/nope", headers=auth_headers)
        assert response.status_code == 404

    @pytest.mark.api
    def test_bad_token_is_401(self, client: TestClient, test_user: User, token_for):
        token = token_for(test_user.id, secret="wrong-secret")
        response = client.get("/api/users/me/stats", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.api
    def test_unknown_user_is_401(self, client: TestClient, token_for):
        response = client.get("/api/users/me/stats", headers={"Authorization": f"Bearer {token_for('ghost')}"})
        assert response.status_code == 401
