"""
Pytest configuration and fixtures for CodeDrill backend tests.

Provides:
- Test database setup/teardown
- FastAPI test client with auth headers
- User, topic, problem and per-format question fixtures
- A sandbox backed by httpx.MockTransport
"""

import pytest
import os
from typing import Dict, Generator, List
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test_codedrill.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-codedrill-tests"
os.environ.pop("SENTRY_DSN", None)

from codedrill.config import get_engine_config, reset_engine_config
reset_engine_config()

from codedrill.main import app
from codedrill.database import Base, get_db
from codedrill.dependencies.services import get_submission_service
from codedrill.models.models import (
    User, Topic, Problem, ProblemTopic, Question, QuestionAttempt
)
from codedrill.services.code_sandbox import CodeSandbox
from codedrill.services.submission import SubmissionService
from tests.mocks.judge0_mocks import judge0_handler, make_sandbox, unreachable_handler


# Test database setup
TEST_DATABASE_URL = "sqlite:///./test_codedrill.db"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)


# Same SAVEPOINT handling as the application engine
@event.listens_for(test_engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database tables once per test session"""
    Base.metadata.create_all(bind=test_engine)
    yield
    # Cleanup after all tests
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()
    if os.path.exists("./test_codedrill.db"):
        os.remove("./test_codedrill.db")


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Provide a database session for each test, with rollback after.

    Service code commits freely; each commit only releases a savepoint
    inside the outer transaction, which is rolled back at teardown.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def config():
    return get_engine_config()


# =========================================================================
# Sandbox Fixtures
# =========================================================================

@pytest.fixture
def passing_sandbox() -> CodeSandbox:
    """Sandbox whose programs print the right answer for the sum question"""
    return make_sandbox(judge0_handler({"1 2": "3\n", "5 7": "12\r\n"}))


@pytest.fixture
def unreachable_sandbox() -> CodeSandbox:
    return make_sandbox(unreachable_handler)


@pytest.fixture
def submission_service(config, passing_sandbox) -> SubmissionService:
    return SubmissionService.from_config(config, sandbox=passing_sandbox)


# =========================================================================
# Client Fixtures
# =========================================================================

@pytest.fixture(scope="function")
def client(db: Session, submission_service: SubmissionService) -> Generator[TestClient, None, None]:
    """Provide FastAPI test client with database and sandbox overrides"""
    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_submission_service] = lambda: submission_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_token(user_id: str, secret: str = None) -> str:
    secret = secret or os.environ["JWT_SECRET_KEY"]
    return jwt.encode({"sub": user_id}, secret, algorithm="HS256")


@pytest.fixture
def token_for():
    """Sign a bearer token for any user id (optionally with another secret)"""
    return make_token


@pytest.fixture
def auth_headers(test_user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(test_user.id)}"}


# =========================================================================
# User Fixtures
# =========================================================================

@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user"""
    user = User(
        id="test-user-123",
        username="testuser",
        email="test@codedrill.dev",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db: Session) -> User:
    user = User(id="other-user-456", username="other", email="other@codedrill.dev")
    db.add(user)
    db.commit()
    return user


# =========================================================================
# Problem / Topic Fixtures
# =========================================================================

@pytest.fixture
def test_topic(db: Session) -> Topic:
    topic = Topic(id="topic-hashing", name="Hashing", slug="hashing", category="Data Structures")
    db.add(topic)
    db.commit()
    return topic


@pytest.fixture
def test_problem(db: Session, test_topic: Topic) -> Problem:
    """Two Sum, linked to the hashing topic as its primary topic"""
    problem = Problem(
        id="problem-two-sum",
        title="Two Sum",
        slug="two-sum",
        description="Given an array of integers nums and an integer target, return indices of the two numbers that add up to target. You may not use the same element twice.",
        constraints=["2 <= nums.length <= 10^4", "-10^9 <= nums[i] <= 10^9", "Only one valid answer exists"],
        examples=[{"input": "[2,7,11,15], 9", "output": "[0,1]"}],
        official_difficulty="Easy",
        primary_pattern="Hash Table",
        secondary_patterns=["Array"],
        time_complexity="O(n)",
        space_complexity="O(n)",
        difficulty_score=30.0,
    )
    db.add(problem)
    db.add(ProblemTopic(problem_id=problem.id, topic_id=test_topic.id, relevance_score=1.0, is_primary=True))
    db.commit()
    return problem


# =========================================================================
# Question Fixtures
# =========================================================================

@pytest.fixture
def mc_question(db: Session, test_problem: Problem) -> Question:
    question = Question(
        id="q-mc",
        problem_id=test_problem.id,
        question_type="pattern",
        question_format="multiple_choice",
        question_text="Which data structure gives an O(n) solution to Two Sum?",
        answer_options=[
            {"id": "a", "text": "Sorted array"},
            {"id": "b", "text": "Hash map"},
            {"id": "c", "text": "Stack"},
        ],
        correct_answer={"format": "multiple_choice", "answer": "b"},
        explanation="A hash map finds each complement in O(1).",
        wrong_answer_explanations={"a": "Sorting costs O(n log n).", "c": "A stack gives no lookup by value."},
        hints=["Think about lookups.", "What finds a value in O(1)?", "Store complements as you go."],
        difficulty_score=30.0,
        estimated_time_seconds=60,
    )
    db.add(question)
    db.commit()
    return question


@pytest.fixture
def text_question(db: Session, test_problem: Problem) -> Question:
    question = Question(
        id="q-text",
        problem_id=test_problem.id,
        question_type="complexity",
        question_format="text",
        question_text="What is the time complexity of the hash map solution?",
        correct_answer={"format": "text", "answer": "O(n)", "acceptable_answers": ["linear"]},
        explanation="Each element is visited once.",
        hints=["Count the passes over the array."],
        difficulty_score=25.0,
        estimated_time_seconds=30,
    )
    db.add(question)
    db.commit()
    return question


@pytest.fixture
def ranking_question(db: Session) -> Question:
    question = Question(
        id="q-rank",
        question_type="complexity",
        question_format="ranking",
        question_text="Order these from fastest to slowest growth.",
        answer_options=["O(1)", "O(log n)", "O(n)", "O(n^2)"],
        correct_answer={"format": "ranking", "ranking": ["O(1)", "O(log n)", "O(n)", "O(n^2)"]},
        explanation="Constant < logarithmic < linear < quadratic.",
        difficulty_score=20.0,
    )
    db.add(question)
    db.commit()
    return question


@pytest.fixture
def code_question(db: Session, test_problem: Problem) -> Question:
    question = Question(
        id="q-code",
        problem_id=test_problem.id,
        question_type="implementation",
        question_format="code",
        question_text="Read two integers and print their sum.",
        correct_answer={
            "format": "code",
            "language": "python",
            "test_cases": [{"input": "1 2", "expected": "3"}, {"input": "5 7", "expected": "12"}],
        },
        explanation="print(sum(map(int, input().split())))",
        difficulty_score=40.0,
        estimated_time_seconds=120,
    )
    db.add(question)
    db.commit()
    return question


def create_questions(
    db: Session,
    count: int,
    difficulty: float = 50.0,
    prefix: str = "bank",
    problem_id: str = None,
    start: datetime = None,
) -> List[Question]:
    """Helper to create multiple-choice questions with a fixed pool order"""
    start = start or datetime(2024, 1, 1)
    questions = []
    for i in range(count):
        q = Question(
            id=f"{prefix}-{i:03d}",
            problem_id=problem_id,
            question_format="multiple_choice",
            question_text=f"Bank question {i}",
            correct_answer={"format": "multiple_choice", "answer": "a"},
            explanation="",
            difficulty_score=difficulty,
            created_at=start + timedelta(minutes=i),
        )
        questions.append(q)
        db.add(q)
    db.commit()
    return questions


def create_attempts(db: Session, user: User, questions: List[Question], correct_count: int, now: datetime = None) -> List[QuestionAttempt]:
    """Helper to give a user a recent history with a given number of correct answers"""
    now = now or datetime.utcnow()
    attempts = []
    numbers: Dict[str, int] = {}
    for i, question in enumerate(questions):
        numbers[question.id] = numbers.get(question.id, 0) + 1
        attempt = QuestionAttempt(
            user_id=user.id,
            question_id=question.id,
            user_answer={"answer": "a"},
            is_correct=i < correct_count,
            time_taken_seconds=30,
            attempt_number=numbers[question.id],
            attempted_at=now - timedelta(minutes=len(questions) - i),
        )
        attempts.append(attempt)
        db.add(attempt)
    db.commit()
    return attempts


@pytest.fixture
def question_bank(db: Session) -> List[Question]:
    """Twenty questions spread across difficulty 10..105 clipped to 100"""
    questions = []
    for i in range(20):
        q = Question(
            id=f"spread-{i:03d}",
            question_format="multiple_choice",
            question_text=f"Spread question {i}",
            correct_answer={"format": "multiple_choice", "answer": "a"},
            explanation="",
            difficulty_score=min(100.0, 10.0 + i * 5),
            created_at=datetime(2024, 1, 1) + timedelta(minutes=i),
        )
        questions.append(q)
        db.add(q)
    db.commit()
    return questions


@pytest.fixture
def make_questions(db: Session):
    """Factory fixture around create_questions"""
    def _make(count: int, difficulty: float = 50.0, prefix: str = "bank", **kwargs) -> List[Question]:
        return create_questions(db, count, difficulty=difficulty, prefix=prefix, **kwargs)
    return _make


@pytest.fixture
def make_attempts(db: Session):
    """Factory fixture around create_attempts"""
    def _make(user: User, questions: List[Question], correct_count: int, now: datetime = None) -> List[QuestionAttempt]:
        return create_attempts(db, user, questions, correct_count, now=now)
    return _make
