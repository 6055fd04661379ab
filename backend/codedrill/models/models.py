from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, JSON, ForeignKey, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from codedrill.database import Base


def generate_uuid():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)

    # Engagement bookkeeping
    current_streak_days = Column(Integer, default=0, nullable=False)
    total_study_time_seconds = Column(Integer, default=0, nullable=False)
    last_active_at = Column(DateTime, nullable=True)  # None until the first graded attempt

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    attempts = relationship("QuestionAttempt", back_populates="user")
    skills = relationship("UserSkill", back_populates="user")
    plans = relationship("TrainingPlan", back_populates="user")


class Topic(Base):
    __tablename__ = "topics"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, unique=True, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    category = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Problem(Base):
    __tablename__ = "problems"

    id = Column(String, primary_key=True, default=generate_uuid)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False)
    constraints = Column(JSON, nullable=True)  # List of constraint strings
    examples = Column(JSON, nullable=True)  # List of {input, output, explanation}
    hints = Column(JSON, nullable=True)
    official_difficulty = Column(String, nullable=True)  # "Easy", "Medium", "Hard"
    primary_pattern = Column(String, nullable=True, index=True)  # e.g. "Sliding Window"
    secondary_patterns = Column(JSON, nullable=True)
    time_complexity = Column(String, nullable=True)  # e.g. "O(n log n)"
    space_complexity = Column(String, nullable=True)
    difficulty_score = Column(Float, nullable=False, default=50.0)  # 0-100
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    questions = relationship("Question", back_populates="problem")
    topics = relationship("ProblemTopic", back_populates="problem")


class ProblemTopic(Base):
    """Links a problem to the topics it exercises; one link is the primary topic."""
    __tablename__ = "problem_topics"

    problem_id = Column(String, ForeignKey("problems.id"), primary_key=True)
    topic_id = Column(String, ForeignKey("topics.id"), primary_key=True)
    relevance_score = Column(Float, default=1.0)
    is_primary = Column(Boolean, default=False, index=True)

    # Relationships
    problem = relationship("Problem", back_populates="topics")
    topic = relationship("Topic")


class Question(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True, default=generate_uuid)
    problem_id = Column(String, ForeignKey("problems.id"), nullable=True, index=True)
    question_type = Column(String, nullable=False, default="conceptual")  # complexity, pattern, implementation...
    question_format = Column(String, nullable=False, index=True)  # multiple_choice, code, text, ranking
    question_text = Column(Text, nullable=False)
    answer_options = Column(JSON, nullable=True)  # Choices shown to the user (multiple_choice, ranking)
    correct_answer = Column(JSON, nullable=False)  # Tagged answer key, see schemas/answers.py
    explanation = Column(Text, nullable=False, default="")
    wrong_answer_explanations = Column(JSON, nullable=True)  # Selection id -> why it's wrong
    hints = Column(JSON, nullable=True)  # Up to three progressively stronger hints
    difficulty_score = Column(Float, nullable=False, index=True)  # 0-100
    estimated_time_seconds = Column(Integer, nullable=True)

    # Aggregate statistics, updated in the same transaction as each attempt
    total_attempts = Column(Integer, default=0, nullable=False)
    correct_attempts = Column(Integer, default=0, nullable=False)
    average_time_seconds = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    problem = relationship("Problem", back_populates="questions")
    attempts = relationship("QuestionAttempt", back_populates="question")


class QuestionAttempt(Base):
    """Append-only record of one graded submission."""
    __tablename__ = "question_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "question_id", "attempt_number", name="uq_attempt_number"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    question_id = Column(String, ForeignKey("questions.id"), nullable=False, index=True)
    user_answer = Column(JSON, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    time_taken_seconds = Column(Integer, nullable=False)
    hints_used = Column(Integer, default=0, nullable=False)
    confidence_level = Column(Integer, nullable=True)  # 1-5 scale
    attempt_number = Column(Integer, nullable=False, default=1)
    points_earned = Column(Integer, default=0, nullable=False)
    training_plan_id = Column(String, ForeignKey("training_plans.id"), nullable=True, index=True)
    attempted_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="attempts")
    question = relationship("Question", back_populates="attempts")


class ReviewState(Base):
    """SM-2 schedule for one (user, question)"""
    __tablename__ = "review_states"
    __table_args__ = (
        UniqueConstraint("user_id", "question_id", name="uq_review_user_question"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    question_id = Column(String, ForeignKey("questions.id"), nullable=False, index=True)
    easiness_factor = Column(Float, nullable=False, default=2.5)  # never below 1.3
    interval_days = Column(Integer, nullable=False, default=1)
    repetitions = Column(Integer, nullable=False, default=0)
    next_review_at = Column(DateTime, nullable=False, index=True)
    last_review_at = Column(DateTime, nullable=True)
    quality_rating = Column(Integer, nullable=True)  # last 0-5 rating
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User")
    question = relationship("Question")


class UserSkill(Base):
    """Per-topic mastery for a user"""
    __tablename__ = "user_skills"
    __table_args__ = (
        UniqueConstraint("user_id", "topic_id", name="uq_skill_user_topic"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    topic_id = Column(String, ForeignKey("topics.id"), nullable=False, index=True)
    proficiency_level = Column(Float, nullable=False, default=0.0)  # 0-100
    questions_attempted = Column(Integer, nullable=False, default=0)
    questions_correct = Column(Integer, nullable=False, default=0)
    improvement_rate = Column(Float, nullable=True)  # percent change of proficiency on last attempt
    needs_review = Column(Boolean, nullable=False, default=False, index=True)
    last_practiced_at = Column(DateTime, nullable=True)
    next_review_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    user = relationship("User", back_populates="skills")
    topic = relationship("Topic")


class TrainingPlan(Base):
    __tablename__ = "training_plans"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    plan_type = Column(String, nullable=True)  # "preset", "custom", "ai_generated"
    target_topics = Column(JSON, nullable=True)  # List of topic ids
    target_patterns = Column(JSON, nullable=True)  # List of pattern names
    difficulty_min = Column(Float, nullable=False, default=0.0)
    difficulty_max = Column(Float, nullable=False, default=100.0)
    duration_days = Column(Integer, nullable=False)
    questions_per_day = Column(Integer, nullable=False, default=5)
    adaptive_difficulty = Column(Boolean, nullable=False, default=True)
    progress_percentage = Column(Float, nullable=False, default=0.0)
    status = Column(String, nullable=False, default="active", index=True)  # "active", "paused", "completed"
    start_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="plans")
    items = relationship(
        "TrainingPlanItem",
        back_populates="plan",
        order_by="TrainingPlanItem.sequence_number",
        cascade="all, delete-orphan",
    )


class TrainingPlanItem(Base):
    __tablename__ = "training_plan_items"
    __table_args__ = (
        UniqueConstraint("plan_id", "sequence_number", name="uq_plan_item_sequence"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    plan_id = Column(String, ForeignKey("training_plans.id"), nullable=False, index=True)
    question_id = Column(String, ForeignKey("questions.id"), nullable=False)
    sequence_number = Column(Integer, nullable=False)  # Global order within the plan
    day_number = Column(Integer, nullable=False)  # 1..duration_days
    scheduled_for = Column(DateTime, nullable=False, index=True)
    item_type = Column(String, nullable=False, default="question")
    is_completed = Column(Boolean, nullable=False, default=False, index=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    plan = relationship("TrainingPlan", back_populates="items")
    question = relationship("Question")
