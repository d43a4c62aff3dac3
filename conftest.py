import os

# Keep test runs quiet and out of the application log file
os.environ.setdefault('LOG_LEVEL', 'ERROR')
os.environ.setdefault('LOG_FILE', os.devnull)

import pytest

from app import create_app
from models import (
    db, Student, Assessment, CourseOutcome, BloomLevel,
    AssessmentCOMapping, StudentMark
)


@pytest.fixture
def app():
    """Application bound to a fresh in-memory SQLite database"""
    app = create_app({
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'TESTING': True,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def add_mapping(assessment, outcome, level, max_marks, weight=1.0):
    mapping = AssessmentCOMapping(
        assessment_id=assessment.id,
        co_id=outcome.id,
        bloom_level_id=level.id,
        max_marks=max_marks,
        weight=weight
    )
    db.session.add(mapping)
    db.session.flush()
    return mapping


def set_marks(student, assessment, marks_obtained):
    StudentMark.upsert(student.id, assessment.id, marks_obtained)
    db.session.commit()


def marks_of(student, assessment):
    mark = StudentMark.query.filter_by(student_id=student.id, assessment_id=assessment.id).first()
    return None if mark is None else mark.marks_obtained


@pytest.fixture
def seed(app):
    """
    Two students, two COs and two assessments.

    Midterm (max 100) maps 30 marks to CO1/Apply; Quiz (max 20) maps 10 marks
    to CO1/Remember and 10 to CO2/Understand. Bloom levels and program
    outcomes come from the application's own reference data.
    """
    levels = {level.name: level for level in BloomLevel.query.all()}

    alice = Student(roll_number='STU001', name='Alice Smith', email='alice@example.com')
    bob = Student(roll_number='STU002', name='Bob Jones')
    co1 = CourseOutcome(code='CO1', description='Apply basic programming constructs')
    co2 = CourseOutcome(code='CO2', description='Explain data structures')
    midterm = Assessment(name='Midterm', assessment_type='Exam', max_marks=100.0)
    quiz = Assessment(name='Quiz 1', assessment_type='Quiz', max_marks=20.0)
    db.session.add_all([alice, bob, co1, co2, midterm, quiz])
    db.session.flush()

    mappings = {
        'midterm_co1_apply': add_mapping(midterm, co1, levels['Apply'], 30.0),
        'quiz_co1_remember': add_mapping(quiz, co1, levels['Remember'], 10.0),
        'quiz_co2_understand': add_mapping(quiz, co2, levels['Understand'], 10.0),
    }
    db.session.commit()

    set_marks(alice, midterm, 80.0)
    set_marks(alice, quiz, 15.0)
    set_marks(bob, midterm, 40.0)

    return {
        'students': {'alice': alice, 'bob': bob},
        'outcomes': {'CO1': co1, 'CO2': co2},
        'assessments': {'midterm': midterm, 'quiz': quiz},
        'levels': levels,
        'mappings': mappings,
    }
