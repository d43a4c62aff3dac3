"""
Tests for the startup schema upkeep that adds columns missing from older databases.
"""
from sqlalchemy import create_engine, inspect, text

from app import create_app
from db_migrations import check_and_update_database
from models import db


def create_legacy_database(path):
    """A database from before weights, timestamps and emails existed"""
    engine = create_engine(f'sqlite:///{path}')
    with engine.begin() as connection:
        connection.execute(text(
            "CREATE TABLE student (id INTEGER PRIMARY KEY, roll_number VARCHAR(20) NOT NULL UNIQUE, "
            "name VARCHAR(100) NOT NULL, created_at DATETIME)"
        ))
        connection.execute(text(
            "CREATE TABLE assessment_co_mapping (id INTEGER PRIMARY KEY, assessment_id INTEGER NOT NULL, "
            "co_id INTEGER NOT NULL, bloom_level_id INTEGER NOT NULL, max_marks FLOAT NOT NULL)"
        ))
        connection.execute(text(
            "CREATE TABLE student_mark (id INTEGER PRIMARY KEY, student_id INTEGER NOT NULL, "
            "assessment_id INTEGER NOT NULL, marks_obtained FLOAT NOT NULL)"
        ))
        connection.execute(text(
            "INSERT INTO assessment_co_mapping (assessment_id, co_id, bloom_level_id, max_marks) VALUES (1, 1, 1, 30)"
        ))
        connection.execute(text(
            "INSERT INTO student_mark (student_id, assessment_id, marks_obtained) VALUES (1, 1, 20)"
        ))
    engine.dispose()


def column_names(engine, table_name):
    return [column['name'] for column in inspect(engine).get_columns(table_name)]


def test_missing_columns_are_added_on_startup(tmp_path):
    path = tmp_path / 'legacy.db'
    create_legacy_database(path)

    app = create_app({'SQLALCHEMY_DATABASE_URI': f'sqlite:///{path}', 'TESTING': True})

    with app.app_context():
        engine = db.engine
        assert 'weight' in column_names(engine, 'assessment_co_mapping')
        assert 'updated_at' in column_names(engine, 'student_mark')
        assert 'email' in column_names(engine, 'student')

        with engine.connect() as connection:
            weight = connection.execute(text("SELECT weight FROM assessment_co_mapping")).scalar()
            updated_at = connection.execute(text("SELECT updated_at FROM student_mark")).scalar()
        assert weight == 1.0
        assert updated_at is not None
        db.session.remove()
        engine.dispose()


def test_up_to_date_schema_is_left_alone(app):
    assert check_and_update_database(app) == []

