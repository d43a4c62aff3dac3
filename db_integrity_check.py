import os
import sys
from flask import Flask

# Add project root to sys.path to allow importing models
project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from models import (
    db, Student, Assessment, CourseOutcome, BloomLevel, ProgramOutcome,
    AssessmentCOMapping, StudentMark, COPOMapping
)

# Relative tolerance when comparing an assessment's mapped marks to its max marks
MAPPED_MARKS_TOLERANCE = 1e-6

def create_check_app():
    """Creates a minimal Flask app for the integrity check."""
    app = Flask(__name__)
    base_dir = os.path.abspath(os.path.dirname(__file__))
    db_path = os.path.join(base_dir, "instance", "attainment_data.db")
    database_url = os.environ.get('DATABASE_URL')

    if not database_url:
        if not os.path.exists(db_path):
            print(f"Error: Database file not found at {db_path}")
            print("Please ensure the database exists and the script is run from the correct directory.")
            sys.exit(1)
        database_url = f'sqlite:///{db_path}'

    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    db.init_app(app)
    return app

def check_foreign_key(session, model, fk_column_name, related_model):
    """Returns the ids of `model` rows whose foreign key points at a missing parent."""
    fk_column = getattr(model, fk_column_name)
    parent_ids = {row[0] for row in session.query(related_model.id).all()}

    orphaned = []
    for record_id, fk_value in session.query(model.id, fk_column).filter(fk_column.isnot(None)).all():
        if fk_value not in parent_ids:
            orphaned.append({'id': record_id, fk_column_name: fk_value})
    return orphaned

def check_mapped_marks(session):
    """
    Assessments whose CO x Bloom mappings do not add up to the assessment's own
    max marks. Not a hard constraint; aggregation still works, but attainment
    can then exceed or fall short of the raw percentage.
    """
    totals = {}
    for mapping in session.query(AssessmentCOMapping).all():
        totals[mapping.assessment_id] = totals.get(mapping.assessment_id, 0.0) + (mapping.max_marks or 0.0)

    mismatched = []
    for assessment in session.query(Assessment).order_by(Assessment.id).all():
        if assessment.id not in totals:
            continue
        mapped = totals[assessment.id]
        if abs(mapped - assessment.max_marks) > MAPPED_MARKS_TOLERANCE * max(1.0, abs(assessment.max_marks)):
            mismatched.append({
                'assessment_id': assessment.id,
                'assessment_name': assessment.name,
                'max_marks': assessment.max_marks,
                'mapped_marks': mapped
            })
    return mismatched

def check_non_positive_assessments(session):
    """Assessments with max marks <= 0; their mappings never contribute."""
    return [
        {'assessment_id': a.id, 'assessment_name': a.name, 'max_marks': a.max_marks}
        for a in session.query(Assessment).filter(Assessment.max_marks <= 0).order_by(Assessment.id).all()
    ]

def check_zero_capacity_cells(session):
    """(CO, Bloom level) cells with mappings whose max_marks * weight sums to 0; they cannot be redistributed."""
    capacity = {}
    for mapping, co, level in (
        session.query(AssessmentCOMapping, CourseOutcome, BloomLevel)
        .join(CourseOutcome, AssessmentCOMapping.co_id == CourseOutcome.id)
        .join(BloomLevel, AssessmentCOMapping.bloom_level_id == BloomLevel.id)
        .all()
    ):
        key = (co.code, level.level_order, level.name)
        capacity[key] = capacity.get(key, 0.0) + (mapping.max_marks or 0.0) * (mapping.weight if mapping.weight is not None else 1.0)

    return [
        {'co_code': co_code, 'bloom_level': level_name}
        for (co_code, _, level_name), total in sorted(capacity.items())
        if total <= 0
    ]

def collect_integrity_report(session):
    """Runs every check and returns a JSON-serializable report. Never mutates data."""
    orphans = {
        'student_mark.student_id': check_foreign_key(session, StudentMark, 'student_id', Student),
        'student_mark.assessment_id': check_foreign_key(session, StudentMark, 'assessment_id', Assessment),
        'assessment_co_mapping.assessment_id': check_foreign_key(session, AssessmentCOMapping, 'assessment_id', Assessment),
        'assessment_co_mapping.co_id': check_foreign_key(session, AssessmentCOMapping, 'co_id', CourseOutcome),
        'assessment_co_mapping.bloom_level_id': check_foreign_key(session, AssessmentCOMapping, 'bloom_level_id', BloomLevel),
        'co_po_mapping.co_id': check_foreign_key(session, COPOMapping, 'co_id', CourseOutcome),
        'co_po_mapping.po_id': check_foreign_key(session, COPOMapping, 'po_id', ProgramOutcome),
    }

    report = {
        'orphaned_records': {key: rows for key, rows in orphans.items() if rows},
        'mapped_marks_mismatch': check_mapped_marks(session),
        'non_positive_assessments': check_non_positive_assessments(session),
        'zero_capacity_cells': check_zero_capacity_cells(session),
    }
    report['issue_count'] = (
        sum(len(rows) for rows in report['orphaned_records'].values())
        + len(report['mapped_marks_mismatch'])
        + len(report['non_positive_assessments'])
        + len(report['zero_capacity_cells'])
    )
    return report

def run_integrity_check():
    """Runs the database integrity checks."""
    app = create_check_app()

    with app.app_context():
        print("Starting database integrity check...")
        report = collect_integrity_report(db.session)

        print("\nChecking Model Foreign Keys:")
        if not report['orphaned_records']:
            print("  No orphaned records found.")
        for key, rows in report['orphaned_records'].items():
            print(f"  Found {len(rows)} orphaned records via '{key}'. Examples: {rows[:5]}")

        print("\nChecking Assessment Mappings:")
        for row in report['mapped_marks_mismatch']:
            print(f"  - {row['assessment_name']}: mapped {row['mapped_marks']} of {row['max_marks']} marks")
        for row in report['non_positive_assessments']:
            print(f"  - {row['assessment_name']}: max marks {row['max_marks']} is not positive")
        for row in report['zero_capacity_cells']:
            print(f"  - {row['co_code']}/{row['bloom_level']}: zero capacity, cannot be edited")

        # --- Summary ---
        print("\nIntegrity Check Complete.")
        if report['issue_count'] == 0:
            print("No issues found. Database integrity looks good!")
        else:
            print(f"Found a total of {report['issue_count']} potential issues.")
            print("Review the output above for details.")

        db.session.remove() # Clean up the session

if __name__ == "__main__":
    run_integrity_check()
