import random
import argparse
from datetime import date, timedelta
from faker import Faker

from app import create_app
from models import (
    db, Student, Assessment, CourseOutcome, BloomLevel, ProgramOutcome,
    AssessmentCOMapping, StudentMark, COPOMapping
)

# Initialize Faker for generating realistic data
fake = Faker()

DEMO_ASSESSMENTS = [
    {"name": "Assignment 1", "assessment_type": "Assignment", "max_marks": 50},
    {"name": "Midterm Exam", "assessment_type": "Exam", "max_marks": 100},
    {"name": "Quiz 1", "assessment_type": "Quiz", "max_marks": 20},
    {"name": "Final Exam", "assessment_type": "Exam", "max_marks": 100},
]

def generate_course_outcomes(count=6):
    """Create CO1..COn, skipping codes that already exist"""
    outcomes = []
    for i in range(1, count + 1):
        code = f"CO{i}"
        outcome = CourseOutcome.query.filter_by(code=code).first()
        if not outcome:
            outcome = CourseOutcome(code=code, description=fake.sentence(nb_words=8))
            db.session.add(outcome)
        outcomes.append(outcome)
    db.session.flush()
    return outcomes

def generate_students(count):
    students = []
    start = Student.query.count() + 1
    for i in range(start, start + count):
        student = Student(
            roll_number=f"STU{i:03d}",
            name=fake.name(),
            email=fake.unique.email()
        )
        db.session.add(student)
        students.append(student)
    db.session.flush()
    return students

def generate_assessments():
    assessments = []
    start_date = date.today() - timedelta(days=120)
    for offset, details in enumerate(DEMO_ASSESSMENTS):
        assessment = Assessment.query.filter_by(name=details["name"]).first()
        if not assessment:
            assessment = Assessment(assessment_date=start_date + timedelta(days=30 * offset), **details)
            db.session.add(assessment)
        assessments.append(assessment)
    db.session.flush()
    return assessments

def generate_mappings(assessments, outcomes, bloom_levels):
    """
    Split each assessment's marks over 2-3 COs, each at one Bloom level,
    so the mapped marks add up to the assessment's max marks.
    """
    created = 0
    for assessment in assessments:
        if AssessmentCOMapping.query.filter_by(assessment_id=assessment.id).count():
            continue
        chosen = random.sample(outcomes, k=min(len(outcomes), random.randint(2, 3)))
        cuts = sorted(random.sample(range(1, int(assessment.max_marks)), len(chosen) - 1))
        bounds = [0] + cuts + [int(assessment.max_marks)]
        for outcome, low, high in zip(chosen, bounds, bounds[1:]):
            db.session.add(AssessmentCOMapping(
                assessment_id=assessment.id,
                co_id=outcome.id,
                bloom_level_id=random.choice(bloom_levels).id,
                max_marks=float(high - low),
                weight=1.0
            ))
            created += 1
    db.session.flush()
    return created

def generate_marks(students, assessments):
    """Roughly normal marks around 65%, a few students absent from an assessment"""
    created = 0
    for student in students:
        for assessment in assessments:
            if random.random() < 0.05:
                continue
            ratio = min(1.0, max(0.0, random.gauss(0.65, 0.18)))
            StudentMark.upsert(student.id, assessment.id, round(assessment.max_marks * ratio, 1))
            created += 1
    return created

def generate_co_po_correlations(outcomes, program_outcomes):
    """Each CO correlates with a handful of POs; absent pairs mean no correlation"""
    created = 0
    for outcome in outcomes:
        for po in random.sample(program_outcomes, k=min(len(program_outcomes), 4)):
            if COPOMapping.query.filter_by(co_id=outcome.id, po_id=po.id).first():
                continue
            db.session.add(COPOMapping(co_id=outcome.id, po_id=po.id, correlation_value=random.randint(1, 3)))
            created += 1
    return created

def main():
    parser = argparse.ArgumentParser(description='Generate demo attainment data')
    parser.add_argument('--students', type=int, default=30, help='Number of students to create')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for reproducible data')
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)
        fake.seed_instance(args.seed)

    app = create_app()
    with app.app_context():
        bloom_levels = BloomLevel.query.order_by(BloomLevel.level_order).all()
        program_outcomes = ProgramOutcome.query.order_by(ProgramOutcome.id).all()

        try:
            outcomes = generate_course_outcomes()
            students = generate_students(args.students)
            assessments = generate_assessments()
            mapping_count = generate_mappings(assessments, outcomes, bloom_levels)
            mark_count = generate_marks(students, assessments)
            correlation_count = generate_co_po_correlations(outcomes, program_outcomes)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            print(f"Error generating demo data: {e}")
            raise

        # --- Final Summary ---
        print("\n--- Demo Data Generation Summary ---")
        print(f"  - {len(outcomes)} course outcomes")
        print(f"  - {len(students)} new students")
        print(f"  - {len(assessments)} assessments")
        print(f"  - {mapping_count} new assessment-CO mappings")
        print(f"  - {mark_count} student marks")
        print(f"  - {correlation_count} new CO-PO correlations")
        print("\nDemo data generation process complete.")

if __name__ == "__main__":
    main()
