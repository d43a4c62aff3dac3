from flask import Blueprint, jsonify, request
from models import (
    db, Student, Assessment, CourseOutcome, BloomLevel,
    AssessmentCOMapping, StudentMark, Log
)
import logging
import math
import traceback

calculation_bp = Blueprint('calculation', __name__, url_prefix='/api/student-marks')


class AttainmentError(Exception):
    """Base class for failures surfaced to the caller of the attainment engine"""
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class NotFound(AttainmentError):
    """A referenced student, CO, Bloom level or mapping set does not exist"""
    status_code = 404


class InvalidState(AttainmentError):
    """The stored data cannot express the requested computation (zero capacity)"""
    status_code = 400


class InvalidInput(AttainmentError):
    """The request carries a missing, non-numeric or negative value"""
    status_code = 400


def calculate_contribution(marks_obtained, assessment_max_marks, mapping_max_marks, weight):
    """
    Contribution of one assessment to one CO x Bloom cell:
    (marks_obtained / assessment max) * mapping max * weight.

    Missing marks and non-positive denominators contribute 0 instead of raising.
    """
    if marks_obtained is None:
        return 0.0
    if not assessment_max_marks or assessment_max_marks <= 0:
        return 0.0
    if not mapping_max_marks or mapping_max_marks <= 0:
        return 0.0
    if weight is None:
        weight = 1.0
    return (marks_obtained / assessment_max_marks) * mapping_max_marks * weight


def mapping_capacity(mapping):
    """max_marks * weight of a mapping, the most it can add to its cell"""
    weight = mapping.weight if mapping.weight is not None else 1.0
    return (mapping.max_marks or 0.0) * weight


def bulk_load_attainment_data(student_id=None):
    """
    Load everything the aggregation needs in a fixed number of queries.

    Args:
        student_id: Restrict to one student; None loads every student.

    Returns:
        Dictionary with ordered students, course outcomes and Bloom levels,
        mappings grouped by (co_id, bloom_level_id) and by co_id, and a
        marks dictionary keyed by (student_id, assessment_id).
    """
    # 1. Students in roll number order
    students_query = Student.query
    if student_id is not None:
        students_query = students_query.filter(Student.id == student_id)
    students = sorted(students_query.all(), key=lambda s: s.roll_number)

    # 2. Course outcomes in code order and Bloom levels in rank order
    course_outcomes = sorted(CourseOutcome.query.all(), key=lambda co: co.code)
    bloom_levels = sorted(BloomLevel.query.all(), key=lambda bl: (bl.level_order, bl.name))

    # 3. Every mapping together with its assessment
    mapping_rows = (
        db.session.query(AssessmentCOMapping, Assessment)
        .join(Assessment, AssessmentCOMapping.assessment_id == Assessment.id)
        .order_by(Assessment.id)
        .all()
    )
    mappings_by_cell = {}
    mappings_by_co = {}
    assessment_ids = set()
    for mapping, assessment in mapping_rows:
        mappings_by_cell.setdefault((mapping.co_id, mapping.bloom_level_id), []).append((mapping, assessment))
        mappings_by_co.setdefault(mapping.co_id, []).append((mapping, assessment))
        assessment_ids.add(assessment.id)

    # 4. Raw marks of the requested students on mapped assessments
    marks_dict = {}
    student_ids = [s.id for s in students]
    if student_ids and assessment_ids:
        marks = StudentMark.query.filter(
            StudentMark.student_id.in_(student_ids),
            StudentMark.assessment_id.in_(assessment_ids)
        ).all()
        for mark in marks:
            marks_dict[(mark.student_id, mark.assessment_id)] = mark.marks_obtained

    return {
        'students': students,
        'course_outcomes': course_outcomes,
        'bloom_levels': bloom_levels,
        'mappings_by_cell': mappings_by_cell,
        'mappings_by_co': mappings_by_co,
        'marks': marks_dict,
    }


def calculate_cell_attainment(student_id, cell_mappings, marks_dict):
    """Sum the contributions of every (mapping, assessment) pair feeding one cell"""
    total = 0.0
    for mapping, assessment in cell_mappings:
        total += calculate_contribution(
            marks_dict.get((student_id, assessment.id)),
            assessment.max_marks,
            mapping.max_marks,
            mapping.weight
        )
    return total


def calculate_attainment(student_id=None, bulk_data=None):
    """
    Dense CO x Bloom attainment for one student or all students.

    Every (student, CO, Bloom level) triple appears in the result, with 0 when
    nothing contributes. Ordering is roll number, CO code, Bloom level rank.
    """
    if bulk_data is None:
        bulk_data = bulk_load_attainment_data(student_id)

    results = []
    for student in bulk_data['students']:
        marks = {}
        for outcome in bulk_data['course_outcomes']:
            co_marks = {}
            for level in bulk_data['bloom_levels']:
                cell_mappings = bulk_data['mappings_by_cell'].get((outcome.id, level.id), [])
                co_marks[level.name] = calculate_cell_attainment(student.id, cell_mappings, bulk_data['marks'])
            marks[outcome.code] = co_marks

        results.append({
            'student_id': student.id,
            'roll_number': student.roll_number,
            'student_name': student.name,
            'marks': marks
        })

    return results


def calculate_attainment_by_co(student_id=None, bulk_data=None):
    """
    Per-CO summary across all Bloom levels.

    max_marks counts every mapping of the CO whether or not the student has
    marks; percentage is 0 when max_marks is 0.
    """
    if bulk_data is None:
        bulk_data = bulk_load_attainment_data(student_id)

    results = []
    for student in bulk_data['students']:
        co_marks = {}
        for outcome in bulk_data['course_outcomes']:
            co_mappings = bulk_data['mappings_by_co'].get(outcome.id, [])
            total_obtained = calculate_cell_attainment(student.id, co_mappings, bulk_data['marks'])
            total_max = sum(mapping_capacity(mapping) for mapping, _ in co_mappings)
            percentage = round(total_obtained / total_max * 100, 2) if total_max > 0 else 0.0

            co_marks[outcome.code] = {
                'co_id': outcome.id,
                'co_code': outcome.code,
                'co_description': outcome.description,
                'marks_obtained': total_obtained,
                'max_marks': total_max,
                'percentage': percentage
            }

        results.append({
            'student_id': student.id,
            'roll_number': student.roll_number,
            'student_name': student.name,
            'co_marks': co_marks
        })

    return results


def parse_marks_value(value, field='marks_obtained'):
    """Convert a request value to a finite, non-negative float or raise InvalidInput"""
    if value is None or isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a number, got {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise InvalidInput(f"{field} must be a finite number")
    if number < 0:
        raise InvalidInput(f"{field} must not be negative")
    return number


def parse_id(value, field):
    """Accept an int, a whole-number float or a string of digits; anything else is InvalidInput"""
    if value is None:
        raise InvalidInput(f"{field} is required")
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidInput(f"{field} must be an integer, got {value!r}")


def parse_code(value, field):
    """A non-empty string naming a CO or Bloom level"""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} is required and must be a string")
    return value.strip()


def json_object_body(message="Request body must be a JSON object"):
    """The request's JSON body; arrays, scalars and unparseable bodies raise InvalidInput"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput(message)
    return data


def redistribute_cell_marks(student_id, co_code, bloom_level, target_value):
    """
    Rewrite the raw marks behind one (student, CO, Bloom level) cell so the
    cell aggregates to target_value.

    Every contributing assessment receives the same ratio of its mapping
    capacity (max_marks * weight); its raw marks are recovered by inverting
    the normalization and clamped at 0. Clamped assessments are not
    renormalized, so the re-aggregated cell can then differ from the target.

    All upserts and the audit log row are committed together or not at all.

    Returns:
        Dictionary with the request echo and one {assessment_id,
        assessment_name, old_marks, new_marks} entry per contributing assessment.
    """
    student_id = parse_id(student_id, 'student_id')
    co_code = parse_code(co_code, 'co_code')
    bloom_level = parse_code(bloom_level, 'bloom_level')
    target = parse_marks_value(target_value)

    student = db.session.get(Student, student_id)
    if not student:
        raise NotFound(f"Student {student_id} not found")

    outcome = CourseOutcome.query.filter_by(code=co_code).first()
    if not outcome:
        raise NotFound(f"Course outcome '{co_code}' not found")

    level = BloomLevel.query.filter_by(name=bloom_level).first()
    if not level:
        raise NotFound(f"Bloom level '{bloom_level}' not found")

    contributing = (
        db.session.query(AssessmentCOMapping, Assessment)
        .join(Assessment, AssessmentCOMapping.assessment_id == Assessment.id)
        .filter(
            AssessmentCOMapping.co_id == outcome.id,
            AssessmentCOMapping.bloom_level_id == level.id
        )
        .order_by(Assessment.id)
        .all()
    )
    if not contributing:
        raise NotFound(f"No assessments found for {co_code} at Bloom level {bloom_level}")

    total_capacity = sum(mapping_capacity(mapping) for mapping, _ in contributing)
    if total_capacity <= 0:
        raise InvalidState(f"Cannot update: max marks is zero for {co_code} at Bloom level {bloom_level}")

    ratio = target / total_capacity

    current_marks = {
        mark.assessment_id: mark.marks_obtained
        for mark in StudentMark.query.filter(
            StudentMark.student_id == student.id,
            StudentMark.assessment_id.in_([assessment.id for _, assessment in contributing])
        ).all()
    }

    updates = []
    try:
        for mapping, assessment in contributing:
            capacity = mapping_capacity(mapping)
            current = current_marks.get(assessment.id, 0.0)

            if capacity <= 0:
                # This mapping cannot move the cell; leave its assessment untouched
                new_marks = current
            else:
                current_contribution = calculate_contribution(
                    current, assessment.max_marks, mapping.max_marks, mapping.weight
                )
                target_contribution = capacity * ratio
                adjustment = target_contribution - current_contribution
                new_marks = max(0.0, current + adjustment * assessment.max_marks / capacity)

            StudentMark.upsert(student.id, assessment.id, new_marks)
            updates.append({
                'assessment_id': assessment.id,
                'assessment_name': assessment.name,
                'old_marks': current,
                'new_marks': new_marks
            })

        log = Log(
            action="REDISTRIBUTE_CELL",
            description=f"Set {co_code}/{bloom_level} to {target} for student {student.roll_number} "
                        f"across {len(updates)} assessment(s)"
        )
        db.session.add(log)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logging.info(f"Redistributed {co_code}/{bloom_level}={target} for student {student.id}: {updates}")

    return {
        'student_id': student.id,
        'co_code': co_code,
        'bloom_level': bloom_level,
        'marks_obtained': target,
        'updates': updates
    }


def _student_filter_arg():
    """Optional ?student=<id> query parameter; invalid values raise InvalidInput"""
    raw = request.args.get('student')
    if raw is None or raw == '':
        return None
    return parse_id(raw, 'student')


@calculation_bp.app_errorhandler(AttainmentError)
def handle_attainment_error(e):
    logging.warning(f"Attainment request rejected ({e.status_code}): {e.message}")
    return jsonify({'success': False, 'error': e.message}), e.status_code


@calculation_bp.route('', methods=['GET'])
def get_attainment():
    """CO x Bloom attainment for every student, or one with ?student=<id>"""
    return jsonify(calculate_attainment(_student_filter_arg()))


@calculation_bp.route('/by-co', methods=['GET'])
def get_attainment_by_co():
    return jsonify(calculate_attainment_by_co(_student_filter_arg()))


@calculation_bp.route('/<int:student_id>', methods=['GET'])
def get_student_attainment(student_id):
    """CO x Bloom grid of a single student, keyed by CO code"""
    results = calculate_attainment(student_id)
    if not results:
        raise NotFound(f"Student {student_id} not found")
    return jsonify(results[0]['marks'])


@calculation_bp.route('/by-co/<int:student_id>', methods=['GET'])
def get_student_attainment_by_co(student_id):
    results = calculate_attainment_by_co(student_id)
    if not results:
        raise NotFound(f"Student {student_id} not found")
    return jsonify(results[0]['co_marks'])


@calculation_bp.route('', methods=['POST'])
def upsert_student_mark():
    """Create or overwrite the raw marks of a student on one assessment"""
    data = json_object_body()
    if not data:
        raise InvalidInput("No data provided")

    student_id = parse_id(data.get('student_id'), 'student_id')
    assessment_id = parse_id(data.get('assessment_id'), 'assessment_id')
    marks_obtained = parse_marks_value(data.get('marks_obtained'))

    student = db.session.get(Student, student_id)
    if not student:
        raise NotFound(f"Student {student_id} not found")
    assessment = db.session.get(Assessment, assessment_id)
    if not assessment:
        raise NotFound(f"Assessment {assessment_id} not found")

    try:
        StudentMark.upsert(student.id, assessment.id, marks_obtained)
        log = Log(
            action="UPDATE_MARKS",
            description=f"Set marks {marks_obtained} for student {student.roll_number} on {assessment.name}"
        )
        db.session.add(log)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error saving marks: student {student_id}, assessment {assessment_id}, Error: {str(e)}\n{traceback.format_exc()}")
        raise

    mark = StudentMark.query.filter_by(student_id=student.id, assessment_id=assessment.id).first()
    return jsonify(mark.to_dict()), 201


@calculation_bp.route('/by-co-bloom', methods=['PUT'])
@calculation_bp.route('/cell', methods=['PUT'])
def update_cell_marks():
    """Set one aggregated CO x Bloom cell and redistribute it to raw marks"""
    data = json_object_body()
    if not data:
        raise InvalidInput("Missing required fields: student_id, co_code, bloom_level, marks_obtained")

    logging.debug(f"Received request to update CO/Bloom cell: {data}")

    result = redistribute_cell_marks(
        data.get('student_id'),
        data.get('co_code'),
        data.get('bloom_level'),
        data.get('marks_obtained')
    )
    result['success'] = True
    result['message'] = 'Marks updated successfully'
    return jsonify(result)
