from flask import Blueprint, jsonify, request
from models import db, Assessment, AssessmentCOMapping, CourseOutcome, BloomLevel, Log
from routes.calculation_routes import InvalidInput, NotFound, json_object_body, parse_id, parse_marks_value
from datetime import datetime
from sqlalchemy.exc import IntegrityError
import logging

assessment_bp = Blueprint('assessment', __name__, url_prefix='/api/assessments')

@assessment_bp.route('', methods=['GET'])
def list_assessments():
    # Undated assessments sort last
    assessments = Assessment.query.order_by(
        Assessment.assessment_date.is_(None),
        Assessment.assessment_date.desc(),
        Assessment.id
    ).all()
    return jsonify([assessment.to_dict() for assessment in assessments])

@assessment_bp.route('/<int:assessment_id>', methods=['GET'])
def get_assessment(assessment_id):
    assessment = db.session.get(Assessment, assessment_id)
    if not assessment:
        raise NotFound('Assessment not found')
    return jsonify(assessment.to_dict())

@assessment_bp.route('', methods=['POST'])
def add_assessment():
    """Add a new assessment"""
    data = json_object_body()
    name = str(data.get('name') or '').strip()
    assessment_type = str(data.get('assessment_type') or 'Exam').strip()
    date_str = data.get('date')

    # Basic validation
    if not name:
        raise InvalidInput('Name is required')

    max_marks = parse_marks_value(data.get('max_marks'), 'max_marks')
    if max_marks <= 0:
        raise InvalidInput('max_marks must be positive')

    # Handle assessment date if provided
    assessment_date = None
    if date_str:
        try:
            assessment_date = datetime.strptime(str(date_str), '%Y-%m-%d').date()
        except ValueError:
            raise InvalidInput('Invalid date format. Please use YYYY-MM-DD')

    if Assessment.query.filter_by(name=name).first():
        return jsonify({'success': False, 'error': f'Assessment {name} already exists'}), 409

    new_assessment = Assessment(
        name=name,
        assessment_type=assessment_type,
        assessment_date=assessment_date,
        max_marks=max_marks
    )
    db.session.add(new_assessment)

    # Log action
    log = Log(action="ADD_ASSESSMENT", description=f"Added assessment {name} ({max_marks} marks)")
    db.session.add(log)

    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logging.error(f"Error adding assessment: {str(e)}")
        return jsonify({'success': False, 'error': f'Assessment {name} already exists'}), 409

    return jsonify(new_assessment.to_dict()), 201

@assessment_bp.route('/<int:assessment_id>/mappings', methods=['GET'])
def list_assessment_mappings(assessment_id):
    """CO x Bloom mappings of one assessment with their codes resolved"""
    assessment = db.session.get(Assessment, assessment_id)
    if not assessment:
        raise NotFound('Assessment not found')

    rows = (
        db.session.query(AssessmentCOMapping, CourseOutcome, BloomLevel)
        .join(CourseOutcome, AssessmentCOMapping.co_id == CourseOutcome.id)
        .join(BloomLevel, AssessmentCOMapping.bloom_level_id == BloomLevel.id)
        .filter(AssessmentCOMapping.assessment_id == assessment_id)
        .order_by(CourseOutcome.code, BloomLevel.level_order)
        .all()
    )

    result = []
    for mapping, outcome, level in rows:
        entry = mapping.to_dict()
        entry['co_code'] = outcome.code
        entry['bloom_level'] = level.name
        result.append(entry)
    return jsonify(result)

@assessment_bp.route('/mappings', methods=['POST'])
def set_assessment_mapping():
    """
    Create or update the mapping of an assessment to a CO x Bloom level cell.
    At most one mapping exists per (assessment, CO, Bloom level).
    """
    data = json_object_body()
    assessment_id = parse_id(data.get('assessment_id'), 'assessment_id')
    co_id = parse_id(data.get('co_id'), 'co_id')
    bloom_level_id = parse_id(data.get('bloom_level_id'), 'bloom_level_id')
    max_marks = parse_marks_value(data.get('max_marks'), 'max_marks')
    weight = data.get('weight')
    weight = 1.0 if weight is None else parse_marks_value(weight, 'weight')

    assessment = db.session.get(Assessment, assessment_id)
    if not assessment:
        raise NotFound(f'Assessment {assessment_id} not found')
    outcome = db.session.get(CourseOutcome, co_id)
    if not outcome:
        raise NotFound(f'Course outcome {co_id} not found')
    level = db.session.get(BloomLevel, bloom_level_id)
    if not level:
        raise NotFound(f'Bloom level {bloom_level_id} not found')

    mapping = AssessmentCOMapping.query.filter_by(
        assessment_id=assessment_id, co_id=co_id, bloom_level_id=bloom_level_id
    ).first()
    status = 200
    if mapping:
        mapping.max_marks = max_marks
        mapping.weight = weight
    else:
        mapping = AssessmentCOMapping(
            assessment_id=assessment_id,
            co_id=co_id,
            bloom_level_id=bloom_level_id,
            max_marks=max_marks,
            weight=weight
        )
        db.session.add(mapping)
        status = 201

    log = Log(
        action="SET_ASSESSMENT_MAPPING",
        description=f"Mapped {max_marks} marks (weight {weight}) of {assessment.name} to {outcome.code}/{level.name}"
    )
    db.session.add(log)
    db.session.commit()

    return jsonify(mapping.to_dict()), status
