from flask import Blueprint, jsonify, request
from models import db, CourseOutcome, ProgramOutcome, COPOMapping, Log
from routes.calculation_routes import InvalidInput, NotFound, json_object_body, parse_id
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

outcome_bp = Blueprint('outcome', __name__, url_prefix='/api')

CORRELATION_LABELS = {1: 'Low', 2: 'Medium', 3: 'High'}

@outcome_bp.route('/course-outcomes', methods=['GET'])
def list_course_outcomes():
    outcomes = CourseOutcome.query.order_by(CourseOutcome.code).all()
    return jsonify([outcome.to_dict() for outcome in outcomes])

@outcome_bp.route('/course-outcomes/<int:outcome_id>', methods=['GET'])
def get_course_outcome(outcome_id):
    outcome = db.session.get(CourseOutcome, outcome_id)
    if not outcome:
        raise NotFound('Course outcome not found')
    return jsonify(outcome.to_dict())

@outcome_bp.route('/course-outcomes', methods=['POST'])
def add_course_outcome():
    """Add a new course outcome"""
    data = json_object_body()
    code = str(data.get('code') or '').strip()
    description = str(data.get('description') or '').strip()

    # Basic validation
    if not code or not description:
        raise InvalidInput('Code and description are required')

    if CourseOutcome.query.filter_by(code=code).first():
        return jsonify({'success': False, 'error': f'A course outcome with code {code} already exists'}), 409

    try:
        outcome = CourseOutcome(code=code, description=description)
        db.session.add(outcome)

        # Log action
        log = Log(action="ADD_COURSE_OUTCOME", description=f"Added course outcome {code}")
        db.session.add(log)

        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'success': False, 'error': f'A course outcome with code {code} already exists'}), 409

    return jsonify(outcome.to_dict()), 201

@outcome_bp.route('/program-outcomes', methods=['GET'])
def list_program_outcomes():
    outcomes = ProgramOutcome.query.order_by(ProgramOutcome.id).all()
    return jsonify([outcome.to_dict() for outcome in outcomes])

@outcome_bp.route('/program-outcomes/<int:outcome_id>', methods=['GET'])
def get_program_outcome(outcome_id):
    outcome = db.session.get(ProgramOutcome, outcome_id)
    if not outcome:
        raise NotFound('Program outcome not found')
    return jsonify(outcome.to_dict())

def co_po_mapping_rows(co_id=None):
    """CO-PO correlations joined with both outcomes, ordered by CO code then PO code"""
    query = (
        db.session.query(COPOMapping, CourseOutcome, ProgramOutcome)
        .join(CourseOutcome, COPOMapping.co_id == CourseOutcome.id)
        .join(ProgramOutcome, COPOMapping.po_id == ProgramOutcome.id)
    )
    if co_id is not None:
        query = query.filter(COPOMapping.co_id == co_id)

    rows = []
    for mapping, co, po in query.order_by(CourseOutcome.code, ProgramOutcome.code).all():
        rows.append({
            'id': mapping.id,
            'co_id': co.id,
            'co_code': co.code,
            'co_description': co.description,
            'po_id': po.id,
            'po_code': po.code,
            'po_description': po.description,
            'correlation_value': mapping.correlation_value
        })
    return rows

def _fetch_or_empty(label, fetch):
    """Run one independent fetch; a failing source degrades to an empty list"""
    try:
        return fetch() or []
    except SQLAlchemyError as e:
        db.session.rollback()
        logging.warning(f"Error fetching {label}: {str(e)}")
        return []

def build_co_po_matrix():
    """
    Build the CO x PO correlation grid.

    Course outcomes, program outcomes and correlations are fetched
    independently; whichever source fails is replaced by an empty list so the
    rest of the grid is still returned. Every CO row carries every PO column,
    with correlation_value None where no correlation is stored.
    """
    course_outcomes = _fetch_or_empty(
        'course outcomes',
        lambda: [co.to_dict() for co in CourseOutcome.query.order_by(CourseOutcome.code).all()]
    )
    program_outcomes = _fetch_or_empty(
        'program outcomes',
        lambda: [po.to_dict() for po in ProgramOutcome.query.order_by(ProgramOutcome.code).all()]
    )
    mappings = _fetch_or_empty('CO-PO mappings', co_po_mapping_rows)

    correlations = {(m['co_id'], m['po_id']): m['correlation_value'] for m in mappings}

    matrix = []
    for co in course_outcomes:
        row = {
            'co_id': co['id'],
            'co_code': co['code'],
            'co_description': co['description'],
            'po_mappings': {}
        }
        for po in program_outcomes:
            row['po_mappings'][po['code']] = {
                'po_id': po['id'],
                'po_code': po['code'],
                'po_description': po['description'],
                'correlation_value': correlations.get((co['id'], po['id']))
            }
        matrix.append(row)

    return {
        'course_outcomes': course_outcomes,
        'program_outcomes': program_outcomes,
        'matrix': matrix
    }

@outcome_bp.route('/co-po-mapping', methods=['GET'])
def list_co_po_mappings():
    return jsonify(co_po_mapping_rows())

@outcome_bp.route('/co-po-mapping/matrix', methods=['GET'])
def get_co_po_matrix():
    return jsonify(build_co_po_matrix())

@outcome_bp.route('/co-po-mapping/by-co/<int:co_id>', methods=['GET'])
def get_co_po_mappings_for_co(co_id):
    return jsonify(co_po_mapping_rows(co_id))

@outcome_bp.route('/co-po-mapping', methods=['POST'])
def set_co_po_mapping():
    """Create or update the correlation of a CO towards a PO (1=Low, 2=Medium, 3=High)"""
    data = json_object_body()
    co_id = parse_id(data.get('co_id'), 'co_id')
    po_id = parse_id(data.get('po_id'), 'po_id')

    value = data.get('correlation_value')
    if isinstance(value, bool) or not isinstance(value, int) or value not in CORRELATION_LABELS:
        raise InvalidInput('correlation_value must be 1, 2 or 3')

    co = db.session.get(CourseOutcome, co_id)
    if not co:
        raise NotFound(f'Course outcome {co_id} not found')
    po = db.session.get(ProgramOutcome, po_id)
    if not po:
        raise NotFound(f'Program outcome {po_id} not found')

    mapping = COPOMapping.query.filter_by(co_id=co_id, po_id=po_id).first()
    status = 200
    if mapping:
        mapping.correlation_value = value
    else:
        mapping = COPOMapping(co_id=co_id, po_id=po_id, correlation_value=value)
        db.session.add(mapping)
        status = 201

    log = Log(
        action="SET_CO_PO_MAPPING",
        description=f"Set {co.code} -> {po.code} correlation to {value} ({CORRELATION_LABELS[value]})"
    )
    db.session.add(log)
    db.session.commit()

    return jsonify({
        'id': mapping.id,
        'co_id': co_id,
        'po_id': po_id,
        'correlation_value': value
    }), status
