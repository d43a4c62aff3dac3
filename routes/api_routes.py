from flask import Blueprint, jsonify, request
from models import db, AssessmentCOMapping, BloomLevel, Log
from routes.calculation_routes import NotFound, parse_id
import logging
from decimal import Decimal, InvalidOperation
import traceback
from datetime import datetime
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

api_bp = Blueprint('api', __name__, url_prefix='/api')

@api_bp.route('/health', methods=['GET'])
def health():
    """Report service status and whether the database answers"""
    try:
        db.session.execute(text("SELECT 1"))
        return jsonify({
            'message': 'Server is running',
            'database': 'Connected',
            'timestamp': datetime.now().isoformat()
        })
    except SQLAlchemyError as e:
        db.session.rollback()
        logging.error(f"Database connection error: {str(e)}")
        return jsonify({
            'message': 'Server is running',
            'database': 'Not connected',
            'error': str(e)
        })

@api_bp.route('/bloom-levels', methods=['GET'])
def list_bloom_levels():
    levels = BloomLevel.query.order_by(BloomLevel.level_order).all()
    return jsonify([level.to_dict() for level in levels])

@api_bp.route('/bloom-levels/<int:level_id>', methods=['GET'])
def get_bloom_level(level_id):
    level = db.session.get(BloomLevel, level_id)
    if not level:
        raise NotFound('Bloom level not found')
    return jsonify(level.to_dict())

@api_bp.route('/update-mapping-weight', methods=['POST'])
def update_mapping_weight():
    """API endpoint for updating the weight of a single assessment-CO mapping"""
    data = request.get_json(silent=True)
    logging.debug(f"Received request to update mapping weight: {data}") # Log request data

    if not isinstance(data, dict) or 'mapping_id' not in data or 'weight' not in data:
        logging.warning("Missing required data for weight update")
        return jsonify({'success': False, 'message': 'Missing required data'}), 400

    mapping_id = parse_id(data['mapping_id'], 'mapping_id')
    weight_str = str(data['weight']) # Ensure it's a string for Decimal conversion

    try:
        # Validate and convert weight
        weight_value = Decimal(weight_str)
        if not weight_value.is_finite():
            raise InvalidOperation(weight_str)
        if weight_value < Decimal('0.01'):
            weight_value = Decimal('0.01')
        elif weight_value > Decimal('9.99'):
            weight_value = Decimal('9.99')
        else:
            # Round to 2 decimal places
            weight_value = weight_value.quantize(Decimal('0.01'))

        mapping = db.session.get(AssessmentCOMapping, mapping_id)
        if not mapping:
            logging.warning(f"Attempted to update weight for non-existent mapping: {mapping_id}")
            return jsonify({'success': False, 'message': 'Mapping does not exist'}), 404

        mapping.weight = float(weight_value)

        log = Log(
            action="UPDATE_MAPPING_WEIGHT",
            description=f"Updated weight of mapping {mapping_id} to {weight_value}"
        )
        db.session.add(log)
        db.session.commit()
        logging.info(f"Updated weight for mapping {mapping_id} to {weight_value}")

        return jsonify({
            'success': True,
            'message': 'Weight updated successfully',
            'new_weight': float(weight_value) # Return updated weight for UI
        })

    except InvalidOperation:
        logging.warning(f"Invalid weight format received: {weight_str}")
        return jsonify({'success': False, 'message': 'Invalid weight format'}), 400
    except SQLAlchemyError as e:
        db.session.rollback()
        logging.error(f"Error updating mapping weight: mapping {mapping_id}, Weight:{weight_str}, Error: {str(e)}\n{traceback.format_exc()}")
        return jsonify({'success': False, 'message': f'Server error: {str(e)}'}), 500
