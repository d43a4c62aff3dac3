from flask import Blueprint, jsonify, request
from models import db, Student, StudentMark, Log
from routes.calculation_routes import InvalidInput, NotFound, json_object_body
from sqlalchemy.exc import IntegrityError
import logging

student_bp = Blueprint('student', __name__, url_prefix='/api/students')

@student_bp.route('', methods=['GET'])
def list_students():
    students = Student.query.order_by(Student.roll_number).all()
    return jsonify([student.to_dict() for student in students])

@student_bp.route('/<int:student_id>', methods=['GET'])
def get_student(student_id):
    student = db.session.get(Student, student_id)
    if not student:
        raise NotFound('Student not found')
    return jsonify(student.to_dict())

@student_bp.route('/<int:student_id>/raw-marks', methods=['GET'])
def get_student_raw_marks(student_id):
    """Raw per-assessment marks of a student, as stored before any aggregation"""
    student = db.session.get(Student, student_id)
    if not student:
        raise NotFound('Student not found')
    marks = StudentMark.query.filter_by(student_id=student_id).order_by(StudentMark.assessment_id).all()
    return jsonify([mark.to_dict() for mark in marks])

@student_bp.route('', methods=['POST'])
def add_student():
    """Add a new student"""
    data = json_object_body()
    roll_number = str(data.get('roll_number') or '').strip()
    name = str(data.get('name') or '').strip()
    email = data.get('email')

    # Basic validation
    if not roll_number or not name:
        raise InvalidInput('Roll number and name are required')

    # Check if roll number already exists
    if Student.query.filter_by(roll_number=roll_number).first():
        return jsonify({'success': False, 'error': f'Student with roll number {roll_number} already exists'}), 409

    new_student = Student(roll_number=roll_number, name=name, email=email)

    # Log action
    log = Log(action="ADD_STUDENT", description=f"Added student {roll_number}")
    db.session.add(log)
    db.session.add(new_student)

    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logging.error(f"Error adding student: {str(e)}")
        return jsonify({'success': False, 'error': f'Student with roll number {roll_number} already exists'}), 409

    return jsonify(new_student.to_dict()), 201
