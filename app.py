import os
import logging
import traceback
import argparse
from flask import Flask, jsonify
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

# Import db from models
from models import db
# Import database migration function
from db_migrations import check_and_update_database

# Configure logging level from environment variable
def configure_logging():
    """Configure logging based on environment settings"""
    log_level = os.environ.get('LOG_LEVEL', 'WARNING').upper()

    # Map string levels to logging constants
    level_mapping = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }

    actual_level = level_mapping.get(log_level, logging.WARNING)

    # Setup logging
    logging.basicConfig(
        filename=os.environ.get('LOG_FILE', 'app.log'),
        level=actual_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    return actual_level

def create_app(test_config=None):
    app = Flask(__name__)

    # Get the absolute path to the current directory
    base_dir = os.path.abspath(os.path.dirname(__file__))

    # Configuration
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev_key_for_local_use')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get(
        'DATABASE_URL',
        f'sqlite:///{os.path.join(base_dir, "instance", "attainment_data.db")}'
    )
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    # Attainment responses rely on CO / Bloom insertion order
    app.json.sort_keys = False

    if test_config:
        app.config.update(test_config)

    # Ensure instance folder exists for the default SQLite database
    os.makedirs(os.path.join(base_dir, 'instance'), exist_ok=True)

    # Configure logging
    log_level = configure_logging()

    # Log the current configuration
    if log_level <= logging.INFO:
        logging.info(f"Application started with log level: {logging.getLevelName(log_level)}")

    # Initialize extensions with app
    db.init_app(app)
    Migrate(app, db)

    # Register blueprints
    from routes.calculation_routes import calculation_bp
    from routes.student_routes import student_bp
    from routes.assessment_routes import assessment_bp
    from routes.outcome_routes import outcome_bp
    from routes.api_routes import api_bp
    from routes.utility_routes import utility_bp

    app.register_blueprint(calculation_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(assessment_bp)
    app.register_blueprint(outcome_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(utility_bp)

    # Create tables if they don't exist
    with app.app_context():
        db.create_all()
        # Run database migrations to update schema for existing installations
        check_and_update_database(app)
        # Initialize reference data if it doesn't exist
        initialize_bloom_levels()
        initialize_program_outcomes()

    # Error handlers
    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({'success': False, 'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(Exception)
    def handle_uncaught_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({'success': False, 'error': e.description}), e.code

        # Get detailed error information
        error_traceback = traceback.format_exc()
        error_message = str(e)

        db.session.rollback()
        # Log the error
        logging.error(f"Uncaught exception: {error_message}\n{error_traceback}")

        return jsonify({'success': False, 'error': error_message}), 500

    return app

def initialize_bloom_levels():
    """Initialize the canonical Bloom taxonomy levels if they don't exist"""
    from models import BloomLevel

    default_levels = [
        {"name": "Remember", "level_order": 1, "description": "Recall facts and basic concepts"},
        {"name": "Understand", "level_order": 2, "description": "Explain ideas or concepts"},
        {"name": "Apply", "level_order": 3, "description": "Use information in new situations"},
        {"name": "Analyze", "level_order": 4, "description": "Draw connections among ideas"},
        {"name": "Evaluate", "level_order": 5, "description": "Justify a stand or decision"},
        {"name": "Create", "level_order": 6, "description": "Produce new or original work"}
    ]

    if BloomLevel.query.count() == 0:
        for level in default_levels:
            db.session.add(BloomLevel(**level))

        db.session.commit()
        logging.info("Initialized default Bloom levels")

def initialize_program_outcomes():
    """Initialize default program outcomes if they don't exist"""
    from models import ProgramOutcome

    default_outcomes = [
        {"code": "PO1", "description": "Engineering knowledge"},
        {"code": "PO2", "description": "Problem analysis"},
        {"code": "PO3", "description": "Design/development of solutions"},
        {"code": "PO4", "description": "Conduct investigations of complex problems"},
        {"code": "PO5", "description": "Modern tool usage"},
        {"code": "PO6", "description": "The engineer and society"},
        {"code": "PO7", "description": "Environment and sustainability"},
        {"code": "PO8", "description": "Ethics"},
        {"code": "PO9", "description": "Individual and team work"},
        {"code": "PO10", "description": "Communication"},
        {"code": "PO11", "description": "Project management and finance"},
        {"code": "PO12", "description": "Life-long learning"}
    ]

    # Check if program outcomes already exist
    existing_count = ProgramOutcome.query.count()

    if existing_count == 0:
        # Add the default outcomes
        for outcome in default_outcomes:
            program_outcome = ProgramOutcome(
                code=outcome["code"],
                description=outcome["description"]
            )
            db.session.add(program_outcome)

        db.session.commit()
        logging.info("Initialized default program outcomes")

if __name__ == '__main__':
    # Parse command line arguments
    parser = argparse.ArgumentParser(description='Outcome Attainment Engine')
    parser.add_argument('port', nargs='?', type=int, default=5000, help='Port to run the application on')
    args = parser.parse_args()

    app = create_app()
    port = args.port

    print("=" * 70)
    print(f"Server started! API available at: http://localhost:{port}/api")
    print("=" * 70)

    # Run the application
    app.run(debug=True, port=port, host="0.0.0.0")  # Allow external connections
