import logging
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

# Columns introduced after the first release: (table, column, DDL fragment)
LATE_COLUMNS = [
    ('assessment_co_mapping', 'weight', 'weight FLOAT NOT NULL DEFAULT 1.0'),
    ('student_mark', 'updated_at', 'updated_at DATETIME'),
    ('student', 'email', 'email VARCHAR(120)'),
]

def _add_missing_column(engine, inspector, table_name, column_name, ddl):
    """Add one column if the table exists and lacks it. Returns True when altered."""
    if table_name not in inspector.get_table_names():
        logging.warning(f"{table_name} table not found. It will be created when the app runs.")
        return False

    columns = [c['name'] for c in inspector.get_columns(table_name)]
    if column_name in columns:
        logging.info(f"{column_name} column already exists in {table_name} table")
        return False

    logging.info(f"Adding {column_name} column to {table_name} table")
    with engine.begin() as connection:
        connection.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {ddl}"))
        if column_name == 'updated_at':
            # Existing rows get a timestamp so ordering by recency stays meaningful
            connection.execute(text(
                f"UPDATE {table_name} SET updated_at = CURRENT_TIMESTAMP WHERE updated_at IS NULL"
            ))
    logging.info(f"Successfully added {column_name} column to {table_name} table")
    return True

def check_and_update_database(app):
    """
    Check and update the database schema if necessary.
    This function runs at app startup to handle migrations for new columns.
    Returns the list of "table.column" entries that were added.
    """
    logging.info("Checking database schema for required columns...")
    added = []

    try:
        with app.app_context():
            engine = app.extensions['sqlalchemy'].engine
            inspector = inspect(engine)

            for table_name, column_name, ddl in LATE_COLUMNS:
                if _add_missing_column(engine, inspector, table_name, column_name, ddl):
                    added.append(f"{table_name}.{column_name}")

        if added:
            logging.info(f"Database schema updated: {', '.join(added)}")
        else:
            logging.info("Database schema is up to date")
    except SQLAlchemyError as e:
        logging.error(f"Error checking database schema: {str(e)}")
        raise

    return added
