from flask import Blueprint, jsonify, make_response, stream_with_context
from models import db, Log
from routes.calculation_routes import calculate_attainment, calculate_attainment_by_co
from routes.outcome_routes import build_co_po_matrix
from db_integrity_check import collect_integrity_report
from datetime import datetime
import logging
import traceback
import csv
import io
import urllib.parse
from sqlalchemy.exc import SQLAlchemyError

utility_bp = Blueprint('utility', __name__, url_prefix='/utility')

def _csv_line(writer, buffer, row):
    """Encode one row through the shared writer and reset the buffer"""
    writer.writerow(row)
    chunk = buffer.getvalue().encode('utf-8')
    buffer.seek(0)
    buffer.truncate(0)
    return chunk

def export_to_excel_csv(rows, filename, headers):
    """
    Stream rows as a semicolon-separated CSV that Excel opens directly.

    The body starts with a UTF-8 BOM and a `sep=;` hint, then the header row,
    then one line per row. The attachment name carries a timestamp and is
    sent both as ASCII and RFC 5987 encoded.
    """
    full_filename = f"{filename}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"

    def generate_csv():
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=';')
        yield b'\xef\xbb\xbf'
        yield b'sep=;\n'
        yield _csv_line(writer, buffer, headers)
        for row in rows:
            yield _csv_line(writer, buffer, row)

    try:
        db.session.add(Log(action="EXPORT_DATA_STREAM",
                           description=f"Exported {len(rows)} rows to {full_filename}"))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logging.error(f"Error logging CSV export {full_filename}: {str(e)}\n{traceback.format_exc()}")
        return jsonify({'success': False, 'error': f'An error occurred while exporting data: {str(e)}'}), 500

    response = make_response(stream_with_context(generate_csv()))
    ascii_filename = full_filename.encode('ascii', 'replace').decode()
    response.headers["Content-Disposition"] = (
        f"attachment; filename=\"{ascii_filename}\"; filename*=UTF-8''{urllib.parse.quote(full_filename)}"
    )
    response.headers["Content-type"] = "text/csv; charset=UTF-8"
    return response

@utility_bp.route('/export/attainment')
def export_attainment():
    """One CSV row per student x CO x Bloom level cell"""
    rows = []
    for student in calculate_attainment():
        for co_code, levels in student['marks'].items():
            for bloom_level, value in levels.items():
                rows.append([student['roll_number'], student['student_name'], co_code, bloom_level, round(value, 2)])

    headers = ['Roll Number', 'Student Name', 'CO', 'Bloom Level', 'Attainment']
    return export_to_excel_csv(rows, 'co_bloom_attainment', headers=headers)

@utility_bp.route('/export/attainment-by-co')
def export_attainment_by_co():
    rows = []
    for student in calculate_attainment_by_co():
        for co_code, summary in student['co_marks'].items():
            rows.append([
                student['roll_number'],
                student['student_name'],
                co_code,
                round(summary['marks_obtained'], 2),
                round(summary['max_marks'], 2),
                summary['percentage']
            ])

    headers = ['Roll Number', 'Student Name', 'CO', 'Marks Obtained', 'Max Marks', 'Percentage']
    return export_to_excel_csv(rows, 'co_attainment_summary', headers=headers)

@utility_bp.route('/export/co-po-matrix')
def export_co_po_matrix():
    """CO rows x PO columns; cells without a correlation stay empty"""
    matrix = build_co_po_matrix()
    po_codes = [po['code'] for po in matrix['program_outcomes']]

    rows = []
    for row in matrix['matrix']:
        values = [row['po_mappings'][code]['correlation_value'] for code in po_codes]
        rows.append([row['co_code']] + ['' if value is None else value for value in values])

    return export_to_excel_csv(rows, 'co_po_matrix', headers=['CO'] + po_codes)

@utility_bp.route('/integrity')
def integrity_report():
    """Data-quality report of marks and mappings (read-only)"""
    return jsonify(collect_integrity_report(db.session))
