"""
HTTP-level tests for the attainment endpoints and the supporting CRUD/utility routes.
"""
import pytest

from conftest import marks_of
from models import db, AssessmentCOMapping, Log, StudentMark

BLOOM_ORDER = ['Remember', 'Understand', 'Apply', 'Analyze', 'Evaluate', 'Create']


# --- Attainment views ---

def test_list_attainment(client, seed):
    response = client.get('/api/student-marks')
    assert response.status_code == 200

    data = response.get_json()
    assert [row['roll_number'] for row in data] == ['STU001', 'STU002']
    assert list(data[0]['marks'].keys()) == ['CO1', 'CO2']
    assert list(data[0]['marks']['CO1'].keys()) == BLOOM_ORDER
    assert data[0]['marks']['CO1']['Apply'] == pytest.approx(24.0)


def test_list_attainment_filtered_by_student(client, seed):
    bob = seed['students']['bob']
    data = client.get(f'/api/student-marks?student={bob.id}').get_json()
    assert len(data) == 1
    assert data[0]['student_name'] == 'Bob Jones'


def test_invalid_student_filter(client, seed):
    response = client.get('/api/student-marks?student=abc')
    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_student_attainment(client, seed):
    alice = seed['students']['alice']
    data = client.get(f'/api/student-marks/{alice.id}').get_json()
    assert data['CO2']['Understand'] == pytest.approx(7.5)


def test_student_attainment_unknown_student(client, seed):
    response = client.get('/api/student-marks/9999')
    assert response.status_code == 404

    response = client.get('/api/student-marks/by-co/9999')
    assert response.status_code == 404


def test_attainment_by_co(client, seed):
    alice = seed['students']['alice']
    data = client.get(f'/api/student-marks/by-co/{alice.id}').get_json()
    assert data['CO1']['percentage'] == 78.75
    assert data['CO2']['max_marks'] == pytest.approx(10.0)

    everyone = client.get('/api/student-marks/by-co').get_json()
    assert everyone[1]['co_marks']['CO2']['percentage'] == 0.0


# --- Raw marks ---

def test_upsert_raw_marks(client, seed):
    bob = seed['students']['bob']
    quiz = seed['assessments']['quiz']

    response = client.post('/api/student-marks', json={
        'student_id': bob.id, 'assessment_id': quiz.id, 'marks_obtained': 12
    })
    assert response.status_code == 201
    assert response.get_json()['marks_obtained'] == 12.0

    response = client.post('/api/student-marks', json={
        'student_id': bob.id, 'assessment_id': quiz.id, 'marks_obtained': 18.5
    })
    assert response.status_code == 201

    assert StudentMark.query.filter_by(student_id=bob.id, assessment_id=quiz.id).count() == 1
    assert marks_of(bob, quiz) == pytest.approx(18.5)
    assert Log.query.filter_by(action='UPDATE_MARKS').count() == 2


@pytest.mark.parametrize('payload, status', [
    ({'assessment_id': 1, 'marks_obtained': 5}, 400),
    ({'student_id': 1, 'assessment_id': 1, 'marks_obtained': -5}, 400),
    ({'student_id': 1, 'assessment_id': 1, 'marks_obtained': 'lots'}, 400),
    ({'student_id': 9999, 'assessment_id': 1, 'marks_obtained': 5}, 404),
    ({'student_id': 1, 'assessment_id': 9999, 'marks_obtained': 5}, 404),
])
def test_upsert_raw_marks_rejects_bad_input(client, seed, payload, status):
    response = client.post('/api/student-marks', json=payload)
    assert response.status_code == status
    assert response.get_json()['success'] is False


def test_raw_marks_of_student(client, seed):
    alice = seed['students']['alice']
    data = client.get(f'/api/students/{alice.id}/raw-marks').get_json()
    assert [row['marks_obtained'] for row in data] == [80.0, 15.0]


# --- Cell update ---

@pytest.mark.parametrize('path', ['/api/student-marks/by-co-bloom', '/api/student-marks/cell'])
def test_update_cell(client, seed, path):
    alice = seed['students']['alice']
    response = client.put(path, json={
        'student_id': alice.id, 'co_code': 'CO1', 'bloom_level': 'Apply', 'marks_obtained': 15
    })

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['updates'][0]['new_marks'] == pytest.approx(50.0)

    grid = client.get(f'/api/student-marks/{alice.id}').get_json()
    assert grid['CO1']['Apply'] == pytest.approx(15.0)


def test_update_cell_error_statuses(client, seed):
    alice = seed['students']['alice']
    base = {'student_id': alice.id, 'co_code': 'CO1', 'bloom_level': 'Apply', 'marks_obtained': 15}

    assert client.put('/api/student-marks/cell', json={**base, 'co_code': 'CO9'}).status_code == 404
    assert client.put('/api/student-marks/cell', json={**base, 'bloom_level': 'Apply', 'co_code': 'CO2'}).status_code == 404
    assert client.put('/api/student-marks/cell', json={**base, 'marks_obtained': -1}).status_code == 400
    assert client.put('/api/student-marks/cell', json={**base, 'marks_obtained': None}).status_code == 400
    assert client.put('/api/student-marks/cell', json={}).status_code == 400

    assert marks_of(alice, seed['assessments']['midterm']) == pytest.approx(80.0)


def test_update_cell_zero_capacity(client, seed):
    mapping = seed['mappings']['midterm_co1_apply']
    mapping.weight = 0.0
    db.session.commit()

    alice = seed['students']['alice']
    response = client.put('/api/student-marks/cell', json={
        'student_id': alice.id, 'co_code': 'CO1', 'bloom_level': 'Apply', 'marks_obtained': 15
    })
    assert response.status_code == 400
    assert 'max marks is zero' in response.get_json()['error']


# --- Reference data ---

def test_students_crud(client, app):
    response = client.post('/api/students', json={'roll_number': 'STU010', 'name': 'Cara Diaz'})
    assert response.status_code == 201
    student_id = response.get_json()['id']

    assert client.post('/api/students', json={'roll_number': 'STU010', 'name': 'Again'}).status_code == 409
    assert client.post('/api/students', json={'name': 'No Roll'}).status_code == 400
    assert client.get(f'/api/students/{student_id}').get_json()['name'] == 'Cara Diaz'
    assert client.get('/api/students/9999').status_code == 404


def test_assessments_and_mappings(client, app):
    response = client.post('/api/assessments', json={'name': 'Final', 'max_marks': 100, 'date': '2025-06-01'})
    assert response.status_code == 201
    assessment = response.get_json()
    assert assessment['date'] == '2025-06-01'

    assert client.post('/api/assessments', json={'name': 'Final', 'max_marks': 100}).status_code == 409
    assert client.post('/api/assessments', json={'name': 'Zero', 'max_marks': 0}).status_code == 400
    assert client.post('/api/assessments', json={'name': 'Bad date', 'max_marks': 10, 'date': '01/06/2025'}).status_code == 400

    co = client.post('/api/course-outcomes', json={'code': 'CO1', 'description': 'Model systems'}).get_json()
    levels = client.get('/api/bloom-levels').get_json()
    assert [level['name'] for level in levels] == BLOOM_ORDER

    payload = {'assessment_id': assessment['id'], 'co_id': co['id'], 'bloom_level_id': levels[2]['id'], 'max_marks': 40}
    created = client.post('/api/assessments/mappings', json=payload)
    assert created.status_code == 201
    assert created.get_json()['weight'] == 1.0

    updated = client.post('/api/assessments/mappings', json={**payload, 'max_marks': 60, 'weight': 0.5})
    assert updated.status_code == 200

    mappings = client.get(f"/api/assessments/{assessment['id']}/mappings").get_json()
    assert len(mappings) == 1
    assert mappings[0]['co_code'] == 'CO1'
    assert mappings[0]['bloom_level'] == 'Apply'
    assert mappings[0]['max_marks'] == 60.0


def test_course_outcome_duplicate(client, app):
    assert client.post('/api/course-outcomes', json={'code': 'CO1', 'description': 'First'}).status_code == 201
    assert client.post('/api/course-outcomes', json={'code': 'CO1', 'description': 'Second'}).status_code == 409
    assert client.post('/api/course-outcomes', json={'code': 'CO2'}).status_code == 400


def test_program_outcomes_are_seeded(client, app):
    data = client.get('/api/program-outcomes').get_json()
    assert len(data) == 12
    assert data[0]['code'] == 'PO1'


def test_update_mapping_weight(client, seed):
    mapping = seed['mappings']['midterm_co1_apply']

    response = client.post('/api/update-mapping-weight', json={'mapping_id': mapping.id, 'weight': '0.456'})
    assert response.status_code == 200
    assert response.get_json()['new_weight'] == 0.46

    response = client.post('/api/update-mapping-weight', json={'mapping_id': mapping.id, 'weight': 25})
    assert response.get_json()['new_weight'] == 9.99
    assert db.session.get(AssessmentCOMapping, mapping.id).weight == 9.99

    assert client.post('/api/update-mapping-weight', json={'mapping_id': mapping.id}).status_code == 400
    assert client.post('/api/update-mapping-weight', json={'mapping_id': mapping.id, 'weight': 'heavy'}).status_code == 400
    assert client.post('/api/update-mapping-weight', json={'mapping_id': 9999, 'weight': 1}).status_code == 404


# --- Utilities ---

def test_health(client, app):
    data = client.get('/api/health').get_json()
    assert data['database'] == 'Connected'


def test_export_attainment_csv(client, seed):
    response = client.get('/utility/export/attainment')
    assert response.status_code == 200
    assert response.headers['Content-Type'].startswith('text/csv')
    assert 'co_bloom_attainment_' in response.headers['Content-Disposition']

    text = response.get_data().decode('utf-8-sig')
    lines = text.splitlines()
    assert lines[0] == 'sep=;'
    assert lines[1] == 'Roll Number;Student Name;CO;Bloom Level;Attainment'
    # 2 students x 2 COs x 6 Bloom levels
    assert len(lines) == 2 + 24
    assert 'STU001;Alice Smith;CO1;Apply;24.0' in lines


def test_export_by_co_and_matrix(client, seed):
    by_co = client.get('/utility/export/attainment-by-co').get_data().decode('utf-8-sig').splitlines()
    assert 'STU001;Alice Smith;CO1;31.5;40.0;78.75' in by_co

    matrix = client.get('/utility/export/co-po-matrix').get_data().decode('utf-8-sig').splitlines()
    assert matrix[1].startswith('CO;PO1;')
    assert matrix[2] == 'CO1' + ';' * 12


def test_integrity_report(client, seed):
    data = client.get('/utility/integrity').get_json()

    # Midterm maps 30 of 100 marks and the quiz 20 of 20
    assert [row['assessment_name'] for row in data['mapped_marks_mismatch']] == ['Midterm']
    assert data['orphaned_records'] == {}
    assert data['zero_capacity_cells'] == []
    assert data['issue_count'] == 1


def test_unknown_route_returns_json_404(client, app):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Resource not found'}


# --- Malformed request bodies ---

@pytest.mark.parametrize('method, path', [
    ('put', '/api/student-marks/cell'),
    ('put', '/api/student-marks/by-co-bloom'),
    ('post', '/api/student-marks'),
    ('post', '/api/students'),
    ('post', '/api/assessments'),
    ('post', '/api/assessments/mappings'),
    ('post', '/api/course-outcomes'),
    ('post', '/api/co-po-mapping'),
])
@pytest.mark.parametrize('body', [[1, 2], 'CO1', 42])
def test_non_object_json_body_is_rejected(client, seed, method, path, body):
    response = getattr(client, method)(path, json=body)
    assert response.status_code == 400
    assert response.get_json()['success'] is False


@pytest.mark.parametrize('body', [[1, 2], 'weights', 3])
def test_update_mapping_weight_non_object_body(client, seed, body):
    response = client.post('/api/update-mapping-weight', json=body)
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Missing required data'


def test_fractional_student_id_does_not_touch_another_student(client, seed):
    bob = seed['students']['bob']
    response = client.put('/api/student-marks/cell', json={
        'student_id': bob.id + 0.9, 'co_code': 'CO1', 'bloom_level': 'Apply', 'marks_obtained': 3
    })

    assert response.status_code == 400
    assert marks_of(bob, seed['assessments']['midterm']) == pytest.approx(40.0)


@pytest.mark.parametrize('field', ['assessment_id', 'student_id'])
def test_fractional_ids_on_raw_mark_upsert(client, seed, field):
    payload = {'student_id': 1, 'assessment_id': 1, 'marks_obtained': 5}
    payload[field] = 1.5
    assert client.post('/api/student-marks', json=payload).status_code == 400


def test_fractional_mapping_id_on_weight_update(client, seed):
    mapping = seed['mappings']['midterm_co1_apply']
    response = client.post('/api/update-mapping-weight', json={'mapping_id': mapping.id + 0.5, 'weight': 2})
    assert response.status_code == 400
    assert db.session.get(AssessmentCOMapping, mapping.id).weight == 1.0


def test_list_valued_co_code_is_a_clean_400(client, seed):
    alice = seed['students']['alice']
    response = client.put('/api/student-marks/cell', json={
        'student_id': alice.id, 'co_code': ['CO1'], 'bloom_level': 'Apply', 'marks_obtained': 15
    })

    assert response.status_code == 400
    assert 'SELECT' not in response.get_json()['error']
    assert marks_of(alice, seed['assessments']['midterm']) == pytest.approx(80.0)


def test_export_without_students_is_header_only(client, app):
    response = client.get('/utility/export/attainment')
    assert response.status_code == 200

    body = response.get_data()
    assert body.startswith(b'\xef\xbb\xbf')
    assert body.decode('utf-8-sig').splitlines() == [
        'sep=;', 'Roll Number;Student Name;CO;Bloom Level;Attainment'
    ]
    assert "filename*=UTF-8''co_bloom_attainment_" in response.headers['Content-Disposition']
    assert Log.query.filter_by(action='EXPORT_DATA_STREAM').count() == 1


def test_unknown_student_filter_is_an_empty_list(client, seed):
    assert client.get('/api/student-marks?student=9999').get_json() == []
    assert client.get('/api/student-marks/by-co?student=9999').get_json() == []
    assert client.get('/api/student-marks/9999').status_code == 404
