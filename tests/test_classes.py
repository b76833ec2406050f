from datetime import datetime, timedelta

from database import db
from models import ROLE_STUDENT, ROLE_TEACHER, Class, ClassInvite, Subject


def create_invite(client, school, **body):
    response = client.post(f'/classes/{school.class_id}/invites', json=body, headers=school.teacher)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['invite']


def test_teacher_creates_class_in_own_subject(client, school):
    response = client.post('/classes', json={
        'name': 'Turma B', 'period': '2025.2', 'subject_id': school.subject_id, 'capacity': 40
    }, headers=school.teacher)

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['course_id'] == school.course_id
    assert data['student_count'] == 0


def test_class_creation_requires_all_fields(client, school):
    response = client.post('/classes', json={'name': 'Turma B'}, headers=school.teacher)

    assert response.status_code == 400

    not_text = client.post('/classes', json={
        'name': 42, 'period': '2025.1', 'subject_id': school.subject_id, 'capacity': 10
    }, headers=school.teacher)
    assert not_text.status_code == 422


def test_student_cannot_create_class(client, school):
    response = client.post('/classes', json={
        'name': 'Turma B', 'period': '2025.2', 'subject_id': school.subject_id, 'capacity': 40
    }, headers=school.student)

    assert response.status_code == 403
    assert response.get_json()['message'].startswith('Acesso negado')


def test_teacher_cannot_create_class_in_someone_elses_subject(app, client, school, make_user, login):
    other_id = make_user(ROLE_TEACHER, course_id=school.course_id)
    with app.app_context():
        subject = Subject(name='Cálculo', professional_id=other_id, course_id=school.course_id)
        db.session.add(subject)
        db.session.commit()
        subject_id = subject.id

    response = client.post('/classes', json={
        'name': 'Turma C', 'period': '2025.2', 'subject_id': subject_id, 'capacity': 10
    }, headers=school.teacher)

    assert response.status_code == 403


def test_join_with_invite_code(app, client, school, make_user, login):
    invite = create_invite(client, school)
    assert len(invite['code']) == 8
    newcomer = login(make_user(ROLE_STUDENT, course_id=school.course_id))

    response = client.post('/enrollments/join-with-code', json={'code': invite['code'].lower()}, headers=newcomer)

    assert response.status_code == 200
    assert response.get_json()['data']['class_id'] == school.class_id
    with app.app_context():
        assert ClassInvite.query.filter_by(code=invite['code']).one().use_count == 1

    again = client.post('/enrollments/join-with-code', json={'code': invite['code']}, headers=newcomer)
    assert again.status_code == 409


def test_join_rejects_unknown_code(client, school):
    response = client.post('/enrollments/join-with-code', json={'code': 'NOPE1234'}, headers=school.student)

    assert response.status_code == 404

    assert client.post('/enrollments/join-with-code', json={'code': 12345678}, headers=school.student).status_code == 422


def test_join_rejects_expired_invite(app, client, school, make_user, login):
    invite = create_invite(client, school)
    with app.app_context():
        row = ClassInvite.query.filter_by(code=invite['code']).one()
        row.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.session.commit()
    newcomer = login(make_user(ROLE_STUDENT))

    response = client.post('/enrollments/join-with-code', json={'code': invite['code']}, headers=newcomer)

    assert response.status_code == 404


def test_join_rejects_exhausted_invite(client, school, make_user, login):
    invite = create_invite(client, school, max_uses=1)
    first = login(make_user(ROLE_STUDENT))
    second = login(make_user(ROLE_STUDENT))

    assert client.post('/enrollments/join-with-code', json={'code': invite['code']}, headers=first).status_code == 200
    response = client.post('/enrollments/join-with-code', json={'code': invite['code']}, headers=second)

    assert response.status_code == 404


def test_join_rejects_full_class(app, client, school, make_user, login):
    with app.app_context():
        db.session.get(Class, school.class_id).capacity = 1
        db.session.commit()
    invite = create_invite(client, school)
    newcomer = login(make_user(ROLE_STUDENT))

    response = client.post('/enrollments/join-with-code', json={'code': invite['code']}, headers=newcomer)

    assert response.status_code == 409
    assert 'capacidade' in response.get_json()['message']


def test_only_students_join_with_code(client, school):
    invite = create_invite(client, school)

    response = client.post('/enrollments/join-with-code', json={'code': invite['code']}, headers=school.teacher)

    assert response.status_code == 403


def test_class_listing_and_student_removal(client, school):
    detail = client.get(f'/classes/detail/{school.class_id}', headers=school.student).get_json()['data']
    assert [s['id'] for s in detail['students']] == [school.student_id]

    mine = client.get('/classes/student', headers=school.student).get_json()['classes']
    assert [c['id'] for c in mine] == [school.class_id]

    by_subject = client.get(f'/classes/subject/{school.subject_id}', headers=school.teacher).get_json()['data']
    assert by_subject[0]['student_count'] == 1

    url = f'/classes/{school.class_id}/students/{school.student_id}'
    assert client.delete(url, headers=school.teacher).status_code == 200
    assert client.delete(url, headers=school.teacher).status_code == 404
    assert client.get('/classes/student', headers=school.student).get_json()['classes'] == []


def test_subject_crud_by_coordinator(client, school):
    created = client.post('/subjects', json={
        'name': 'Estruturas de Dados', 'professional_id': school.teacher_id
    }, headers=school.coordinator)
    assert created.status_code == 201
    subject_id = created.get_json()['data']['id']

    invalid = client.post('/subjects', json={
        'name': 'Compiladores', 'professional_id': school.student_id, 'course_id': school.course_id
    }, headers=school.coordinator)
    assert invalid.status_code == 422

    updated = client.put(f'/subjects/{subject_id}', json={'name': 'ED I'}, headers=school.coordinator)
    assert updated.get_json()['data']['name'] == 'ED I'

    listing = client.get('/subjects?search=ED', headers=school.teacher).get_json()
    assert [s['name'] for s in listing['subjects']] == ['ED I']
    assert listing['pagination']['total'] == 1

    assert client.delete(f'/subjects/{subject_id}', headers=school.coordinator).status_code == 200
    assert client.get(f'/subjects/{subject_id}', headers=school.teacher).status_code == 404


def test_teacher_cannot_manage_subjects(client, school):
    response = client.post('/subjects', json={
        'name': 'Redes', 'professional_id': school.teacher_id, 'course_id': school.course_id
    }, headers=school.teacher)

    assert response.status_code == 403


def test_course_listing_is_public(client, school):
    courses = client.get('/courses').get_json()['courses']
    assert [c['id'] for c in courses] == [school.course_id]

    professors = client.get(f'/courses/{school.course_id}/professors', headers=school.student).get_json()
    assert [p['id'] for p in professors['professors']] == [school.teacher_id]

    subjects = client.get(f'/courses/{school.course_id}/subjects', headers=school.student).get_json()
    assert subjects['data']['subjects'][0]['professor_name']
