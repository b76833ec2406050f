import io
import os

from helpers import correct_answers

from database import db
from models import (ROLE_COORDINATOR, ROLE_STUDENT, ROLE_TEACHER, USER_ACTIVE,
                    USER_AWAITING_APPROVAL, Course, ProfessionalRequest, User)

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 64
PDF_BYTES = b'%PDF-1.4\n%\xe2\xe3\xcf\xd3\n' + b'0' * 128


def upload_photo(client, user_id, headers, filename='avatar.png', mimetype='image/png', content=PNG_BYTES):
    return client.patch(
        f'/user/{user_id}/photo',
        data={'photo': (io.BytesIO(content), filename, mimetype)},
        content_type='multipart/form-data',
        headers=headers
    )


def test_photo_upload_and_removal(app, client, school):
    response = upload_photo(client, school.student_id, school.student)

    assert response.status_code == 200
    photo = response.get_json()['photo']
    assert photo.startswith('images/') and photo.endswith('.png')
    stored = os.path.join(app.config['UPLOAD_FOLDER'], photo)
    assert os.path.isfile(stored)
    assert client.get(f'/user/{school.student_id}/photo', headers=school.teacher).get_json()['photo'] == photo

    removed = client.delete(f'/user/{school.student_id}/photo', headers=school.student)

    assert removed.status_code == 200
    assert not os.path.exists(stored)
    assert client.get(f'/user/{school.student_id}/photo', headers=school.student).status_code == 404


def test_photo_upload_rejects_other_types(client, school):
    response = upload_photo(client, school.student_id, school.student, 'notas.txt', 'text/plain', b'ola')

    assert response.status_code == 400


def test_cannot_change_someone_elses_photo(client, school):
    response = upload_photo(client, school.student_id, school.teacher)

    assert response.status_code == 403


def test_edit_profile_requires_current_password(client, school):
    wrong = client.patch(f'/user/{school.student_id}', json={
        'current_password': 'errada123', 'password': 'nova1234', 'confirm_password': 'nova1234'
    }, headers=school.student)
    assert wrong.status_code == 422

    response = client.patch(f'/user/{school.student_id}', json={'username': 'Aluno Renomeado'}, headers=school.student)
    assert response.status_code == 200
    assert response.get_json()['user']['username'] == 'Aluno Renomeado'

    nothing = client.patch(f'/user/{school.student_id}', json={}, headers=school.student)
    assert nothing.status_code == 400


def test_students_are_paginated_and_searchable(client, school, make_user):
    for n in range(12):
        make_user(ROLE_STUDENT, course_id=school.course_id, username=f'Estudante {n:02d}')

    page = client.get('/users/students?page=2&per_page=5', headers=school.admin).get_json()
    assert len(page['data']) == 5
    assert page['pagination']['total'] == 13
    assert page['pagination']['pages'] == 3

    found = client.get('/users/students', query_string={'search': 'Estudante 07'}, headers=school.admin).get_json()
    assert [s['username'] for s in found['data']] == ['Estudante 07']


def test_coordinator_only_sees_own_course_students(client, school, make_course, make_user):
    make_user(ROLE_STUDENT, course_id=make_course('Direito'))

    response = client.get('/users/students', headers=school.coordinator).get_json()

    assert [s['id'] for s in response['data']] == [school.student_id]


def test_students_listing_is_restricted(client, school):
    assert client.get('/users/students', headers=school.teacher).status_code == 403


def test_delete_student(app, client, school):
    response = client.delete(f'/users/students/{school.student_id}', headers=school.coordinator)

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(User, school.student_id) is None
    assert client.delete(f'/users/students/{school.teacher_id}', headers=school.admin).status_code == 404


def test_student_account_configuration(app, client, make_user, login, make_course):
    course_id = make_course()
    with app.app_context():
        access_code = db.session.get(Course, course_id).course_code
    student_id = make_user(ROLE_STUDENT)
    headers = login(student_id)

    unknown = client.post('/user/account', json={
        'institution': 'UFPI', 'access_code': '1', 'role': 4
    }, headers=headers)
    assert unknown.status_code == 404

    response = client.post('/user/account', json={
        'institution': 'UFPI', 'access_code': str(access_code), 'role': 4
    }, headers=headers)
    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(User, student_id).course_id == course_id

    again = client.post('/user/account', json={
        'institution': 'UFPI', 'access_code': str(access_code), 'role': 4
    }, headers=headers)
    assert again.status_code == 422


def test_teacher_request_approval_flow(app, client, school, make_user, login):
    with app.app_context():
        access_code = db.session.get(Course, school.course_id).course_code
    applicant_id = make_user(ROLE_STUDENT)
    applicant = login(applicant_id)

    without_diploma = client.post('/user/account', data={
        'institution': 'UFPI', 'access_code': str(access_code), 'role': str(ROLE_TEACHER)
    }, content_type='multipart/form-data', headers=applicant)
    assert without_diploma.status_code == 400

    response = client.post('/user/account', data={
        'institution': 'UFPI',
        'access_code': str(access_code),
        'role': str(ROLE_TEACHER),
        'diploma': (io.BytesIO(PDF_BYTES), 'diploma.pdf', 'application/pdf')
    }, content_type='multipart/form-data', headers=applicant)
    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(User, applicant_id).status == USER_AWAITING_APPROVAL

    pending = client.get('/user/requests', headers=school.coordinator).get_json()['users']
    assert [r['professional_id'] for r in pending] == [applicant_id]
    kpi = client.get('/user/coordinator/kpi', headers=school.coordinator).get_json()['kpi']
    assert kpi == {'teachers': 1, 'subjects': 1, 'requests': 1}

    approved = client.patch(f'/user/request/approved/{applicant_id}', headers=school.coordinator)
    assert approved.status_code == 200
    with app.app_context():
        user = db.session.get(User, applicant_id)
        assert user.role == ROLE_TEACHER
        assert user.status == USER_ACTIVE

    teachers = client.get('/user/teachers', headers=school.coordinator).get_json()['teachers']
    assert applicant_id in [t['id'] for t in teachers]

    notifications = client.get('/notifications', headers=applicant).get_json()
    assert notifications['unread_count'] == 1
    notification_id = notifications['notifications'][0]['id']
    assert notifications['notifications'][0]['type'] == 'account_approved'

    read = client.patch(f'/notifications/{notification_id}/read', headers=applicant)
    assert read.get_json()['notification']['is_read'] is True
    assert client.get('/notifications?unread=true', headers=applicant).get_json()['notifications'] == []


def test_rejecting_request_removes_diploma(app, client, school, make_user, login):
    with app.app_context():
        access_code = db.session.get(Course, school.course_id).course_code
    applicant_id = make_user(ROLE_STUDENT)
    client.post('/user/account', data={
        'institution': 'UFPI',
        'access_code': str(access_code),
        'role': str(ROLE_TEACHER),
        'diploma': (io.BytesIO(PDF_BYTES), 'diploma.pdf', 'application/pdf')
    }, content_type='multipart/form-data', headers=login(applicant_id))
    with app.app_context():
        diploma = ProfessionalRequest.query.filter_by(professional_id=applicant_id).one().diploma
    stored = os.path.join(app.config['UPLOAD_FOLDER'], diploma)
    assert os.path.isfile(stored)

    response = client.delete(f'/user/request/{applicant_id}', headers=school.admin)

    assert response.status_code == 200
    assert not os.path.exists(stored)
    with app.app_context():
        assert ProfessionalRequest.query.filter_by(professional_id=applicant_id).count() == 0
        assert db.session.get(User, applicant_id).status == USER_ACTIVE


def test_only_admin_approves_coordinators(app, client, school, make_user, login):
    with app.app_context():
        access_code = db.session.get(Course, school.course_id).course_code
    applicant_id = make_user(ROLE_STUDENT)
    client.post('/user/account', data={
        'institution': 'UFPI',
        'access_code': str(access_code),
        'role': str(ROLE_COORDINATOR),
        'diploma': (io.BytesIO(PDF_BYTES), 'diploma.pdf', 'application/pdf')
    }, content_type='multipart/form-data', headers=login(applicant_id))

    assert client.patch(f'/user/request/approved/{applicant_id}', headers=school.coordinator).status_code == 403
    assert client.patch(f'/user/request/approved/{applicant_id}', headers=school.admin).status_code == 200


def test_revoking_teacher(app, client, school):
    response = client.delete(f'/user/teacher/{school.teacher_id}', headers=school.coordinator)

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(User, school.teacher_id).role == ROLE_STUDENT
    assert client.delete(f'/user/teacher/{school.teacher_id}', headers=school.coordinator).status_code == 404


def test_mark_all_notifications_read(client, school, published_form):
    client.post(f"/form/{published_form['id']}/start", headers=school.student)
    client.post('/form/answers', json={
        'form_id': published_form['id'], 'answers': correct_answers(published_form)
    }, headers=school.student)

    assert client.get('/notifications', headers=school.student).get_json()['unread_count'] == 1
    assert client.patch('/notifications/mark-all-read', headers=school.student).status_code == 200
    assert client.get('/notifications', headers=school.student).get_json()['unread_count'] == 0
