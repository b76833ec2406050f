import itertools
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app  # noqa: E402
from database import db  # noqa: E402
from helpers import PASSWORD, build_form_payload  # noqa: E402
from models import (ROLE_ADMIN, ROLE_COORDINATOR, ROLE_STUDENT, ROLE_TEACHER,  # noqa: E402
                    USER_ACTIVE, Class, ClassStudent, Course, Subject, User)


@pytest.fixture
def app(tmp_path):
    app = create_app('testing')
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_course(app):
    codes = itertools.count(123456)

    def _make_course(name='Ciência da Computação'):
        with app.app_context():
            course = Course(
                code_ies=1,
                acronym_ies='UFPI',
                name_ies='Universidade Federal do Piauí',
                situation='Em Atividade',
                course_code=next(codes),
                name=name,
                degree='Bacharelado',
                city='Teresina',
                uf='PI'
            )
            db.session.add(course)
            db.session.commit()
            return course.id

    return _make_course


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make_user(role=ROLE_STUDENT, course_id=None, username=None, email=None):
        n = next(counter)
        with app.app_context():
            user = User(
                username=username or f'usuario{n}',
                email=email or f'usuario{n}@evolvere.com',
                password_hash=generate_password_hash(PASSWORD),
                registration=f'{10000000 + n}',
                role=role,
                status=USER_ACTIVE,
                course_id=course_id
            )
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture
def login(app):
    """Retorna o header Authorization de um usuário (cliente descartável, sem cookie compartilhado)"""
    def _login(user_id):
        with app.app_context():
            email = db.session.get(User, user_id).email
        response = app.test_client().post('/login', json={'email': email, 'password': PASSWORD})
        assert response.status_code == 200, response.get_json()
        return {'Authorization': f"Bearer {response.get_json()['token']}"}

    return _login


@pytest.fixture
def school(app, make_course, make_user, login):
    """Curso com admin, coordenador, professor, aluno matriculado, disciplina e turma"""
    course_id = make_course()
    admin_id = make_user(ROLE_ADMIN)
    coordinator_id = make_user(ROLE_COORDINATOR, course_id=course_id)
    teacher_id = make_user(ROLE_TEACHER, course_id=course_id)
    student_id = make_user(ROLE_STUDENT, course_id=course_id)

    with app.app_context():
        subject = Subject(name='Algoritmos', professional_id=teacher_id, course_id=course_id)
        db.session.add(subject)
        db.session.flush()
        class_obj = Class(name='Turma A', period='2025.1', capacity=30, subject_id=subject.id, course_id=course_id)
        db.session.add(class_obj)
        db.session.flush()
        db.session.add(ClassStudent(class_id=class_obj.id, student_id=student_id))
        db.session.commit()
        subject_id, class_id = subject.id, class_obj.id

    return SimpleNamespace(
        course_id=course_id,
        subject_id=subject_id,
        class_id=class_id,
        admin_id=admin_id,
        coordinator_id=coordinator_id,
        teacher_id=teacher_id,
        student_id=student_id,
        admin=login(admin_id),
        coordinator=login(coordinator_id),
        teacher=login(teacher_id),
        student=login(student_id)
    )


@pytest.fixture
def published_form(client, school):
    """Simulado publicado pelo professor; retorna o JSON com o gabarito"""
    response = client.post('/form/publish', json=build_form_payload(school.class_id), headers=school.teacher)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['form']
