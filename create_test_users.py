#!/usr/bin/env python3
"""
Script para criar usuários de teste (um por papel) e um curso de teste.
Execute após o init_db.py
"""
import sys

from werkzeug.security import generate_password_hash

from app import create_app
from database import db
from models import (ROLE_ADMIN, ROLE_COORDINATOR, ROLE_NAMES, ROLE_STUDENT, ROLE_TEACHER,
                    USER_ACTIVE, Course, User)

TEST_PASSWORD = '123456'
TEST_COURSE_CODE = 999999

TEST_USERS = [
    ('admin.teste', 'admin@exemplo.com', ROLE_ADMIN),
    ('coord.teste', 'coordenador@exemplo.com', ROLE_COORDINATOR),
    ('prof.teste', 'prof1@exemplo.com', ROLE_TEACHER),
    ('aluno.teste', 'aluno1@exemplo.com', ROLE_STUDENT),
]


def get_test_course():
    course = Course.query.filter_by(course_code=TEST_COURSE_CODE).first()
    if course:
        return course

    print("🎓 Criando curso de teste...")
    course = Course(
        code_ies=0,
        acronym_ies='TESTE',
        name_ies='Instituição de Teste',
        situation='Em Atividade',
        course_code=TEST_COURSE_CODE,
        name='Curso de Teste',
        degree='Bacharelado',
        city='Teresina',
        uf='PI'
    )
    db.session.add(course)
    db.session.flush()
    return course


def create_test_users():
    """Criar usuários de teste"""
    app = create_app()

    with app.app_context():
        course = get_test_course()

        for index, (username, email, role) in enumerate(TEST_USERS, start=1):
            if User.query.filter_by(email=email).first():
                print(f"✓ {email} já existe")
                continue

            db.session.add(User(
                username=username,
                email=email,
                password_hash=generate_password_hash(TEST_PASSWORD),
                registration=f'{90000000 + index}',
                role=role,
                status=USER_ACTIVE,
                institution='Instituição de Teste',
                course_id=None if role == ROLE_ADMIN else course.id
            ))
            print(f"✅ {ROLE_NAMES[role]} criado: {email} / {TEST_PASSWORD}")

        db.session.commit()
        print(f"\n🔑 Código de acesso do curso de teste: {TEST_COURSE_CODE}")
        return True


if __name__ == '__main__':
    if not create_test_users():
        sys.exit(1)
