import pandas as pd
import pytest

from database import db
from init_db import load_courses, seed_admins
from models import ROLE_ADMIN, Course, User


def course_row(course_code, name='Engenharia de Software', code_ies=5):
    return {
        'code_IES': code_ies,
        'acronym_IES': 'UFPI',
        'name_IES': 'Universidade Federal do Piauí',
        'situation': 'Em Atividade',
        'course_code': course_code,
        'name': name,
        'degree': 'Bacharelado',
        'city': 'Teresina',
        'UF': 'PI'
    }


def write_sheet(path, rows):
    pd.DataFrame(rows).to_excel(path, index=False, engine='openpyxl')
    return str(path)


def test_load_courses_from_spreadsheet(app, tmp_path, make_course):
    make_course()  # course_code 123456
    sheet = write_sheet(tmp_path / 'course_valid.xlsx', [
        course_row(654321),
        course_row(654321, name='Repetido'),
        course_row(123456, name='Já cadastrado'),
        course_row('sem-codigo'),
        course_row(777777, name='Medicina'),
    ])

    with app.app_context():
        assert load_courses(sheet) == 2

        course = Course.query.filter_by(course_code=654321).one()
        assert course.name == 'Engenharia de Software'
        assert course.code_ies == 5
        assert course.uf == 'PI'
        assert Course.query.count() == 3

        assert load_courses(sheet) == 0


def test_load_courses_requires_all_columns(app, tmp_path):
    sheet = write_sheet(tmp_path / 'incompleto.xlsx', [{'course_code': 1, 'name': 'Direito'}])

    with app.app_context():
        with pytest.raises(ValueError):
            load_courses(sheet)


def test_seed_admins_is_idempotent(app):
    with app.app_context():
        assert seed_admins('admin123') == 4
        assert seed_admins('admin123') == 0

        admins = User.query.filter_by(role=ROLE_ADMIN).order_by(User.registration).all()
        assert [a.registration for a in admins] == ['admin1', 'admin2', 'admin3', 'admin4']
        assert db.session.query(User).count() == 4
