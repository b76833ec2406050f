#!/usr/bin/env python3
"""
Inicialização do banco de dados do Evolvere.

Cria as tabelas, cadastra os administradores padrão e, opcionalmente,
carrega a lista de cursos válidos da primeira planilha de um arquivo Excel
com as colunas code_IES, acronym_IES, name_IES, situation, course_code,
name, degree, city, UF.

    python init_db.py --courses public/course_valid.xlsx
"""
import argparse
import os

import pandas as pd
from dotenv import load_dotenv
from werkzeug.security import generate_password_hash

from app import create_app
from database import db
from models import ROLE_ADMIN, USER_ACTIVE, Course, User

load_dotenv()

ADMINS = [
    ('Mateus', 'mateus@evolvere.com'),
    ('Rai', 'rai@evolvere.com'),
    ('Lucas', 'lucas@evolvere.com'),
    ('Gabriel', 'gabriel@evolvere.com'),
]

# Coluna da planilha -> atributo do modelo
COURSE_COLUMNS = {
    'code_IES': 'code_ies',
    'acronym_IES': 'acronym_ies',
    'name_IES': 'name_ies',
    'situation': 'situation',
    'course_code': 'course_code',
    'name': 'name',
    'degree': 'degree',
    'city': 'city',
    'UF': 'uf',
}


def seed_admins(password):
    """Cadastra os administradores, ignorando emails já existentes"""
    created = 0
    for index, (username, email) in enumerate(ADMINS, start=1):
        if User.query.filter_by(email=email).first():
            print(f"✓ Admin {email} já existe")
            continue
        db.session.add(User(
            username=username,
            email=email,
            password_hash=generate_password_hash(password),
            registration=f'admin{index}',
            role=ROLE_ADMIN,
            status=USER_ACTIVE
        ))
        created += 1
        print(f"✅ Admin criado: {email}")

    db.session.commit()
    return created


def load_courses(xlsx_path):
    """Carrega cursos da primeira planilha do Excel, ignorando course_code repetido"""
    sheet = pd.read_excel(xlsx_path, sheet_name=0, dtype=str, engine='openpyxl').fillna('')
    missing = [column for column in COURSE_COLUMNS if column not in sheet.columns]
    if missing:
        raise ValueError(f"Colunas ausentes na planilha: {', '.join(missing)}")

    existing = {code for (code,) in db.session.query(Course.course_code).all()}
    created = 0

    for row in sheet.to_dict(orient='records'):
        data = {attr: str(row[column]).strip() for column, attr in COURSE_COLUMNS.items()}
        try:
            data['code_ies'] = int(float(data['code_ies']))
            data['course_code'] = int(float(data['course_code']))
        except ValueError:
            print(f"⚠️ Linha ignorada (código inválido): {row}")
            continue

        if data['course_code'] in existing:
            continue
        db.session.add(Course(**data))
        existing.add(data['course_code'])
        created += 1

    db.session.commit()
    print(f"✅ {created} cursos carregados de {xlsx_path}")
    return created


def init_db(courses_xlsx=None, config_name=None):
    """Função principal de inicialização"""
    app = create_app(config_name)
    with app.app_context():
        db.create_all()
        print("✓ Tabelas criadas/verificadas")

        seed_admins(os.getenv('ADMIN_PASSWORD', 'admin123'))

        if courses_xlsx:
            load_courses(courses_xlsx)

        print("\n" + "=" * 60)
        print(f"👥 Usuários: {User.query.count()}")
        print(f"🎓 Cursos: {Course.query.count()}")
        print("=" * 60)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Inicializa o banco de dados do Evolvere')
    parser.add_argument('--courses', help='Planilha .xlsx com os cursos válidos')
    parser.add_argument('--env', default=None, help='Ambiente de configuração (development, production)')
    args = parser.parse_args()
    init_db(args.courses, args.env)
