from datetime import datetime

from helpers import build_form_payload

from validators import (parse_datetime, validate_form_payload, validate_material_fields,
                        validate_user_fields)


def test_valid_form_payload_has_no_errors():
    assert validate_form_payload(build_form_payload(1)) == {}


def test_form_payload_field_errors():
    payload = build_form_payload('abc', title='  ', deadline='amanhã', total_duration=-5)

    errors = validate_form_payload(payload)

    assert set(errors) == {'title', 'class_id', 'deadline', 'total_duration'}


def test_form_payload_rejects_values_that_are_not_text():
    payload = build_form_payload(1, title=123, description=['x'], total_duration=True)
    payload['questions'][0]['text'] = 42
    payload['questions'][0]['options'][1]['text'] = 7
    payload['questions'][1]['options'] = 'Verdadeiro'

    errors = validate_form_payload(payload)

    assert errors['title'] == 'Título inválido.'
    assert errors['description'] == 'Descrição inválida.'
    assert errors['total_duration'] == 'Duração inválida.'
    assert errors['text_0'] == 'Enunciado inválido.'
    assert 'options_0' in errors
    assert errors['options_1'] == 'Alternativas inválidas.'


def test_form_payload_must_be_an_object():
    assert validate_form_payload(['Simulado']) == {'form': 'Corpo da requisição inválido.'}


def test_form_payload_requires_questions():
    assert 'questions' in validate_form_payload(build_form_payload(1, questions=[]))


def test_question_level_errors_are_indexed():
    payload = build_form_payload(1)
    payload['questions'][0]['options'][1]['correct'] = True
    payload['questions'][1]['options'].append({'text': 'Talvez', 'correct': False})
    payload['questions'][2]['options'] = [{'text': 'A', 'correct': False}]

    errors = validate_form_payload(payload)

    assert errors['correct_0'] == 'Marque exatamente uma alternativa correta.'
    assert 'options_1' in errors
    assert 'options_2' in errors


def test_question_type_and_points_are_checked():
    payload = build_form_payload(1)
    payload['questions'][0]['type'] = 'desconhecido'
    payload['questions'][1]['points'] = -1
    payload['questions'][2]['text'] = ''

    errors = validate_form_payload(payload)

    assert set(errors) == {'type_0', 'points_1', 'text_2'}


def test_validate_user_fields():
    assert validate_user_fields({'username': 'Jo'}) == 'Nome deve ter entre 3 e 50 caracteres.'
    assert validate_user_fields({'email': 'sem-arroba'}) == 'Email inválido.'
    assert validate_user_fields({'password': '123'}) == 'Senha deve ter no mínimo 6 caracteres.'
    assert validate_user_fields({'id': 0}) == 'ID inválido.'
    assert validate_user_fields({'nickname': 'x'}) == "Validação para 'nickname' não implementada."
    assert validate_user_fields({'email': 'ana@evolvere.com', 'password': 'segredo'}) is None


def test_validate_user_fields_rejects_other_types():
    assert validate_user_fields({'username': 12345}) == 'Nome inválido.'
    assert validate_user_fields({'email': 123}) == 'Email inválido.'
    assert validate_user_fields({'password': 123456}) == 'Senha inválida.'
    assert validate_material_fields({'title': 5, 'type': 'slide', 'subject_id': '3'}) == 'Título obrigatório.'


def test_validate_material_fields():
    fields = {'title': 'Aula', 'type': 'slide', 'subject_id': '3'}
    assert validate_material_fields(fields) is None
    assert validate_material_fields({**fields, 'subject_id': 'x'}) == 'Disciplina inválida.'
    assert validate_material_fields({**fields, 'class_id': '-1'}) == 'ID da turma inválido.'


def test_parse_datetime_normalises_to_naive_utc():
    assert parse_datetime('2025-05-10T17:00:00Z') == datetime(2025, 5, 10, 17, 0, 0)
    assert parse_datetime('2025-05-10T14:00:00-03:00') == datetime(2025, 5, 10, 17, 0, 0)
    assert parse_datetime('2025-05-10T14:00') == datetime(2025, 5, 10, 14, 0)
    assert parse_datetime('ontem') is None
    assert parse_datetime(None) is None
