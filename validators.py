"""
Validação de campos recebidos pela API.

Os validadores de campo retornam a primeira mensagem de erro encontrada ou None.
A validação de simulados retorna um dicionário de erros por campo, no mesmo
formato usado pelo formulário de cadastro do frontend (ex.: correct_0).
"""
import re
from datetime import datetime, timezone

from models import QUESTION_OPEN, QUESTION_TRUE_FALSE, QUESTION_TYPES

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _is_text(value):
    return isinstance(value, str) and bool(value.strip())


def is_positive_int(value):
    try:
        return int(str(value)) >= 1
    except (TypeError, ValueError):
        return False


def parse_datetime(value):
    """Aceita ISO 8601 com ou sem timezone; datas com timezone viram UTC ingênuo"""
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _username(value, fields):
    if _is_blank(value):
        return 'Nome obrigatório.'
    if not isinstance(value, str):
        return 'Nome inválido.'
    if not 3 <= len(value.strip()) <= 50:
        return 'Nome deve ter entre 3 e 50 caracteres.'
    return None


def _email(value, fields):
    if _is_blank(value):
        return 'Email obrigatório.'
    if not isinstance(value, str) or not EMAIL_RE.match(value.strip()):
        return 'Email inválido.'
    return None


def _password(value, fields):
    if _is_blank(value):
        return 'Senha obrigatória.'
    if not isinstance(value, str):
        return 'Senha inválida.'
    if len(value) < 6:
        return 'Senha deve ter no mínimo 6 caracteres.'
    return None


def _confirm_password(value, fields):
    if _is_blank(value):
        return 'Confirmação de senha obrigatória.'
    if value != fields.get('password'):
        return 'Senhas precisam ser iguais.'
    return None


def _id(value, fields):
    if not is_positive_int(value):
        return 'ID inválido.'
    return None


USER_FIELD_VALIDATORS = {
    'username': _username,
    'email': _email,
    'password': _password,
    'confirm_password': _confirm_password,
    'id': _id,
}


def validate_user_fields(fields):
    for field, value in fields.items():
        validator = USER_FIELD_VALIDATORS.get(field)
        if validator is None:
            return f"Validação para '{field}' não implementada."
        error = validator(value, fields)
        if error:
            return error
    return None


def validate_material_fields(fields):
    if not _is_text(fields.get('title')):
        return 'Título obrigatório.'
    if len(fields['title'].strip()) > 255:
        return 'Título deve ter no máximo 255 caracteres.'
    description = fields.get('description')
    if description is not None and not isinstance(description, str):
        return 'Descrição inválida.'
    if description and len(description) > 1000:
        return 'Descrição deve ter no máximo 1000 caracteres.'
    if not _is_text(fields.get('type')):
        return 'Tipo obrigatório.'
    if not is_positive_int(fields.get('subject_id')):
        return 'Disciplina inválida.'
    if fields.get('class_id') not in (None, '') and not is_positive_int(fields.get('class_id')):
        return 'ID da turma inválido.'
    return None


def _validate_question(index, question, errors):
    if not isinstance(question, dict):
        errors[f'text_{index}'] = 'Questão inválida.'
        return

    text = question.get('text')
    if _is_blank(text):
        errors[f'text_{index}'] = 'O enunciado da questão é obrigatório.'
    elif not isinstance(text, str):
        errors[f'text_{index}'] = 'Enunciado inválido.'

    question_type = question.get('type')
    if question_type not in QUESTION_TYPES:
        errors[f'type_{index}'] = 'Tipo de questão inválido.'
        return

    points = question.get('points', 0)
    try:
        if isinstance(points, bool):
            raise TypeError(points)
        if float(points) < 0:
            errors[f'points_{index}'] = 'A pontuação não pode ser negativa.'
    except (TypeError, ValueError):
        errors[f'points_{index}'] = 'Pontuação inválida.'

    options = question.get('options') or []
    if not isinstance(options, list):
        errors[f'options_{index}'] = 'Alternativas inválidas.'
        return
    if question_type == QUESTION_OPEN:
        if options:
            errors[f'options_{index}'] = 'Questões abertas não possuem alternativas.'
        return

    if len(options) < 2 or any(not isinstance(opt, dict) or not _is_text(opt.get('text')) for opt in options):
        errors[f'options_{index}'] = 'Informe ao menos duas alternativas preenchidas.'
    elif question_type == QUESTION_TRUE_FALSE and len(options) != 2:
        errors[f'options_{index}'] = 'Questões de verdadeiro/falso possuem exatamente duas alternativas.'

    correct_count = sum(1 for opt in options if isinstance(opt, dict) and opt.get('correct') is True)
    if correct_count != 1:
        errors[f'correct_{index}'] = 'Marque exatamente uma alternativa correta.'


def validate_form_payload(data):
    """Valida o payload de publicação de simulado. Retorna dict de erros (vazio se válido)."""
    if not isinstance(data, dict):
        return {'form': 'Corpo da requisição inválido.'}
    errors = {}

    title = data.get('title')
    if _is_blank(title):
        errors['title'] = 'Título obrigatório.'
    elif not isinstance(title, str):
        errors['title'] = 'Título inválido.'
    elif len(title.strip()) > 150:
        errors['title'] = 'Título deve ter no máximo 150 caracteres.'

    description = data.get('description')
    if description is not None and not isinstance(description, str):
        errors['description'] = 'Descrição inválida.'
    elif description and len(description) > 255:
        errors['description'] = 'Descrição deve ter no máximo 255 caracteres.'

    if not is_positive_int(data.get('class_id')):
        errors['class_id'] = 'Turma inválida.'

    if parse_datetime(data.get('deadline')) is None:
        errors['deadline'] = 'Prazo de entrega inválido.'

    duration = data.get('total_duration', 0)
    try:
        if isinstance(duration, bool):
            raise TypeError(duration)
        if int(duration) < 0:
            errors['total_duration'] = 'A duração não pode ser negativa.'
    except (TypeError, ValueError):
        errors['total_duration'] = 'Duração inválida.'

    questions = data.get('questions')
    if not isinstance(questions, list) or not questions:
        errors['questions'] = 'Adicione ao menos uma questão.'
        return errors

    for index, question in enumerate(questions):
        _validate_question(index, question, errors)

    return errors
