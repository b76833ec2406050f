"""Relatórios de desempenho do aluno e medalhas"""
import logging

from database import db
from models import Form, FormResult, Subject

logger = logging.getLogger(__name__)

UNKNOWN_SUBJECT = 'Disciplina Desconhecida'

# Regras das medalhas
ACTIVE_MIN_SUBMISSIONS = 3
HIGHLIGHT_MIN_RESULTS = 3
HIGHLIGHT_MIN_AVERAGE = 80.0

MEDALS = (
    ('aluno_destaque', 'Aluno Destaque', 'Média de acertos de pelo menos 80% em 3 ou mais simulados'),
    ('melhor_desempenho', 'Melhor Desempenho', 'Gabaritou um simulado'),
    ('participante_ativo', 'Participante Ativo', 'Entregou 3 ou mais simulados'),
)


def _completed_results_query(student_id):
    return FormResult.query.filter(
        FormResult.student_id == student_id,
        FormResult.status == 'completed'
    )


def student_report(student_id):
    """Média geral, melhor nota e média por disciplina do aluno"""
    overall = db.session.query(db.func.avg(FormResult.points)).filter(
        FormResult.student_id == student_id,
        FormResult.status == 'completed'
    ).scalar()

    subject_rows = db.session.query(
        Subject.name, db.func.avg(FormResult.points)
    ).select_from(FormResult)\
        .join(Form, FormResult.form_id == Form.id)\
        .outerjoin(Subject, Form.subject_id == Subject.id)\
        .filter(FormResult.student_id == student_id, FormResult.status == 'completed')\
        .group_by(Subject.id, Subject.name)\
        .all()

    disciplines = sorted(
        (
            {'name': name or UNKNOWN_SUBJECT, 'grade': round(float(average or 0), 1)}
            for name, average in subject_rows
        ),
        key=lambda item: item['grade'],
        reverse=True
    )

    best = _completed_results_query(student_id).order_by(FormResult.points.desc()).first()
    if best:
        subject = best.form.subject if best.form else None
        best_grade = {
            'name': subject.name if subject else UNKNOWN_SUBJECT,
            'grade': round(float(best.points or 0), 1)
        }
    else:
        best_grade = {'name': 'N/A', 'grade': 0.0}

    return {
        'overall_average': round(float(overall or 0), 1),
        'best_grade': best_grade,
        'disciplines': disciplines
    }


def recent_results(student_id, limit=5):
    results = _completed_results_query(student_id)\
        .order_by(FormResult.submitted_at.desc())\
        .limit(limit)\
        .all()

    notes = []
    for result in results:
        data = result.to_dict()
        subject = result.form.subject if result.form else None
        data['subject_name'] = subject.name if subject else UNKNOWN_SUBJECT
        notes.append(data)
    return notes


def evaluate_medals(percentages):
    """
    Calcula as medalhas a partir dos percentuais de acerto dos simulados entregues.
    Cada medalha traz earned e progress (0 a 100).
    """
    percentages = [float(p or 0) for p in percentages]
    submissions = len(percentages)
    average = sum(percentages) / submissions if submissions else 0.0

    earned = {
        'participante_ativo': submissions >= ACTIVE_MIN_SUBMISSIONS,
        'melhor_desempenho': any(p >= 100 for p in percentages),
        'aluno_destaque': submissions >= HIGHLIGHT_MIN_RESULTS and average >= HIGHLIGHT_MIN_AVERAGE,
    }
    progress = {
        'participante_ativo': min(100.0, submissions / ACTIVE_MIN_SUBMISSIONS * 100),
        'melhor_desempenho': max(percentages, default=0.0),
        'aluno_destaque': min(
            100.0,
            min(submissions / HIGHLIGHT_MIN_RESULTS, 1) * min(average / HIGHLIGHT_MIN_AVERAGE, 1) * 100
        ),
    }

    return [
        {
            'key': key,
            'title': title,
            'description': description,
            'earned': earned[key],
            'progress': round(progress[key], 1)
        }
        for key, title, description in MEDALS
    ]


def student_medals(student_id):
    percentages = [
        row.percent_correct
        for row in _completed_results_query(student_id).with_entities(FormResult.percent_correct)
    ]
    medals = evaluate_medals(percentages)
    logger.debug(f"Medalhas do aluno {student_id}: {[m['key'] for m in medals if m['earned']]}")
    return medals
