"""
Correção automática de simulados.

Questões objetivas (múltipla escolha e verdadeiro/falso) são corrigidas
comparando a alternativa escolhida com a alternativa marcada como correta.
Questões abertas ficam fora do percentual de acertos e aguardam a correção
manual do professor, que pode atribuir pontos a elas.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from models import OBJECTIVE_QUESTION_TYPES

logger = logging.getLogger(__name__)


def calculate_percentage(correct: int, total: int) -> float:
    """Percentual de acertos com duas casas; 0 quando não há questões objetivas"""
    if total <= 0:
        return 0.0
    return round(correct / total * 100, 2)


def _correct_option_id(question) -> Optional[int]:
    for option in question.options:
        if option.correct:
            return option.id
    return None


def score_submission(questions: Iterable, answers: Dict[int, dict]) -> dict:
    """
    Corrigir uma submissão

    Args:
        questions: Questões do simulado (com .options carregadas)
        answers: Respostas por question_id: {'option_id': int|None, 'open_answer': str|None}

    Returns:
        Dicionário com points, max_points, correct, wrong, percent_correct,
        pending_open (abertas respondidas aguardando correção) e details por questão
    """
    points = 0.0
    max_points = 0.0
    correct = 0
    wrong = 0
    objective_total = 0
    pending_open = 0
    details = []

    for question in questions:
        question_points = float(question.points or 0)
        max_points += question_points
        answer = answers.get(question.id) or {}

        if question.type not in OBJECTIVE_QUESTION_TYPES:
            if answer.get('open_answer'):
                pending_open += 1
            details.append({
                'question_id': question.id,
                'type': question.type,
                'open_answer': answer.get('open_answer'),
                'is_correct': None,
                'points_earned': None
            })
            continue

        objective_total += 1
        selected = answer.get('option_id')
        correct_option = _correct_option_id(question)
        valid_ids = {option.id for option in question.options}

        # Alternativa de outra questão ou em branco conta como erro
        is_correct = selected is not None and selected in valid_ids and selected == correct_option
        if is_correct:
            correct += 1
            points += question_points
        else:
            wrong += 1

        details.append({
            'question_id': question.id,
            'type': question.type,
            'selected_option_id': selected,
            'correct_option_id': correct_option,
            'is_correct': is_correct,
            'points_earned': question_points if is_correct else 0.0
        })

    return {
        'points': round(points, 2),
        'max_points': round(max_points, 2),
        'correct': correct,
        'wrong': wrong,
        'objective_total': objective_total,
        'percent_correct': calculate_percentage(correct, objective_total),
        'pending_open': pending_open,
        'details': details
    }


def answers_from_rows(rows: Iterable) -> Dict[int, dict]:
    """Converte linhas de answers_form no formato esperado por score_submission"""
    return {
        row.question_id: {'option_id': row.option_id, 'open_answer': row.open_answer}
        for row in rows
    }


def rescore_result(result, questions: Iterable, answer_rows: Iterable) -> dict:
    """
    Recalcular o resultado de um aluno somando os pontos atribuídos
    manualmente às questões abertas já corrigidas.
    """
    answer_rows = list(answer_rows)
    score = score_submission(questions, answers_from_rows(answer_rows))

    open_rows = [row for row in answer_rows if row.open_answer]
    manual_points = sum(float(row.points_awarded or 0) for row in open_rows if row.corrected)
    pending = sum(1 for row in open_rows if not row.corrected)

    result.points = round(score['points'] + manual_points, 2)
    result.max_points = score['max_points']
    result.correct = score['correct']
    result.wrong = score['wrong']
    result.percent_correct = score['percent_correct']
    result.corrected = pending == 0

    logger.info(
        f"Resultado {result.id} recalculado: {result.points}/{result.max_points} pontos, "
        f"{pending} abertas pendentes"
    )
    return score


def submission_limit(form, started_at: Optional[datetime]) -> datetime:
    """Instante limite para entrega: o prazo do simulado ou o fim do cronômetro, o que vier antes"""
    limit = form.deadline
    if form.total_duration and started_at:
        limit = min(limit, started_at + timedelta(minutes=form.total_duration))
    return limit


def time_left_seconds(form, started_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Segundos restantes do cronômetro exibido ao aluno (nunca negativo)"""
    now = now or datetime.utcnow()
    remaining = (submission_limit(form, started_at) - now).total_seconds()
    return max(0, int(remaining))


def can_submit(form, started_at: Optional[datetime], grace_seconds: int = 0,
               now: Optional[datetime] = None) -> bool:
    """A entrega é aceita até o limite mais a tolerância de rede"""
    now = now or datetime.utcnow()
    return now <= submission_limit(form, started_at) + timedelta(seconds=grace_seconds)
