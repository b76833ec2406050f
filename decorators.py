import logging
from datetime import datetime
from functools import wraps

from flask import current_app, jsonify
from flask_jwt_extended import current_user, verify_jwt_in_request
from sqlalchemy.exc import SQLAlchemyError

from database import db
from models import Form

logger = logging.getLogger(__name__)


def role_required(*roles):
    """
    Decorator que exige sessão válida e um dos papéis informados.
    Usuários fora do conjunto permitido recebem 403 com mensagem para o flash do frontend.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            if roles and current_user.role not in roles:
                logger.warning(
                    f"Acesso negado ao usuário {current_user.id} (papel {current_user.role}) em {f.__name__}"
                )
                return jsonify({
                    'status': False,
                    'message': 'Acesso negado: você não tem permissão para acessar este recurso.'
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def _sync_form_status(form, now):
    """Fecha simulados vencidos e reabre os que tiveram o prazo estendido"""
    if form.status == 'published' and form.deadline < now:
        form.status = 'finished'
        return True
    if form.status == 'finished' and form.deadline > now:
        form.status = 'published'
        return True
    return False


def update_expired_forms(now=None):
    """Atualiza o status de todos os simulados conforme o prazo. Retorna quantos mudaram."""
    now = now or datetime.utcnow()
    changed = 0

    candidates = Form.query.filter(
        db.or_(
            db.and_(Form.status == 'published', Form.deadline < now),
            db.and_(Form.status == 'finished', Form.deadline > now)
        )
    ).all()

    for form in candidates:
        if _sync_form_status(form, now):
            changed += 1

    if changed:
        db.session.commit()
        logger.info(f"Status atualizado em {changed} simulados")
    return changed


def smart_update_expired_forms(update_interval_minutes=15):
    """
    Decorator que só atualiza simulados expirados se a última verificação
    foi há mais de X minutos (padrão: 15 minutos).
    Indicado para rotas de listagem muito chamadas.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            now = datetime.utcnow()
            last_check = current_app.extensions.get('evolvere_last_form_check')

            if last_check is None or (now - last_check).total_seconds() > update_interval_minutes * 60:
                try:
                    update_expired_forms(now)
                    current_app.extensions['evolvere_last_form_check'] = now
                except SQLAlchemyError as e:
                    logger.error(f"Erro no smart update de simulados expirados: {e}")
                    db.session.rollback()

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def on_form_access(f):
    """
    Decorator para rotas de um simulado específico.
    Verifica apenas o simulado acessado (parâmetro form_id) antes de executar a rota.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        form_id = kwargs.get('form_id')

        if form_id:
            try:
                form = db.session.get(Form, form_id)
                if form and _sync_form_status(form, datetime.utcnow()):
                    db.session.commit()
                    logger.info(f"Simulado ID {form_id} atualizado para '{form.status}' no acesso")
            except SQLAlchemyError as e:
                logger.error(f"Erro ao verificar simulado {form_id}: {e}")
                db.session.rollback()

        return f(*args, **kwargs)

    return decorated_function
