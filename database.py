import logging

from flask import jsonify
from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy

logger = logging.getLogger(__name__)

db = SQLAlchemy()
jwt = JWTManager()

# Todas as falhas de autenticação respondem 401 para o frontend disparar SESSION_EXPIRED

@jwt.invalid_token_loader
def invalid_token_callback(error_string):
    logger.warning(f"Token inválido: {error_string}")
    return jsonify({'status': False, 'message': 'Sessão inválida', 'error': error_string}), 401

@jwt.unauthorized_loader
def unauthorized_callback(error_string):
    logger.info(f"Requisição sem sessão: {error_string}")
    return jsonify({'status': False, 'message': 'Usuário não autenticado', 'error': error_string}), 401

@jwt.expired_token_loader
def expired_token_callback(jwt_header, jwt_payload):
    logger.info(f"Sessão expirada para o usuário {jwt_payload.get('sub')}")
    return jsonify({'status': False, 'message': 'Sessão expirada'}), 401

@jwt.user_lookup_error_loader
def user_lookup_error_callback(jwt_header, jwt_payload):
    logger.warning(f"Usuário {jwt_payload.get('sub')} da sessão não existe mais")
    return jsonify({'status': False, 'message': 'Usuário não encontrado'}), 401

@jwt.user_identity_loader
def user_identity_lookup(user):
    # O subject do token precisa ser string
    return str(user.id) if hasattr(user, 'id') else str(user)

@jwt.user_lookup_loader
def user_lookup_callback(_jwt_header, jwt_data):
    identity = jwt_data["sub"]
    from models import User
    return db.session.get(User, int(identity))
