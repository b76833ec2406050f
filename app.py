import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Carregar variáveis de ambiente
load_dotenv()

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Factory function para criar a aplicação Flask"""
    app = Flask(__name__)

    # Determinar o ambiente
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Carregar configurações baseadas no ambiente
    from config import config
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    # CORS com credenciais para o cookie de sessão do frontend
    CORS(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)

    # Inicializar extensões
    from database import db, jwt
    db.init_app(app)
    jwt.init_app(app)

    # Registrar rotas
    from routes import register_routes
    register_routes(app)

    # Handlers de erro personalizados
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'status': False, 'message': 'Recurso não encontrado'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': False, 'message': 'Método não permitido'}), 405

    @app.errorhandler(413)
    def file_too_large(error):
        return jsonify({'status': False, 'message': 'O ficheiro excede 5 MB.'}), 413

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        logger.error(f"Erro interno: {error}")
        return jsonify({'status': False, 'message': 'Erro interno do servidor'}), 500

    @app.route('/health')
    def health_check():
        try:
            db.session.execute(text('SELECT 1'))
            database_status = 'connected'
        except SQLAlchemyError as e:
            logger.error(f"Health check sem banco de dados: {e}")
            database_status = 'disconnected'

        return jsonify({
            'status': 'healthy' if database_status == 'connected' else 'degraded',
            'environment': config_name,
            'database': database_status
        }), 200

    logger.info(f"Aplicação criada no ambiente '{config_name}'")
    return app


# Para execução local
if __name__ == '__main__':
    app = create_app()

    # Criar tabelas se não existirem
    with app.app_context():
        from database import db
        db.create_all()
        print("✅ Tabelas do banco de dados criadas/verificadas com sucesso!")

    port = int(os.getenv('PORT', 8080))
    app.run(
        debug=app.config.get('DEBUG', False),
        host='0.0.0.0',
        port=port
    )
