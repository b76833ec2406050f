#!/usr/bin/env python3
"""
Script para atualizar o status dos simulados expirados no banco de dados.
Pode ser agendado (cron) para manter o status em dia mesmo sem acessos à API.
"""
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from app import create_app
from database import db
from decorators import update_expired_forms


def main():
    """Função principal"""
    print("🔧 Iniciando atualização de simulados expirados...")

    app = create_app()
    with app.app_context():
        try:
            updated = update_expired_forms(datetime.utcnow())
        except SQLAlchemyError as e:
            db.session.rollback()
            print(f"❌ Erro ao atualizar simulados expirados: {e}")
            return 1

    if updated:
        print(f"✅ Atualizados {updated} simulados")
    else:
        print("✅ Nenhum simulado com status desatualizado.")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
