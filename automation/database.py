from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.dialects.postgresql import JSONB

db = SQLAlchemy()

# JSONB no Postgres, JSON genérico nos outros dialetos (sqlite nos testes)
JSONType = db.JSON().with_variant(JSONB(), 'postgresql')


def init_db(app):
    """Cria as tabelas quando o banco é efêmero (sqlite em memória)"""
    if app.config.get('SQLALCHEMY_DATABASE_URI', '').startswith('sqlite'):
        with app.app_context():
            db.create_all()
