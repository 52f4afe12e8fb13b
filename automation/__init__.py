"""
Serviço de automação: engine de workflows e cadências de follow-up.
"""
from flask import Flask
from flask_migrate import Migrate

from automation.config import Config
from automation.database import db, init_db


def create_app(config_class=Config):
    """
    Cria a aplicação Flask usada pela API e pelo worker Temporal.

    O worker só precisa do app para o contexto do banco; a API hospedeira
    registra suas próprias rotas por cima desta.
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)

    # Models registrados antes do create_all/migrations
    from automation import models  # noqa: F401

    Migrate(app, db)
    init_db(app)

    from automation.routes import health
    app.register_blueprint(health.bp)

    return app
