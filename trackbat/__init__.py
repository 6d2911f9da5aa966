import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY", "dev"),
        SQLALCHEMY_DATABASE_URI=os.environ.get(
            "DATABASE_URL",
            "sqlite:///" + os.path.join(app.instance_path, "trackbat.sqlite3"),
        ),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        REPORT_COMPANY=os.environ.get("REPORT_COMPANY", "TrackBat"),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )
    if test_config:
        app.config.from_mapping(test_config)

    os.makedirs(app.instance_path, exist_ok=True)
    app.logger.setLevel(app.config["LOG_LEVEL"])
    db.init_app(app)

    from .auth import login_manager
    login_manager.init_app(app)

    from . import models  # noqa
    from .views import bp as main_bp
    app.register_blueprint(main_bp)

    @app.cli.command("db-init")
    def db_init():
        from werkzeug.security import generate_password_hash
        from .models import Process, User, ROLE_ADMIN
        with app.app_context():
            db.create_all()
            email = os.environ.get("ADMIN_EMAIL", "admin@factory.com").lower()
            if not User.query.filter_by(email=email).first():
                db.session.add(User(
                    email=email,
                    name="Admin User",
                    password_hash=generate_password_hash(os.environ.get("ADMIN_PASSWORD", "admin123")),
                    role=ROLE_ADMIN,
                ))
            if Process.query.count() == 0:
                processes_env = os.environ.get("PROCESSES")
                if processes_env:
                    names = [s.strip() for s in processes_env.split(",") if s.strip()]
                else:
                    names = ["Mechanical Assembly", "Welding", "HV Test", "Quality Inspection", "Packaging"]
                for i, name in enumerate(names, start=1):
                    db.session.add(Process(name=name, display_order=i))
            db.session.commit()
            print("Initialized DB; admin:", email, "processes:", Process.query.count())

    return app
