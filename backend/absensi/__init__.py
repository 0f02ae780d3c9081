# File: backend/absensi/__init__.py
"""School Attendance Service - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["500 per day", "100 per hour"]
)

def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)
    
    # Load configuration
    from absensi.config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    
    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    
    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))
    
    # Setup logging
    setup_logging(app)
    
    # Register blueprints
    register_blueprints(app)
    
    # Register error handlers
    register_error_handlers(app)
    
    # Capture pipeline (camera backend, session registry, notifier)
    from absensi.services.attendance_service import init_app as init_attendance
    init_attendance(app)
    
    # Add CLI commands
    register_commands(app)
    
    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'School Attendance Service',
            'version': '1.0.0'
        })
    
    return app

def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from absensi.api.auth import auth_bp
    from absensi.api.capture import capture_bp
    from absensi.api.directory import directory_bp
    
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(capture_bp, url_prefix='/api/attendance')
    app.register_blueprint(directory_bp, url_prefix='/api/directory')

def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from absensi.utils.errors import AttendanceError
    from absensi.utils.helpers import domain_error_response, error_response, handle_error
    from werkzeug.exceptions import HTTPException
    
    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        return domain_error_response(error)
    
    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)
    
    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)
    
    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response('Token has expired', 401)
    
    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return error_response('Invalid token', 401)
    
    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return error_response('Authorization token required', 401)

def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    app.logger.setLevel(level)
    
    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)
        
        app.logger.info('School Attendance Service startup')

def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click
    
    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        from absensi import models  # noqa: F401
        
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')
        
        db.create_all()
        click.echo('Created all tables.')
    
    @app.cli.command('seed-demo')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True,
                  help='Password for the seeded accounts')
    def seed_demo(password):
        """Seed a demo school with staff and students."""
        from absensi.services.seed_service import SeedService
        
        try:
            result = SeedService.seed_all(password)
            click.echo(f"Demo school seeded: {result['staff']} staff, {result['students']} students")
        except Exception as e:
            db.session.rollback()
            click.echo(f'Error seeding database: {str(e)}')
    
    @app.cli.command('create-admin')
    @click.option('--school-id', type=int, prompt='School id')
    def create_admin(school_id):
        """Create admin user."""
        email = click.prompt('Admin email')
        name = click.prompt('Admin name')
        password = click.prompt('Password', hide_input=True)
        
        from absensi.models.school import School
        from absensi.models.user import User, UserRole
        
        if db.session.get(School, school_id) is None:
            click.echo(f'School {school_id} not found')
            return
        
        admin = User(
            email=email,
            name=name,
            role=UserRole.ADMIN,
            school_id=school_id
        )
        admin.set_password(password)
        
        try:
            db.session.add(admin)
            db.session.commit()
            click.echo(f'Admin user created: {email}')
        except Exception as e:
            db.session.rollback()
            click.echo(f'Error creating admin: {str(e)}')
