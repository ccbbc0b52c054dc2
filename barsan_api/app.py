import random
from datetime import date, timedelta
import click
from flask import Flask, jsonify
from flask.cli import with_appcontext
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.security import generate_password_hash
from .extensions import db, migrate
from .config import Config
from .errors import BookingError
from .http import register_error_handlers
from .logging_config import configure_logging
from .notifications import EmailNotifier
from .ratelimit import FixedWindowLimiter
from .scheduling.coordinator import BookingCoordinator, Contact
from .scheduling.store import ReservationStore
from .sessions import SessionManager, identity_for
from .blueprints.auth import bp as auth_bp
from .blueprints.cafes import bp as cafes_bp
from .blueprints.reservations import bp as reservations_bp
from .models import Admin, AdminRole, Cafe, CafeTable, Reservation, User, UserSession


def create_app(config=Config, notifier=None, clock=None):
    """
    Builds the API. The notifier and clock are injectable so tests can
    replace email delivery and freeze time.
    """
    app = Flask(__name__)
    app.config.from_object(config)
    configure_logging(app.config["LOG_LEVEL"])
    if app.config["PROXY_COUNT"]:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config["PROXY_COUNT"])

    CORS(app, origins=[app.config["FRONTEND_URL"]], supports_credentials=True)

    db.init_app(app)
    migrate.init_app(app, db)

    coordinator = BookingCoordinator.from_config(
        app.config,
        ReservationStore(),
        notifier=notifier if notifier is not None else EmailNotifier.from_config(app.config),
    )
    sessions = SessionManager(ttl=timedelta(hours=app.config["SESSION_TTL_HOURS"]))
    if clock is not None:
        coordinator.clock = clock
    app.extensions["booking"] = coordinator
    app.extensions["sessions"] = sessions
    app.extensions["rate_limiter"] = FixedWindowLimiter(app.config["RATE_MAX"], app.config["RATE_WINDOW"])

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(cafes_bp, url_prefix="/api/cafes")
    app.register_blueprint(reservations_bp, url_prefix="/api/reservations")
    register_error_handlers(app)

    @app.get("/health")
    def health():
        return jsonify(status="ok", version="1.0.0")

    @click.command("seed")
    @with_appcontext
    def seed_command():
        """Creates sample cafes, tables, accounts and reservations."""
        db.session.query(Reservation).delete()
        db.session.query(UserSession).delete()
        db.session.query(AdminRole).delete()
        db.session.query(Admin).delete()
        db.session.query(User).delete()
        db.session.query(CafeTable).delete()
        db.session.query(Cafe).delete()
        db.session.commit()
        click.echo("Cleared existing data.")

        cafes = [
            Cafe(name="BarSan", slug="barsan", open_time="10:00", close_time="22:00"),
            Cafe(name="NOIR", slug="noir", open_time="17:00", close_time="23:30"),
        ]
        for cafe in cafes:
            cafe.tables = [CafeTable(number=n, capacity=random.choice([2, 4, 4, 6])) for n in range(1, 9)]
        admin = Admin(email="admin@barsan.com", password_hash=generate_password_hash("admin123"),
                      full_name="Group Admin", roles=[AdminRole(role="owner")])
        users = [
            User(email=f"guest{i+1}@example.com", password_hash=generate_password_hash("guest123"),
                 full_name=f"Guest {i+1}", phone=f"08155500{i:02d}", is_verified=True)
            for i in range(10)
        ]
        db.session.add_all(cafes + users + [admin])
        db.session.commit()
        click.echo(f"Created {len(cafes)} cafes, {len(users)} guests and 1 admin.")

        booked = 0
        tomorrow = date.today() + timedelta(days=1)
        for _ in range(35):
            user = random.choice(users)
            table = random.choice(random.choice(cafes).tables)
            opens = int(table.cafe.open_time[:2])
            start = f"{random.randint(opens, opens + 4):02d}:{random.choice(['00', '30'])}"
            try:
                coordinator.book(
                    table.id, tomorrow + timedelta(days=random.randint(0, 2)), start, 90,
                    random.randint(1, table.capacity), identity_for(user),
                    Contact(name=user.full_name, email=user.email, phone=user.phone),
                )
                booked += 1
            except BookingError as e:
                click.echo(f"Skipped {table.cafe.name} table {table.number} at {start}: {e}")
        click.echo(f"Created {booked} reservations.")
        click.echo("Database seeded!")

    @click.command("complete-elapsed")
    @with_appcontext
    def complete_elapsed_command():
        """Marks confirmed reservations whose slot has ended as completed."""
        click.echo(f"Completed {coordinator.complete_elapsed()} reservations.")

    @click.command("purge-sessions")
    @with_appcontext
    def purge_sessions_command():
        """Deletes expired and revoked sessions."""
        click.echo(f"Removed {sessions.purge_expired()} sessions.")

    app.cli.add_command(seed_command)
    app.cli.add_command(complete_elapsed_command)
    app.cli.add_command(purge_sessions_command)

    return app
