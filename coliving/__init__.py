"""Initialize the Flask app and its extensions."""

import json
import os
import time

import click
import firebase_admin
from firebase_admin import credentials, firestore
from flask import Flask, current_app, g, session
from google.api_core import exceptions
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth.services import get_profile
from .constants import EXPIRATION_TICK_SECONDS, WRITE_TIMEOUT_SECONDS
from .core.store import get_store
from .extensions import csrf


def _env_flag(name, default="false"):
    return (os.environ.get(name) or default).lower() in ["true", "1", "t"]


def _init_firebase(app):
    """Initialize the Firebase Admin SDK from env, file or default credentials."""
    cred = None
    project_id = None

    # First, try to load from environment variable (for production)
    cred_json = os.environ.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            project_id = cred_info.get("project_id")
            cred = credentials.Certificate(cred_info)
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    # If env var fails or is not present, try loading from file (for local dev)
    if not cred:
        cred_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
        )
        if os.path.exists(cred_path):
            try:
                with open(cred_path, "r") as f:
                    cred_info = json.load(f)
                project_id = cred_info.get("project_id")
                cred = credentials.Certificate(cred_path)
            except (json.JSONDecodeError, ValueError) as e:
                app.logger.error(f"Error loading credentials from file: {e}")

    # If both methods fail, fallback to default credentials
    if not cred:
        try:
            cred = credentials.ApplicationDefault()
            project_id = os.environ.get("FIREBASE_PROJECT_ID")
        except Exception as e:
            app.logger.error(
                f"Could not find any valid credentials (env, file, or default): {e}"
            )

    if cred and not firebase_admin._apps:
        try:
            options = {"projectId": project_id} if project_id else None
            firebase_admin.initialize_app(cred, options)
        except ValueError:
            # This can happen if the app is already initialized, which is fine.
            app.logger.info("Firebase app already initialized.")


def _build_group_services(app):
    from .core.store import DocumentStore
    from .group.services import GroupServices

    store = DocumentStore(
        firestore.client(),
        namespace=app.config["DB_NAMESPACE"],
        write_timeout=float(app.config["WRITE_TIMEOUT_SECONDS"]),
    )
    return GroupServices.build(
        store, tick_seconds=float(app.config["EXPIRATION_TICK_SECONDS"])
    )


def _register_commands(app):
    @app.cli.command("expire-groups")
    def expire_groups_command():
        """Expire every group that missed its deadline, once."""
        expired = _build_group_services(app).expiration.run_once()
        click.echo(f"Expired {len(expired)} group(s).")
        for group_id in expired:
            click.echo(f"  {group_id}")

    @app.cli.command("watch-groups")
    def watch_groups_command():
        """Run the expiration monitor until interrupted."""
        monitor = _build_group_services(app).expiration
        monitor.start()
        click.echo("Watching groups for expiration. Press Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            monitor.stop()


def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        # Collection prefix separating data sets, e.g. "testdata/db/"
        DB_NAMESPACE=os.environ.get("DB_NAMESPACE", ""),
        WRITE_TIMEOUT_SECONDS=float(
            os.environ.get("WRITE_TIMEOUT_SECONDS") or WRITE_TIMEOUT_SECONDS
        ),
        EXPIRATION_TICK_SECONDS=float(
            os.environ.get("EXPIRATION_TICK_SECONDS") or EXPIRATION_TICK_SECONDS
        ),
        EXPIRATION_MONITOR_ENABLED=_env_flag("EXPIRATION_MONITOR_ENABLED"),
    )

    if test_config:
        app.config.update(test_config)

    # Initialize Firebase Admin SDK only if not in testing mode
    if not app.config.get("TESTING"):
        _init_firebase(app)

    # Initialize extensions
    csrf.init_app(app)

    # Register blueprints
    from . import auth as auth_bp

    app.register_blueprint(auth_bp.bp)

    from . import admin as admin_bp

    app.register_blueprint(admin_bp.bp)

    from . import group as group_bp

    app.register_blueprint(group_bp.bp)

    from . import notifications as notifications_bp

    app.register_blueprint(notifications_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    _register_commands(app)

    @app.before_request
    def load_logged_in_user():
        """If a user_id is in the session, load the profile from Firestore into g."""
        user_id = session.get("user_id")
        g.user = None
        if user_id is None:
            return

        try:
            g.user = get_profile(get_store(), user_id)
            if g.user is None:
                # User ID in session but no profile in DB. Clear the session.
                session.clear()
                current_app.logger.warning(
                    f"User {user_id} in session but not found in Firestore."
                )
        except (exceptions.GoogleAPICallError, exceptions.RetryError) as e:
            current_app.logger.error(f"Error loading user from session: {e}")
            session.clear()  # Clear session on error to be safe

    if app.config.get("EXPIRATION_MONITOR_ENABLED") and not app.config.get("TESTING"):
        monitor = _build_group_services(app).expiration
        monitor.start()
        app.extensions["expiration_monitor"] = monitor

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
