#!/usr/bin/env python3
"""
Demo Web Application - SQL Console

A small browser front end for FlatDB: log in with a role, pick or
create a database, run SQL and look at the results.

Features:
- Login with a role (admin, editor, viewer); viewers may only read
- Database list, create and use
- SQL console with a result table and flashed errors
- JSON endpoint: POST /api/query {"sql": "..."}

Run:
    pip install flask
    python app.py

Then visit: http://localhost:5000
"""

import os
import sys
from functools import wraps
from flask import Flask, render_template, request, redirect, url_for, flash, jsonify, session

# Add parent directory to path to import flatdb
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flatdb import Database, FlatDBError, PermissionDenied, Role, UserSession
from flatdb.config import Settings
from flatdb.utils import configure_logging, get_logger

logger = get_logger(__name__)


def current_user():
    """UserSession rebuilt from the signed cookie, or None"""
    if 'username' not in session:
        return None
    return UserSession.login(session['username'], Role(session['role']),
                             session.get('database'))


def remember_database(user):
    session['database'] = user.current_database()


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if current_user() is None:
            flash('Please log in first.', 'error')
            return redirect(url_for('login'))
        return view(*args, **kwargs)
    return wrapped


def create_app(data_dir=None):
    """Application factory"""
    settings = Settings.from_env()

    app = Flask(__name__)
    app.secret_key = os.environ.get('FLATDB_SECRET_KEY', 'flatdb-demo-secret-key-change-in-production')
    app.config['DATA_DIR'] = data_dir or settings.data_dir

    @app.route('/login', methods=['GET', 'POST'])
    def login():
        """Start a session."""
        if request.method == 'POST':
            username = request.form.get('username', '').strip()
            try:
                role = Role.parse(request.form.get('role', 'viewer'))
                user = UserSession.login(username, role)
            except ValueError as e:
                flash(str(e), 'error')
                return redirect(url_for('login'))

            session['username'] = user.username
            session['role'] = user.role.value
            session['database'] = None
            logger.info("User %s logged in as %s", user.username, user.role.value)
            flash(f'Logged in as {user.username}.', 'success')
            return redirect(url_for('console'))

        return render_template('login.html', roles=[role.value for role in Role])

    @app.route('/logout')
    def logout():
        """End the session."""
        session.clear()
        flash('Logged out.', 'success')
        return redirect(url_for('login'))

    @app.route('/', methods=['GET', 'POST'])
    @login_required
    def console():
        """SQL console."""
        user = current_user()
        db = Database(app.config['DATA_DIR'], session=user)
        sql = ''
        result = None

        if request.method == 'POST':
            sql = request.form.get('sql', '').strip()
            if not sql:
                flash('Please enter a SQL statement.', 'error')
            else:
                try:
                    results = db.execute_many(sql)
                    result = results[-1] if results else None
                    if result is not None and result.message:
                        flash(result.message, 'success')
                except FlatDBError as e:
                    flash(f'Error: {e}', 'error')
                remember_database(user)

        return render_template('console.html',
                               user=user,
                               sql=sql,
                               result=result,
                               databases=db.databases(),
                               current_database=user.current_database(),
                               tables=db.tables() if user.current_database() else [])

    @app.route('/databases', methods=['POST'])
    @login_required
    def create_database():
        """Create a database and switch to it."""
        user = current_user()
        name = request.form.get('name', '').strip()
        if not name:
            flash('Please provide a database name.', 'error')
            return redirect(url_for('console'))

        db = Database(app.config['DATA_DIR'], session=user)
        try:
            flash(db.execute(f"CREATE DATABASE {name}").message, 'success')
        except FlatDBError as e:
            flash(f'Error: {e}', 'error')
        remember_database(user)
        return redirect(url_for('console'))

    @app.route('/databases/<name>/use', methods=['POST'])
    @login_required
    def use_database(name):
        """Switch the session's database."""
        user = current_user()
        db = Database(app.config['DATA_DIR'], session=user)
        try:
            flash(db.execute(f"USE {name}").message, 'success')
        except FlatDBError as e:
            flash(f'Error: {e}', 'error')
        remember_database(user)
        return redirect(url_for('console'))

    @app.route('/api/query', methods=['POST'])
    def api_query():
        """API endpoint: run one statement and return its result as JSON."""
        user = current_user()
        if user is None:
            return jsonify({'error': 'Not logged in'}), 401

        payload = request.get_json(silent=True) or {}
        sql = payload.get('sql', '')
        if not sql.strip():
            return jsonify({'error': 'Missing "sql"'}), 400

        db = Database(app.config['DATA_DIR'], session=user)
        try:
            result = db.execute(sql)
        except PermissionDenied as e:
            return jsonify({'error': str(e)}), 403
        except FlatDBError as e:
            return jsonify({'error': str(e)}), 400
        finally:
            remember_database(user)

        return jsonify(result.to_dict())

    return app


if __name__ == '__main__':
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app()

    print("\n" + "="*60)
    print("FlatDB Demo - SQL Console")
    print("="*60)
    print(f"\nData directory: {app.config['DATA_DIR']}")
    print("Starting server at http://localhost:5000")
    print("\nPress Ctrl+C to stop the server.\n")

    app.run(debug=True, host='0.0.0.0', port=5000)
