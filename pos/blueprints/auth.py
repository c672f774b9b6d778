"""Cashier login/logout and the CSRF token for session POSTs."""
from flask import Blueprint, request, session, jsonify, current_app, g
from flask_wtf.csrf import generate_csrf

from pos.database import get_session
from pos.exceptions import BusinessLogicError, UnauthorizedError
from pos.services.auth_service import verify_login

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/login', methods=['POST'])
def login():
    """Validate username + password and start a register session."""
    data = request.get_json(silent=True) or request.form
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''

    if not username or not password:
        raise BusinessLogicError('Username and password are required.')

    user = verify_login(get_session(), username, password)
    if user is None:
        raise UnauthorizedError('Invalid username or password.', status_code=401)

    session.clear()
    session['user_id'] = user.id
    session.permanent = True
    current_app.logger.info(f"User {user.username} logged in")
    return jsonify({
        'status': 'ok',
        'user': {'id': user.id, 'username': user.username, 'name': user.name, 'role': user.role},
        # The session was reset, so the token fetched before login is void
        'csrf_token': generate_csrf()
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """End the session. An unfinished cart is discarded with it."""
    if g.get('user'):
        current_app.logger.info(f"User {g.user.username} logged out")
    session.clear()
    return jsonify({'status': 'ok'})


@auth_bp.route('/csrf')
def csrf_token():
    """
    CSRF token for the form and JSON POSTs of this session.

    Send it back in the X-CSRFToken header (or a csrf_token form field).
    """
    return jsonify({'csrf_token': generate_csrf()})
