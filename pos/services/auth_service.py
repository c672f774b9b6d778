"""
Authentication service for register operators.

Handles user creation, login verification and the admin user maintenance.
"""
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from pos.models import AppUser, UserRole
from pos.exceptions import BusinessLogicError, NotFoundError
import logging

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def create_user(session: Session, username: str, password: str, name: str, role: str = UserRole.EMPLOYEE.value) -> AppUser:
    """
    Create a new operator.

    Raises:
        BusinessLogicError: on short password, unknown role or duplicate username
    """
    username = (username or '').strip().lower()
    name = (name or '').strip()
    
    if not username or not name:
        raise BusinessLogicError('Username and name are required')
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise BusinessLogicError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if role not in {r.value for r in UserRole}:
        raise BusinessLogicError(f'Invalid role: {role}')
    if session.query(AppUser).filter_by(username=username).first():
        raise BusinessLogicError(f'Username "{username}" is already taken')
    
    user = AppUser(username=username, name=name, role=role, is_active=True)
    user.set_password(password)
    session.add(user)
    session.commit()
    logger.info(f"Created {role} user: {username}")
    return user


def verify_login(session: Session, username: str, password: str) -> Optional[AppUser]:
    """Return the active user matching the credentials, or None."""
    username = (username or '').strip().lower()
    user = session.query(AppUser).filter_by(username=username).first()
    
    if not user or not user.is_active:
        logger.warning(f"Login attempt for unknown or inactive user: {username}")
        return None
    if not user.check_password(password or ''):
        logger.warning(f"Invalid password for user: {username}")
        return None
    return user


def deactivate_user(session: Session, user_id: int) -> AppUser:
    """Soft delete: inactive users can no longer log in."""
    user = session.get(AppUser, user_id)
    if not user:
        raise NotFoundError('User not found')
    user.is_active = False
    session.commit()
    logger.info(f"Deactivated user: {user.username}")
    return user


def list_users(session: Session) -> List[AppUser]:
    """All operators, newest first."""
    return session.query(AppUser).order_by(AppUser.created_at.desc(), AppUser.id.desc()).all()


def update_user(session: Session, user_id: int, data: Dict[str, Any]) -> AppUser:
    """
    Update name, role, password and/or is_active.

    The username is fixed once created. A new password follows the same
    length rule as create_user.

    Raises:
        NotFoundError: unknown user
        BusinessLogicError: invalid value
    """
    user = session.get(AppUser, user_id)
    if not user:
        raise NotFoundError('User not found')

    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise BusinessLogicError('Name is required')
        user.name = name
    if 'role' in data:
        if data['role'] not in {r.value for r in UserRole}:
            raise BusinessLogicError(f"Invalid role: {data['role']}")
        user.role = data['role']
    if data.get('password'):
        if len(data['password']) < MIN_PASSWORD_LENGTH:
            raise BusinessLogicError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
        user.set_password(data['password'])
    if 'is_active' in data:
        user.is_active = bool(data['is_active'])

    session.commit()
    logger.info(f"Updated user: {user.username}")
    return user


def serialize_user(user: AppUser) -> Dict[str, Any]:
    return {
        'id': user.id,
        'username': user.username,
        'name': user.name,
        'role': user.role,
        'is_active': user.is_active,
        'created_at': user.created_at.isoformat() if user.created_at else None,
    }
