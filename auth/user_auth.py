import logging
import re
from datetime import datetime

from werkzeug.security import check_password_hash, generate_password_hash

from database import db
from database.models import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_password_policy(password: str):
    """
    Returns (ok, error_message).  Passwords need at least 8 characters,
    one letter and one digit.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if not re.search(r"[A-Za-z]", password):
        return False, "Password must contain a letter"
    if not re.search(r"\d", password):
        return False, "Password must contain a digit"
    return True, None


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def register_user(email: str, password: str, display_name: str = None) -> bool:
    logger.debug(f"Attempting to register user: {email}")

    if not email or not isinstance(email, str) or not is_valid_email(email):
        logger.error(f"Invalid email provided: {email}")
        return False
    if not password or not isinstance(password, str):
        logger.error(f"Invalid password provided for user: {email}")
        return False

    email = email.strip().lower()
    if db.session.get(User, email) is not None:
        logger.warning(f"User already exists: {email}")
        return False

    user = User(
        id=email,
        password_hash=generate_password_hash(password),
        display_name=(display_name or email.split("@")[0]).strip(),
        created_at=datetime.utcnow(),
    )
    db.session.add(user)
    db.session.commit()
    logger.info(f"User registration completed successfully: {email}")
    return True


def verify_user(email: str, password: str) -> bool:
    if not email or not isinstance(email, str):
        logger.error(f"Invalid email for verification: {email}")
        return False
    if not password or not isinstance(password, str):
        logger.error(f"Invalid password for verification: {email}")
        return False

    user = db.session.get(User, email.strip().lower())
    if user is None or not user.password_hash:
        logger.warning(f"Login attempt for unknown user: {email}")
        return False
    if not check_password_hash(user.password_hash, password):
        logger.warning(f"Password mismatch for user: {email}")
        return False
    logger.info(f"Password verification successful: {email}")
    return True
