import re

from werkzeug.security import check_password_hash, generate_password_hash

# At least 8 chars with lower, upper, digit and one of @$!%*?&
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_RULES = (
    "Password must have at least 8 characters, including upper and lower case "
    "letters, numbers and one of @$!%*?&."
)


class PasswordPolicyError(ValueError):
    pass


def check_password_policy(password: str) -> None:
    if not PASSWORD_PATTERN.match(password or ""):
        raise PasswordPolicyError(PASSWORD_RULES)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)
