"""
auth.py
Authentication utilities (bcrypt hashing, verify, login, change password).

Account passwords are only ever stored as bcrypt hashes. Seed documents may
still carry plain-text passwords; admin.normalize_admin_user hashes them on
first load.
"""

from __future__ import annotations

import bcrypt

import config
from utils import NotFoundError, ValidationError, now_iso

MIN_PASSWORD_LENGTH = 6


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in the account snapshot).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def is_password_hash(value: str | None) -> bool:
    return bool(value) and value.startswith(("$2a$", "$2b$", "$2y$")) and len(value) == 60


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored bcrypt hash.
    """
    if not is_password_hash(password_hash):
        return False
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def get_admin_by_username(admins: list[dict], username: str) -> dict | None:
    wanted = (username or "").strip().lower()
    if not wanted:
        return None
    for admin in admins:
        if (admin.get("username") or "").strip().lower() == wanted:
            return admin
    return None


def login(admins: list[dict], username: str, password: str) -> dict | None:
    admin = get_admin_by_username(admins, username)
    if not admin or admin.get("status") != "active" or not password:
        return None
    return admin if verify_password(password, admin.get("password") or "") else None


def change_password(admins: list[dict], admin_id: str, new_password: str) -> dict:
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Le mot de passe doit contenir au moins {MIN_PASSWORD_LENGTH} caractères.")
    for index, admin in enumerate(admins):
        if admin.get("id") == admin_id:
            admins[index] = {**admin, "password": hash_password(new_password), "updatedAt": now_iso()}
            return admins[index]
    raise NotFoundError("Compte administrateur introuvable.")
