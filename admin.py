"""
admin.py
Administrator accounts and their link to member roles.

An account may point at one member (linkedMemberId). Giving a member admin
access promotes the member's role; revoking it puts an elevated role back to
the fallback label. The member record itself is never removed here.

All functions work on the lists passed in and mutate them in place; callers
persist both collections afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping

from loguru import logger

import config
from auth import hash_password, is_password_hash
from models import ELEVATED_ROLES, AdminAccount
from utils import NotFoundError, ValidationError, generate_id, member_display_name, now_iso, text_from_value


def normalize_admin_user(raw) -> dict:
    admin = dict(raw) if isinstance(raw, Mapping) else {}
    now = now_iso()
    username = text_from_value(admin.get("username")).strip()
    password = text_from_value(admin.get("password"))
    if password and not is_password_hash(password):
        # plain-text secret from a seed document
        password = hash_password(password)
    linked = text_from_value(admin.get("linkedMemberId")).strip() or None
    created = admin.get("createdAt") or now

    return AdminAccount(
        id=text_from_value(admin.get("id")).strip() or generate_id(),
        username=username,
        password=password,
        displayName=admin.get("displayName") or username or "Compte administrateur",
        role=(text_from_value(admin.get("role")) or "admin").strip().lower(),
        status=(text_from_value(admin.get("status")) or "active").strip().lower(),
        linkedMemberId=linked,
        linkedMemberName=text_from_value(admin.get("linkedMemberName")),
        createdAt=created,
        updatedAt=admin.get("updatedAt") or created,
    ).to_dict()


def normalize_admin_users(records) -> list[dict]:
    if not isinstance(records, (list, tuple)):
        return []
    return [normalize_admin_user(r) for r in records]


def _find_index(records: list[dict], record_id) -> int:
    for index, record in enumerate(records):
        if record_id and record.get("id") == record_id:
            return index
    return -1


def _username_taken(admins: list[dict], username: str, exclude_id: str | None = None) -> bool:
    wanted = username.lower()
    return any(
        (a.get("username") or "").lower() == wanted and a.get("id") != exclude_id
        for a in admins
    )


def available_members(members: list[dict], admins: list[dict]) -> list[dict]:
    """Members that can still be given admin access (not linked to any account)."""
    linked = {a.get("linkedMemberId") for a in admins if a.get("linkedMemberId")}
    candidates = [m for m in members if m.get("id") and m.get("id") not in linked]
    return sorted(candidates, key=lambda m: member_display_name(m).lower())


def suggest_username(member: Mapping) -> str:
    for field in ("username", "email", "membershipNumber"):
        value = (member.get(field) or "").strip()
        if value:
            return value
    return ""


def promote(members: list[dict], member_id, role: str, now: str | None = None) -> bool:
    index = _find_index(members, member_id)
    if index == -1:
        return False
    members[index] = {**members[index], "role": role, "updatedAt": now or now_iso()}
    return True


def demote(members: list[dict], member_id, now: str | None = None) -> bool:
    """Reset an elevated role to the fallback label; other roles are kept."""
    index = _find_index(members, member_id)
    if index == -1:
        return False
    member = members[index]
    current = (member.get("role") or "").lower()
    role = config.FALLBACK_ROLE if current in ELEVATED_ROLES else (member.get("role") or config.FALLBACK_ROLE)
    if role == member.get("role"):
        return True
    members[index] = {**member, "role": role, "updatedAt": now or now_iso()}
    return True


def assign(members: list[dict], admins: list[dict], member_id, username: str, password: str, role: str = "admin") -> dict:
    username = (username or "").strip()
    password = (password or "").strip()
    role = (role or "admin").strip().lower()

    if not member_id:
        raise ValidationError("Merci de sélectionner un membre à promouvoir.")
    if not username:
        raise ValidationError("Merci de définir un identifiant de connexion.")
    if not password:
        raise ValidationError("Merci de définir un mot de passe.")
    if _username_taken(admins, username):
        raise ValidationError("Identifiant déjà attribué à un autre compte administrateur.")

    index = _find_index(members, member_id)
    if index == -1:
        raise NotFoundError("Membre introuvable. Merci de rafraîchir la page.")
    if any(a.get("linkedMemberId") == member_id for a in admins):
        raise ValidationError("Ce membre dispose déjà d'un accès administrateur.")

    member = members[index]
    now = now_iso()
    account = normalize_admin_user(
        {
            "username": username,
            "password": hash_password(password),
            "displayName": member_display_name(member),
            "role": role,
            "status": "active",
            "linkedMemberId": member_id,
            "linkedMemberName": member_display_name(member),
            "createdAt": now,
            "updatedAt": now,
        }
    )
    admins.append(account)
    promote(members, member_id, role, now=now)
    logger.info("Admin access '{}' granted to member {} as {}", username, member_id, role)
    return account


def revoke(members: list[dict], admins: list[dict], admin_id) -> dict:
    if not admin_id:
        raise ValidationError("Merci de choisir un compte à révoquer.")
    index = _find_index(admins, admin_id)
    if index == -1:
        raise NotFoundError("Compte administrateur introuvable.")

    removed = admins.pop(index)
    if removed.get("linkedMemberId"):
        demote(members, removed["linkedMemberId"])
    logger.info("Admin access '{}' revoked", removed.get("username"))
    return removed


def _account_payload(payload: Mapping) -> dict:
    return {
        "displayName": (payload.get("displayName") or "").strip(),
        "username": (payload.get("username") or "").strip(),
        "password": (payload.get("password") or "").strip(),
        "role": (payload.get("role") or "admin").strip().lower(),
        "status": (payload.get("status") or "active").strip().lower(),
    }


def edit(members: list[dict], admins: list[dict], admin_id, payload: Mapping) -> dict:
    """Update an account; an empty password keeps the current one."""
    data = _account_payload(payload)
    if not data["username"]:
        raise ValidationError("Identifiant requis.")
    index = _find_index(admins, admin_id)
    if index == -1:
        raise NotFoundError("Compte administrateur introuvable.")
    if _username_taken(admins, data["username"], exclude_id=admin_id):
        raise ValidationError("Identifiant déjà utilisé. Merci de choisir une autre valeur.")

    original = admins[index]
    now = now_iso()
    admins[index] = {
        **original,
        "displayName": data["displayName"] or original.get("displayName") or data["username"],
        "username": data["username"],
        "password": hash_password(data["password"]) if data["password"] else original.get("password", ""),
        "role": data["role"],
        "status": data["status"],
        "updatedAt": now,
    }
    if original.get("linkedMemberId"):
        promote(members, original["linkedMemberId"], data["role"], now=now)
    return admins[index]


def create(admins: list[dict], payload: Mapping) -> dict:
    """Standalone account, not linked to any member."""
    data = _account_payload(payload)
    if not data["username"]:
        raise ValidationError("Identifiant requis.")
    if not data["password"]:
        raise ValidationError("Mot de passe requis pour un nouveau compte.")
    if _username_taken(admins, data["username"]):
        raise ValidationError("Identifiant déjà utilisé. Merci de choisir une autre valeur.")

    now = now_iso()
    account = normalize_admin_user(
        {
            **data,
            "displayName": data["displayName"] or data["username"],
            "password": hash_password(data["password"]),
            "createdAt": now,
            "updatedAt": now,
        }
    )
    admins.append(account)
    return account
