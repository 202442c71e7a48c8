"""
panel.py
One method per operator action. Each handler reads the current snapshots,
applies the change, and saves (which broadcasts). A PanelError is raised
before anything is saved, so a failed action leaves both collections as
they were.
"""

from __future__ import annotations

from loguru import logger

import admin
import auth
import codec
import config
import db
import ledger
import members as member_ops
import seed
from merge import merge_members
from models import ADMIN_USERS_KEY, ADMIN_USERS_SIGNAL, MEMBERS_KEY, MEMBERS_SIGNAL
from utils import ValidationError


def member_store() -> db.SnapshotStore:
    return db.SnapshotStore(MEMBERS_KEY, MEMBERS_SIGNAL, member_ops.normalize_members, seed.members_seed)


def admin_store() -> db.SnapshotStore:
    return db.SnapshotStore(ADMIN_USERS_KEY, ADMIN_USERS_SIGNAL, admin.normalize_admin_users, seed.admin_users_seed)


class Panel:
    def __init__(self, members_store: db.SnapshotStore | None = None, admins_store: db.SnapshotStore | None = None):
        self.members_store = members_store or member_store()
        self.admins_store = admins_store or admin_store()

    def members(self) -> list[dict]:
        return self.members_store.load()

    def admins(self) -> list[dict]:
        return self.admins_store.load()

    def _replace(self, members: list[dict], updated: dict) -> dict:
        saved = self.members_store.save([updated if m["id"] == updated["id"] else m for m in members])
        return member_ops.find_member(saved, updated["id"])

    # ---------- members ----------

    def add_member(self, payload: dict) -> dict:
        if not (payload.get("lastName") or "").strip() or not (payload.get("firstName") or "").strip():
            raise ValidationError("Nom et prénom sont obligatoires.")
        members = self.members()
        member = member_ops.build_member(payload, members)
        self.members_store.save(members + [member])
        logger.info("Member {} created", member["membershipNumber"])
        return member

    def update_member(self, member_id: str, payload: dict, payments: list[dict]) -> dict:
        members = self.members()
        current = member_ops.find_member(members, member_id)
        updated = self._replace(members, member_ops.apply_member_edit(current, payload, payments))
        logger.info("Member {} updated", updated["membershipNumber"])
        return updated

    def add_payment(self, member_id: str, pay_date, amount, method: str = "") -> dict:
        members = self.members()
        current = member_ops.find_member(members, member_id)
        payments = ledger.add_payment(current["payments"], pay_date, amount, method)
        return self._replace(members, member_ops.with_payments(current, payments))

    def remove_payment(self, member_id: str, index: int) -> dict:
        members = self.members()
        current = member_ops.find_member(members, member_id)
        payments = ledger.remove_payment(current["payments"], index)
        return self._replace(members, member_ops.with_payments(current, payments))

    def toggle_flag(self, member_id: str, field: str) -> dict:
        members = self.members()
        current = member_ops.find_member(members, member_id)
        return self._replace(members, member_ops.set_flag(current, field))

    def set_status(self, member_id: str, status: str) -> dict:
        members = self.members()
        current = member_ops.find_member(members, member_id)
        return self._replace(members, member_ops.set_status(current, status))

    def delete_member(self, member_id: str) -> None:
        members = self.members()
        member = member_ops.find_member(members, member_id)
        self.members_store.save([m for m in members if m["id"] != member_id])
        logger.info("Member {} deleted", member["membershipNumber"])

    # ---------- import / export ----------

    def export_csv(self) -> bytes:
        return codec.members_to_csv_bytes(self.members())

    def import_csv(self, data) -> int:
        """Merge an uploaded CSV document; returns the number of rows merged."""
        records = codec.read_import(data)
        self.members_store.save(merge_members(self.members(), records))
        return len(records)

    # ---------- admin accounts ----------

    def promotion_candidates(self) -> list[dict]:
        return admin.available_members(self.members(), self.admins())

    def _save_both(self, members: list[dict], admins: list[dict]) -> None:
        self.admins_store.save(admins)
        self.members_store.save(members)

    def assign_admin(self, member_id: str, username: str, password: str, role: str = "admin") -> dict:
        members, admins = self.members(), self.admins()
        account = admin.assign(members, admins, member_id, username, password, role)
        self._save_both(members, admins)
        return account

    def revoke_admin(self, admin_id: str) -> dict:
        members, admins = self.members(), self.admins()
        removed = admin.revoke(members, admins, admin_id)
        self._save_both(members, admins)
        return removed

    def edit_admin(self, admin_id: str, payload: dict) -> dict:
        members, admins = self.members(), self.admins()
        account = admin.edit(members, admins, admin_id, payload)
        self._save_both(members, admins)
        return account

    def create_admin(self, payload: dict) -> dict:
        admins = self.admins()
        account = admin.create(admins, payload)
        self.admins_store.save(admins)
        return account

    def ensure_default_admin(self) -> None:
        """Create the default account when no admin-role account exists, and force a password change."""
        admins = self.admins()
        if any(a["role"] == "admin" for a in admins) or auth.get_admin_by_username(admins, config.DEFAULT_ADMIN_USERNAME):
            return
        admin.create(
            admins,
            {
                "username": config.DEFAULT_ADMIN_USERNAME,
                "password": config.DEFAULT_ADMIN_PASSWORD,
                "displayName": "Administrateur",
                "role": "admin",
            },
        )
        self.admins_store.save(admins)
        db.set_force_password_change(True)
        logger.info("Default admin account created")

    def login(self, username: str, password: str) -> dict | None:
        return auth.login(self.admins(), username, password)

    def change_password(self, admin_id: str, new_password: str) -> None:
        admins = self.admins()
        auth.change_password(admins, admin_id, new_password)
        self.admins_store.save(admins)
        db.set_force_password_change(False)

    def stats(self) -> dict:
        return member_ops.compute_stats(self.members())
