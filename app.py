"""
app.py
Streamlit admin panel for the QBBC club (members, payments, admin access, stock).
Run: streamlit run app.py
"""

from __future__ import annotations

from datetime import date

import pandas as pd
import streamlit as st
from loguru import logger

import codec
import config
import db
import members as member_ops
import seed
import stock as stock_ops
import utils
from admin import suggest_username
from models import (
    BOOLEAN_FIELDS,
    CATEGORIES,
    ELEVATED_ROLES,
    IMAGE_RIGHTS,
    MAX_PLAN_ENTRIES,
    PAYMENT_METHODS,
    STOCK_STATUSES,
)
from panel import Panel
from utils import PanelError

st.set_page_config(page_title="QBBC - Administration", layout="wide")

FLAG_LABELS = {
    "passSport": "Pass'Sport",
    "ticketLoisirCaf": "Ticket loisir CAF",
    "cni": "CNI",
    "medicalCertificate": "Certificat médical",
    "insurance": "Assurance",
}
STATUS_LABELS = {"active": "Actif", "inactive": "Inactif"}


def init_once():
    # One panel + one cached view per collection for this browser session
    if "panel" in st.session_state:
        return
    config.setup_logging()
    panel = Panel()
    panel.ensure_default_admin()
    st.session_state.panel = panel
    st.session_state.members_view = db.CachedView(panel.members_store)
    st.session_state.admins_view = db.CachedView(panel.admins_store)
    st.session_state.stock = stock_ops.normalize_stock(seed.stock_seed())


def require_login():
    if "account" not in st.session_state:
        st.session_state.account = None


def logout():
    st.session_state.account = None
    st.success("Déconnecté.")


def run_action(action, success: str) -> bool:
    """Run a panel handler; report PanelError to the operator instead of crashing."""
    try:
        action()
    except PanelError as exc:
        st.error(str(exc))
        return False
    st.success(success)
    return True


def login_screen():
    st.title("🔐 Connexion administrateur")

    col1, col2 = st.columns([1, 1])
    with col1:
        username = st.text_input("Identifiant", value=config.DEFAULT_ADMIN_USERNAME)
        password = st.text_input("Mot de passe", type="password")
        if st.button("Se connecter", type="primary"):
            account = st.session_state.panel.login(username, password)
            if account:
                st.session_state.account = account
                logger.info("Login '{}'", account["username"])
                st.rerun()
            else:
                logger.warning("Failed login for '{}'", username.strip())
                st.error("Identifiant ou mot de passe invalide.")

    with col2:
        st.info(
            "Au premier lancement un compte par défaut est créé :\n\n"
            f"- identifiant : **{config.DEFAULT_ADMIN_USERNAME}**\n"
            f"- mot de passe : **{config.DEFAULT_ADMIN_PASSWORD}**\n\n"
            "Le mot de passe doit être changé à la première connexion."
        )


def force_change_password_screen():
    st.title("⚠️ Changement de mot de passe obligatoire")

    st.warning("Merci de remplacer le mot de passe par défaut avant de continuer.")
    new1 = st.text_input("Nouveau mot de passe", type="password")
    new2 = st.text_input("Confirmer le mot de passe", type="password")

    if st.button("Mettre à jour", type="primary"):
        if new1 != new2:
            st.error("Les mots de passe ne correspondent pas.")
            return
        if run_action(
            lambda: st.session_state.panel.change_password(st.session_state.account["id"], new1),
            "Mot de passe mis à jour.",
        ):
            st.rerun()


# ---------- helpers ----------

def current_members() -> list[dict]:
    return st.session_state.members_view.records


def current_admins() -> list[dict]:
    return st.session_state.admins_view.records


def members_frame(members: list[dict]) -> pd.DataFrame:
    rows = [
        {
            "N° adhérent": m["membershipNumber"],
            "Nom": m["lastName"],
            "Prénom": m["firstName"],
            "Âge": utils.compute_age(m["birthdate"]),
            "Catégorie": m["category"],
            "Téléphone": m["phone"],
            "Statut": STATUS_LABELS.get(m["status"], m["status"]),
            "Dû": utils.format_currency(m["totalDue"]),
            "Payé": utils.format_currency(m["totalPaid"]),
            "Reste": utils.format_currency(m["remaining"]),
            "Rôle": m["role"],
        }
        for m in members
    ]
    return pd.DataFrame(rows)


def payments_frame(payments: list[dict]) -> pd.DataFrame:
    if not payments:
        return pd.DataFrame(columns=["date", "amount", "method"])
    return pd.DataFrame(payments, columns=["date", "amount", "method"])


def frame_to_payments(df: pd.DataFrame) -> list[dict]:
    # blank rows added in the editor are dropped
    records = df.to_dict(orient="records")
    return [r for r in records if utils.text_from_value(r.get("date")).strip() or utils.normalize_amount(r.get("amount"))]


def member_label(member: dict) -> str:
    return f"{utils.member_display_name(member)} ({member['membershipNumber'] or 'sans numéro'})"


def plan_inputs(prefix: str, existing: dict | None = None) -> dict:
    count_default = existing["paymentCount"] if existing else 1
    count = st.selectbox(
        "Nombre d'échéances", options=list(range(1, MAX_PLAN_ENTRIES + 1)),
        index=count_default - 1, key=f"{prefix}_count",
    )
    plan = {e["index"]: e for e in (existing or {}).get("paymentPlan", [])}
    entries = []
    cols = st.columns(MAX_PLAN_ENTRIES)
    for index in range(1, count + 1):
        entry = plan.get(index, {})
        with cols[index - 1]:
            amount = st.text_input(f"Échéance {index} - montant", value=str(entry.get("amount", "") or ""), key=f"{prefix}_a{index}")
            due = st.text_input(f"Échéance {index} - date", value=entry.get("dueDate", ""), key=f"{prefix}_d{index}")
        entries.append({"index": index, "amount": amount, "dueDate": due})
    return {"paymentCount": count, "paymentPlan": entries}


def identity_inputs(prefix: str, existing: dict | None = None) -> dict:
    e = existing or {}
    col1, col2, col3 = st.columns(3)
    with col1:
        last_name = st.text_input("Nom", value=e.get("lastName", ""), key=f"{prefix}_last")
        first_name = st.text_input("Prénom", value=e.get("firstName", ""), key=f"{prefix}_first")
        birthdate = st.text_input("Date de naissance (AAAA-MM-JJ)", value=e.get("birthdate", ""), key=f"{prefix}_birth")
        gender = st.text_input("Sexe", value=e.get("gender", ""), key=f"{prefix}_gender")
        category = st.selectbox(
            "Catégorie", CATEGORIES,
            index=CATEGORIES.index(e["category"]) if e.get("category") in CATEGORIES else 0,
            key=f"{prefix}_cat",
        )
    with col2:
        phone = st.text_input("Téléphone", value=e.get("phone", ""), key=f"{prefix}_phone")
        email = st.text_input("Email", value=e.get("email", ""), key=f"{prefix}_email")
        address = st.text_input("Adresse", value=e.get("address", ""), key=f"{prefix}_addr")
        injury = st.text_input("Blessure / remarque médicale", value=e.get("injury", ""), key=f"{prefix}_injury")
    with col3:
        parent_last = st.text_input("Nom du parent", value=e.get("parentLastName", ""), key=f"{prefix}_plast")
        parent_first = st.text_input("Prénom du parent", value=e.get("parentFirstName", ""), key=f"{prefix}_pfirst")
        parent_phone = st.text_input("Téléphone du parent", value=e.get("parentPhone", ""), key=f"{prefix}_pphone")
        image_rights = st.selectbox(
            "Droit à l'image", IMAGE_RIGHTS,
            index=IMAGE_RIGHTS.index(e["imageRights"]) if e.get("imageRights") in IMAGE_RIGHTS else 2,
            key=f"{prefix}_img",
        )

    flags = {}
    flag_cols = st.columns(len(BOOLEAN_FIELDS))
    for col, field in zip(flag_cols, BOOLEAN_FIELDS):
        with col:
            flags[field] = st.checkbox(FLAG_LABELS[field], value=bool(e.get(field)), key=f"{prefix}_{field}")

    col4, col5, col6 = st.columns(3)
    with col4:
        due = st.text_input("Montant dû (€)", value=str(e.get("passSportAmount", "") or ""), key=f"{prefix}_due")
    with col5:
        pass_ref = st.text_input("Référence Pass'Sport", value=e.get("passSportReference", ""), key=f"{prefix}_passref")
    with col6:
        insurance_ref = st.text_input("Référence assurance", value=e.get("assuranceReference", ""), key=f"{prefix}_assref")

    return {
        "lastName": last_name.strip(),
        "firstName": first_name.strip(),
        "birthdate": birthdate.strip(),
        "gender": gender.strip(),
        "category": category,
        "phone": phone.strip(),
        "email": email.strip(),
        "address": address.strip(),
        "injury": injury.strip(),
        "parentLastName": parent_last.strip(),
        "parentFirstName": parent_first.strip(),
        "parentPhone": parent_phone.strip(),
        "imageRights": image_rights,
        "passSportAmount": due,
        "passSportReference": pass_ref.strip(),
        "assuranceReference": insurance_ref.strip(),
        "photo": e.get("photo", ""),
        **flags,
    }


# ---------- pages ----------

def dashboard_page():
    st.header("📊 Tableau de bord")

    stats = member_ops.compute_stats(current_members())
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Adhérents", stats["total"])
    c2.metric("Actifs", stats["active"])
    c3.metric("Inactifs", stats["inactive"])
    c4.metric("À jour de cotisation", stats["paid"])

    c5, c6, c7 = st.columns(3)
    c5.metric("Paiements partiels", stats["partial"])
    c6.metric("Encaissé", utils.format_currency(stats["received_amount"]))
    c7.metric("Reste à encaisser", utils.format_currency(stats["unpaid_amount"]))

    st.divider()

    st.subheader("Soldes restants")
    owing = [m for m in current_members() if m["remaining"] > 0]
    if owing:
        st.dataframe(members_frame(owing), use_container_width=True, hide_index=True)
    else:
        st.caption("Aucun solde restant.")


def member_edit_form(member: dict):
    panel = st.session_state.panel
    prefix = f"edit_{member['id']}"
    st.subheader(f"✏️ {member_label(member)}")

    payload = identity_inputs(prefix, member)
    payload["status"] = st.selectbox(
        "Statut", list(STATUS_LABELS), format_func=STATUS_LABELS.get,
        index=list(STATUS_LABELS).index(member["status"]), key=f"{prefix}_status",
    )
    payload.update(plan_inputs(prefix, member))

    st.markdown("**Paiements**")
    edited = st.data_editor(
        payments_frame(member["payments"]),
        num_rows="dynamic",
        use_container_width=True,
        key=f"{prefix}_payments",
        column_config={
            "date": st.column_config.TextColumn("Date (JJ/MM/AAAA)"),
            "amount": st.column_config.NumberColumn("Montant (€)", min_value=0.0, step=0.01),
            "method": st.column_config.SelectboxColumn("Mode", options=list(PAYMENT_METHODS)),
        },
    )
    drafts = frame_to_payments(edited)
    preview = member_ops.apply_member_edit(member, payload, drafts)
    st.caption(
        f"Dû : {utils.format_currency(preview['totalDue'])} | "
        f"Payé : {utils.format_currency(preview['totalPaid'])} | "
        f"Reste : {utils.format_currency(preview['remaining'])}"
    )

    if st.button("Enregistrer", type="primary", key=f"{prefix}_save"):
        if run_action(lambda: panel.update_member(member["id"], payload, drafts), "Adhérent mis à jour."):
            st.session_state.edit_member_id = None
            st.rerun()


def members_page():
    st.header("👥 Adhérents")
    panel = st.session_state.panel

    with st.sidebar:
        st.subheader("Recherche & filtres")
        search = st.text_input("Recherche (nom, téléphone, catégorie)")
        category = st.selectbox("Catégorie", ["all", *CATEGORIES], format_func=lambda c: "Toutes" if c == "all" else c)
        status = st.selectbox("Statut", ["all", *STATUS_LABELS], format_func=lambda s: STATUS_LABELS.get(s, "Tous"))

    members = member_ops.filter_members(current_members(), search, category, status)
    if members:
        st.dataframe(members_frame(members), use_container_width=True, hide_index=True)
    else:
        st.caption("Aucun adhérent ne correspond à la recherche.")
        return

    st.divider()

    options = {m["id"]: member_label(m) for m in members}
    selected_id = st.selectbox("Adhérent", options=list(options), format_func=options.get)
    member = member_ops.find_member(members, selected_id)

    c1, c2, c3, c4 = st.columns(4)
    with c1:
        if st.button("Modifier"):
            st.session_state.edit_member_id = selected_id
            st.rerun()
    with c2:
        target = "inactive" if member["status"] == "active" else "active"
        if st.button(f"Passer {STATUS_LABELS[target].lower()}"):
            if run_action(lambda: panel.set_status(selected_id, target), "Statut mis à jour."):
                st.rerun()
    with c3:
        flag = st.selectbox("Pièce", BOOLEAN_FIELDS, format_func=FLAG_LABELS.get, label_visibility="collapsed")
        if st.button("Basculer la pièce"):
            if run_action(lambda: panel.toggle_flag(selected_id, flag), f"{FLAG_LABELS[flag]} mis à jour."):
                st.rerun()
    with c4:
        confirm = st.checkbox("Confirmer la suppression", value=False, key="del_confirm")
        if st.button("Supprimer", disabled=not confirm):
            if run_action(lambda: panel.delete_member(selected_id), "Adhérent supprimé."):
                st.rerun()

    st.subheader("Ajouter un paiement")
    p1, p2, p3 = st.columns(3)
    with p1:
        pay_date = st.date_input("Date", value=date.today())
    with p2:
        amount = st.text_input("Montant (€)", value="")
    with p3:
        method = st.selectbox("Mode", list(PAYMENT_METHODS), format_func=utils.payment_method_label)
    if st.button("Enregistrer le paiement", type="primary"):
        if run_action(lambda: panel.add_payment(selected_id, pay_date.isoformat(), amount, method), "Paiement enregistré."):
            st.rerun()

    if member["payments"]:
        history = payments_frame(member["payments"])
        history["method"] = history["method"].map(utils.payment_method_label)
        st.dataframe(history, use_container_width=True)
        index = st.number_input("Ligne à retirer", min_value=0, max_value=len(member["payments"]) - 1, step=1)
        if st.button("Retirer le paiement"):
            if run_action(lambda: panel.remove_payment(selected_id, int(index)), "Paiement retiré."):
                st.rerun()

    st.divider()

    if st.session_state.get("edit_member_id"):
        try:
            existing = member_ops.find_member(current_members(), st.session_state.edit_member_id)
        except PanelError as exc:
            st.error(str(exc))
            st.session_state.edit_member_id = None
            return
        member_edit_form(existing)
        if st.button("Annuler la modification"):
            st.session_state.edit_member_id = None
            st.rerun()


def new_member_page():
    st.header("➕ Nouvel adhérent")

    payload = identity_inputs("new")
    payload.update(plan_inputs("new"))

    if st.button("Créer l'adhérent", type="primary"):
        if run_action(lambda: st.session_state.panel.add_member(payload), "Adhérent créé."):
            st.rerun()


def import_export_page():
    st.header("🧾 Import / Export")
    panel = st.session_state.panel

    st.subheader("Exporter les adhérents")
    members = current_members()
    if members:
        st.download_button(
            "Télécharger le CSV",
            data=panel.export_csv(),
            file_name=codec.export_filename(),
            mime="text/csv",
        )
    else:
        st.caption("Aucun adhérent à exporter.")

    st.divider()

    st.subheader("Importer un fichier CSV")
    st.caption("Les adhérents existants (même numéro ou même identifiant) sont mis à jour, les autres sont ajoutés.")
    uploaded = st.file_uploader("Fichier CSV", type=["csv", "txt"])
    if uploaded is not None and st.button("Importer", type="primary"):
        try:
            count = panel.import_csv(uploaded.getvalue())
        except PanelError as exc:
            st.error(str(exc))
            return
        st.success(f"{count} adhérent(s) importé(s).")
        st.rerun()


def verify_page():
    st.header("🔎 Vérification d'adhésion")

    query = st.text_input("Nom, numéro d'adhérent, téléphone ou email")
    if not query.strip():
        st.caption("Saisissez un terme de recherche.")
        return
    matches = member_ops.match_members(query, current_members())
    if matches:
        st.dataframe(members_frame(matches), use_container_width=True, hide_index=True)
    else:
        st.warning("Aucun adhérent trouvé.")


def stock_frame(items: list[dict]) -> pd.DataFrame:
    rows = [
        {
            "Produit": item["product"] or "--",
            "Catégorie": item["category"] or "--",
            "Quantité": item["quantity"],
            "Seuil d'alerte": item["alertThreshold"],
            "Prix unitaire": utils.format_currency(item["unitPrice"]),
            "Date d'achat": utils.format_payment_date(item["purchaseDate"]) or "--",
            "Fournisseur": item["supplier"] or "--",
            "Statut": stock_ops.status_label(item["status"]),
            "Alerte": "⚠️" if stock_ops.is_alert(item) else "",
        }
        for item in items
    ]
    return pd.DataFrame(rows)


def stock_page():
    st.header("📦 Stock")

    if st.button("Recharger le stock"):
        st.session_state.stock = stock_ops.normalize_stock(seed.stock_seed())

    items = st.session_state.stock
    if not items:
        st.warning("Stock indisponible ou vide.")
        return

    alerts = stock_ops.stock_alerts(items)
    c1, c2 = st.columns(2)
    c1.metric("Produits", len(items))
    c2.metric("Sous le seuil d'alerte", len(alerts))

    f1, f2 = st.columns([2, 1])
    with f1:
        search = st.text_input("Recherche (produit, catégorie, fournisseur)")
    with f2:
        status = st.selectbox("Statut", ["all", *STOCK_STATUSES], format_func=lambda s: STOCK_STATUSES.get(s, "Tous"))

    filtered = stock_ops.filter_stock(items, search, status)
    if filtered:
        st.dataframe(stock_frame(filtered), use_container_width=True, hide_index=True)
    else:
        st.caption("Aucun produit ne correspond aux critères.")


def admin_access_page():
    st.header("🛡️ Accès administrateur")
    panel = st.session_state.panel

    st.subheader("Promouvoir un adhérent")
    candidates = panel.promotion_candidates()
    if candidates:
        options = {m["id"]: member_label(m) for m in candidates}
        member_id = st.selectbox("Adhérent", list(options), format_func=options.get)
        member = member_ops.find_member(candidates, member_id)
        c1, c2, c3 = st.columns(3)
        with c1:
            username = st.text_input("Identifiant", value=suggest_username(member), key=f"assign_user_{member_id}")
        with c2:
            password = st.text_input("Mot de passe", type="password", key="assign_pw")
        with c3:
            role = st.selectbox("Rôle", ELEVATED_ROLES, key="assign_role")
        if st.button("Donner l'accès", type="primary"):
            if run_action(lambda: panel.assign_admin(member_id, username, password, role), "Accès accordé."):
                st.rerun()
    else:
        st.caption("Tous les adhérents disposent déjà d'un accès.")

    st.divider()

    st.subheader("Comptes existants")
    admins = current_admins()
    if not admins:
        st.caption("Aucun compte administrateur.")
    else:
        frame = pd.DataFrame(
            [
                {
                    "Identifiant": a["username"],
                    "Nom affiché": a["displayName"],
                    "Rôle": a["role"],
                    "Statut": a["status"],
                    "Adhérent lié": a["linkedMemberName"] or "--",
                    "Mis à jour": a["updatedAt"],
                }
                for a in admins
            ]
        )
        st.dataframe(frame, use_container_width=True, hide_index=True)

        labels = {a["id"]: f"{a['username']} ({a['role']})" for a in admins}
        admin_id = st.selectbox("Compte", list(labels), format_func=labels.get)
        account = next(a for a in admins if a["id"] == admin_id)

        e1, e2, e3 = st.columns(3)
        with e1:
            display_name = st.text_input("Nom affiché", value=account["displayName"], key=f"ed_name_{admin_id}")
            username = st.text_input("Identifiant", value=account["username"], key=f"ed_user_{admin_id}")
        with e2:
            role_options = list(dict.fromkeys([*ELEVATED_ROLES, account["role"]]))
            role = st.selectbox("Rôle", role_options, index=role_options.index(account["role"]), key=f"ed_role_{admin_id}")
            status = st.selectbox(
                "Statut", ["active", "inactive"],
                index=0 if account["status"] == "active" else 1, key=f"ed_status_{admin_id}",
            )
        with e3:
            password = st.text_input("Nouveau mot de passe (laisser vide pour conserver)", type="password", key=f"ed_pw_{admin_id}")

        b1, b2 = st.columns(2)
        with b1:
            if st.button("Enregistrer le compte", type="primary"):
                payload = {
                    "displayName": display_name,
                    "username": username,
                    "password": password,
                    "role": role,
                    "status": status,
                }
                if run_action(lambda: panel.edit_admin(admin_id, payload), "Compte mis à jour."):
                    st.rerun()
        with b2:
            confirm = st.checkbox("Confirmer la révocation", key=f"rev_confirm_{admin_id}")
            if st.button("Révoquer l'accès", disabled=not confirm):
                if admin_id == (st.session_state.account or {}).get("id"):
                    st.error("Impossible de révoquer le compte connecté.")
                elif run_action(lambda: panel.revoke_admin(admin_id), "Accès révoqué."):
                    st.rerun()

    st.divider()

    st.subheader("Créer un compte indépendant")
    n1, n2, n3 = st.columns(3)
    with n1:
        new_user = st.text_input("Identifiant", key="new_admin_user")
    with n2:
        new_pw = st.text_input("Mot de passe", type="password", key="new_admin_pw")
    with n3:
        new_role = st.selectbox("Rôle", ELEVATED_ROLES, key="new_admin_role")
    if st.button("Créer le compte"):
        payload = {"username": new_user, "password": new_pw, "role": new_role}
        if run_action(lambda: panel.create_admin(payload), "Compte créé."):
            st.rerun()


def settings_page():
    st.header("⚙️ Paramètres")

    st.subheader("Changer mon mot de passe")
    p1 = st.text_input("Nouveau mot de passe", type="password")
    p2 = st.text_input("Confirmer le mot de passe", type="password")
    if st.button("Mettre à jour", type="primary"):
        if p1 != p2:
            st.error("Les mots de passe ne correspondent pas.")
        else:
            run_action(
                lambda: st.session_state.panel.change_password(st.session_state.account["id"], p1),
                "Mot de passe mis à jour.",
            )

    st.divider()

    st.subheader("Stockage")
    st.caption(f"Base de données : {config.DB_FILE}")
    if st.button("Recharger les données"):
        st.session_state.members_view.refresh()
        st.session_state.admins_view.refresh()
        st.rerun()


PAGES = {
    "Tableau de bord": dashboard_page,
    "Adhérents": members_page,
    "Nouvel adhérent": new_member_page,
    "Import / Export": import_export_page,
    "Vérification": verify_page,
    "Stock": stock_page,
    "Accès admin": admin_access_page,
    "Paramètres": settings_page,
}


def main_app():
    account = st.session_state.account
    st.sidebar.title("🏀 QBBC Admin")
    st.sidebar.caption(f"Connecté : {account['displayName']} ({account['role']})")

    pages = list(PAGES)
    if "page" not in st.session_state:
        st.session_state.page = pages[0]
    st.session_state.page = st.sidebar.radio("Navigation", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Se déconnecter"):
        logout()
        st.rerun()

    PAGES[st.session_state.page]()


# --------- App entry ---------

def run():
    init_once()
    require_login()

    if not st.session_state.account:
        login_screen()
        return

    # Forced after the default account is created
    if db.is_force_password_change():
        force_change_password_screen()
        return

    main_app()


if __name__ == "__main__":
    run()
