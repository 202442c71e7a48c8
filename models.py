"""
models.py
Record shapes and fixed vocabularies shared by every screen.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass

# Persisted snapshot keys and their change signals
MEMBERS_KEY = "qbbcMembers"
ADMIN_USERS_KEY = "qbbcAdminUsers"
MEMBERS_SIGNAL = "qbbc-members-updated"
ADMIN_USERS_SIGNAL = "qbbc-admin-users-updated"

ELEVATED_ROLES = ("admin", "manager", "support")
MEMBER_STATUSES = ("active", "inactive")
MAX_PLAN_ENTRIES = 3

BOOLEAN_FIELDS = ("passSport", "ticketLoisirCaf", "cni", "medicalCertificate", "insurance")

TEXT_FIELDS = (
    "membershipNumber",
    "lastName",
    "firstName",
    "birthdate",
    "gender",
    "phone",
    "category",
    "address",
    "email",
    "parentLastName",
    "parentFirstName",
    "parentPhone",
    "imageRights",
    "photo",
    "photoName",
    "injury",
    "paymentMethod",
    "passSportReference",
    "assuranceReference",
)

CATEGORIES = ("U7", "U9", "U11", "U13", "U15", "U17", "U20", "Senior", "Loisir")
IMAGE_RIGHTS = ("Autorise", "Refuse", "Non demande")

# Stock item status -> label; unknown statuses count as available
STOCK_STATUSES = {
    "available": "En stock",
    "ordered": "Commandé",
    "out": "Rupture",
}
DEFAULT_STOCK_STATUS = "available"

# Stored method code -> label shown in the panel
PAYMENT_METHODS = {
    "Cash": "Espèces",
    "Check": "Chèque",
    "Card": "Carte",
    "Transfer": "Virement",
}

# Text export/import column order (version 1). Do not reorder.
CSV_HEADERS = [
    "id",
    "membershipNumber",
    "status",
    "lastName",
    "firstName",
    "birthdate",
    "gender",
    "phone",
    "category",
    "address",
    "email",
    "passSport",
    "ticketLoisirCaf",
    "parentLastName",
    "parentFirstName",
    "parentPhone",
    "imageRights",
    "photo",
    "photoName",
    "cni",
    "medicalCertificate",
    "insurance",
    "injury",
    "passSportAmount",
    "paymentCount",
    "payment1",
    "payment1Amount",
    "payment1Date",
    "payment2",
    "payment2Amount",
    "payment2Date",
    "payment3",
    "payment3Amount",
    "payment3Date",
    "paymentMethod",
    "paymentPlan",
    "totalDue",
    "totalPaid",
    "remaining",
    "remainingBalance",
    "payments",
    "passSportReference",
    "assuranceReference",
]


@dataclass(frozen=True)
class Payment:
    date: str  # DD/MM/YYYY
    amount: float
    method: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PlanEntry:
    index: int  # 1..3
    amount: float
    dueDate: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class LedgerTotals:
    total_due: float
    total_paid: float
    remaining: float

    def to_fields(self) -> dict:
        """Member fields carrying these totals (remainingBalance mirrors remaining)."""
        return {
            "totalDue": self.total_due,
            "totalPaid": self.total_paid,
            "remaining": self.remaining,
            "remainingBalance": self.remaining,
        }


@dataclass
class AdminAccount:
    id: str
    username: str
    password: str  # bcrypt hash
    displayName: str
    role: str
    status: str
    linkedMemberId: str | None
    linkedMemberName: str
    createdAt: str
    updatedAt: str

    def to_dict(self) -> dict:
        return asdict(self)
