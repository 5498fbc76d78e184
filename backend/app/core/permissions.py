from app.models.user import User

ROLE_ADMIN = "Admin"
ROLE_USER_MANAGER = "User Manager"
ROLE_USER = "User"

ROLE_DEFINITIONS = [
    {"code": ROLE_ADMIN, "label": "Administrador"},
    {"code": ROLE_USER_MANAGER, "label": "Gestor de usuários"},
    {"code": ROLE_USER, "label": "Usuário"},
]
VALID_ROLES = {item["code"] for item in ROLE_DEFINITIONS}
PRIVILEGED_ROLES = {ROLE_ADMIN, ROLE_USER_MANAGER}


def normalize_role(value: object) -> str:
    text = str(value or "").strip()
    for role in VALID_ROLES:
        if role.lower() == text.lower():
            return role
    return ""


def role_of(user: User | None) -> str:
    if not user:
        return ""
    return normalize_role(getattr(user, "role", ""))


def is_admin(user: User | None) -> bool:
    return role_of(user) == ROLE_ADMIN


def is_privileged(user: User | None) -> bool:
    return role_of(user) in PRIVILEGED_ROLES
