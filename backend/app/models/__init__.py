from app.models.app_config import AppConfig  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.equipment import Equipment, EquipmentHistory  # noqa: F401
from app.models.license import License  # noqa: F401
from app.models.user import User  # noqa: F401
