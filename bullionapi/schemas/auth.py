from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """외부 인증 서비스가 발급하는 역할"""

    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class Principal(BaseModel):
    """외부 인증 협력자로부터 전달받은 인증 주체 (이 서비스는 인증하지 않음)"""

    user_id: str = Field(..., min_length=1, description="사용자 ID")
    tenant_id: str = Field(..., min_length=1, description="테넌트(주얼러) ID")
    role: UserRole = Field(UserRole.CUSTOMER, description="역할")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
