from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

from ..core.security import UserRole

class UserResponse(BaseModel):
    id: int
    email: str
    role: UserRole
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    phone_number: Optional[str] = None
    is_active: bool
    is_archived: bool
    archived_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
