from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

class DoctorCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    name_extension: str = ""
    email: EmailStr
    image: str = ""
    speciality: str = Field(min_length=1)
    degree: str = ""
    experience: str = ""
    about: str = ""
    fees: float = Field(ge=0)
    address: Dict[str, Any] = Field(default_factory=dict)
    license_number: str = ""
    day_off: str = ""
    user_id: Optional[int] = None

class DoctorProfileUpdate(BaseModel):
    fees: Optional[float] = Field(default=None, ge=0)
    address: Optional[Dict[str, Any]] = None
    about: Optional[str] = None
    available: Optional[bool] = None
    day_off: Optional[str] = Field(default=None, alias="dayOff")

    model_config = ConfigDict(populate_by_name=True)

class DoctorPublic(BaseModel):
    """Doctor as listed to patients."""
    id: int
    name: str
    name_extension: str
    image: str
    speciality: str
    degree: str
    experience: str
    about: str
    fees: float
    address: Dict[str, Any]
    available: bool
    day_off: str
    slots_booked: Dict[str, List[str]]

    model_config = ConfigDict(from_attributes=True)

class DoctorResponse(DoctorPublic):
    email: str
    license_number: str
    is_archived: bool
    archived_at: Optional[datetime] = None

class AvailabilityResponse(BaseModel):
    doc_id: int
    available: bool

class ReconcileSummary(BaseModel):
    day: str
    checked: int
    set_available: int
    set_unavailable: int
    unchanged: int
    failed: int
    ledger_drift: List[Dict[str, Any]] = Field(default_factory=list)
