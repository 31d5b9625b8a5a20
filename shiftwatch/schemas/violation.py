from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from decimal import Decimal


class ViolationCreate(BaseModel):
    """Manual (or externally detected) violation."""
    employee_id: int
    company_id: int
    rule_id: int
    source: Literal["auto", "manual"] = "manual"
    reason: Optional[str] = Field(None, max_length=2000)
    created_by: Optional[str] = Field(None, max_length=255)
    shift_id: Optional[int] = None


class ViolationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    company_id: int
    rule_id: int
    shift_id: Optional[int] = None
    source: str
    reason: Optional[str] = None
    created_by: Optional[str] = None
    penalty: Decimal
    created_at: datetime


class ViolationRuleBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    penalty_weight: Decimal = Field(..., ge=0, le=100, allow_inf_nan=False)
    auto_detectable: bool = False
    is_active: bool = True
    conditions: Optional[Dict[str, Any]] = None


class ViolationRuleCreate(ViolationRuleBase):
    company_id: int


class ViolationRuleUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""
    company_id: Optional[int] = None
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    penalty_weight: Optional[Decimal] = Field(None, ge=0, le=100, allow_inf_nan=False)
    auto_detectable: Optional[bool] = None
    is_active: Optional[bool] = None
    conditions: Optional[Dict[str, Any]] = None


class ViolationRuleResponse(ViolationRuleBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    created_at: datetime
    updated_at: datetime


class DetectionRequest(BaseModel):
    employee_id: Optional[int] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None


class DetectionResponse(BaseModel):
    company_id: int
    breaches_found: int
    violations_created: int
    skipped_duplicates: int
    errors: List[Dict[str, Any]] = []


class GlobalMonitoringResponse(BaseModel):
    companies_scanned: int
    violations_created: int
    failed_companies: List[Dict[str, Any]] = []
    results: List[DetectionResponse] = []
