from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from valorwell.models.base import BackendRow


class InsuranceType(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


class InsurancePolicy(BackendRow):
    id: str
    customer_id: str
    tenant_id: str
    insurance_type: InsuranceType = InsuranceType.PRIMARY
    payer_name: Optional[str] = None
    payer_id: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None
    insured_name_first: Optional[str] = None
    insured_name_last: Optional[str] = None
    insured_dob: Optional[date] = None
    relationship_to_patient: Optional[str] = None
    ins_plan: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InsurancePolicyCreate(BaseModel):
    payer_name: str = Field(min_length=1, max_length=200)
    policy_number: str = Field(min_length=1, max_length=50)
    insurance_type: InsuranceType = InsuranceType.PRIMARY
    group_number: Optional[str] = Field(default=None, max_length=50)
    payer_id: Optional[str] = Field(default=None, max_length=20)
    insured_name_first: str = Field(min_length=1)
    insured_name_last: str = Field(min_length=1)
    insured_name_middle: Optional[str] = Field(default=None, max_length=50)
    insured_dob: date
    insured_sex: str = Field(min_length=1)
    relationship_to_patient: str = Field(min_length=1)
    insured_address_1: str = Field(min_length=1)
    insured_address_2: Optional[str] = None
    insured_city: str = Field(min_length=1)
    insured_state: str = Field(min_length=2, max_length=2)
    insured_zip: str = Field(pattern=r"^\d{5}(-\d{4})?$")
    ins_phone: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    ins_employer: Optional[str] = Field(default=None, max_length=200)
    ins_plan: Optional[str] = Field(default=None, max_length=200)


class InsurancePolicyUpdate(BaseModel):
    payer_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    policy_number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    insurance_type: Optional[InsuranceType] = None
    group_number: Optional[str] = Field(default=None, max_length=50)
    payer_id: Optional[str] = Field(default=None, max_length=20)
    ins_plan: Optional[str] = Field(default=None, max_length=200)


class EligibilityRequest(BaseModel):
    service_date: date
    service_type: str = "30"  # X12 service type code, 30 = health benefit plan coverage

