"""
Data models for policies, service requests and consumable rights.

Currency amounts are carried as decimal strings in ether (18 decimals) and
timestamps as timezone-aware UTC datetimes; the raw contract tuples are
converted by healthchain.fetcher.
"""

import datetime
from enum import Enum, IntEnum
from typing import List, Optional

from pydantic import BaseModel, Field


class RecordKind(str, Enum):
    """The two record namespaces owned by an account"""
    POLICY = "policy"
    SERVICE_REQUEST = "service_request"

    @property
    def label(self) -> str:
        return "Policy" if self is RecordKind.POLICY else "Service request"


class ServiceCategory(IntEnum):
    """Service categories in the positional order used on the wire"""
    OUTPATIENT = 0
    EXAMINATION = 1
    LABORATORY = 2
    RADIOLOGY = 3
    ADVANCED_DIAGNOSIS = 4
    PHYSIOTHERAPY = 5


CATEGORY_COUNT = len(ServiceCategory)


class PaymentStatus(IntEnum):
    PENDING = 0
    PAID_BY_PATIENT = 1
    PAID_BY_POLICY = 2
    PROCESSING = 3


class CategoryRights(BaseModel):
    """Remaining uses, spent amount and limit for one service category"""
    category: ServiceCategory
    remaining_count: int = Field(default=0, ge=0)
    used_amount: str = "0"
    limit: str = "0"


def empty_rights() -> List[CategoryRights]:
    """Six all-zero entries in category order."""
    return [CategoryRights(category=category) for category in ServiceCategory]


class Policy(BaseModel):
    """Model for an insurance policy stored on-chain"""
    id: int
    policy_holder: str
    premium: str
    coverage_amount: str
    start_date: datetime.datetime
    end_date: datetime.datetime
    is_active: bool
    risk_score: int
    ipfs_hash: str = ""
    rights: List[CategoryRights] = Field(default_factory=empty_rights)

    def limits(self) -> List[str]:
        """Per-category limits in category order"""
        by_category = {entry.category: entry.limit for entry in self.rights}
        return [by_category.get(category, "0") for category in ServiceCategory]


class ServiceRequest(BaseModel):
    """Model for a service request filed against a policy"""
    id: int
    policy_id: int
    patient: str
    hospital: str
    doctor: str
    icd_code: str
    sut_code: str
    amount: str
    payment_status: PaymentStatus
    request_date: datetime.datetime
    process_date: Optional[datetime.datetime] = None
    ipfs_hash: str = ""
    is_processed: bool = False


class WriteResult(BaseModel):
    """Outcome of a confirmed write transaction"""
    transaction_hash: str
    record_id: Optional[int] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


class NetworkInfo(BaseModel):
    chain_id: int
    block_number: int
    is_connected: bool = True


class IcdCode(BaseModel):
    """Diagnosis code with its coverage rule"""
    code: str
    description: str = ""
    requires_sut: bool = False
    is_pre_existing: bool = False
    coverage_percentage: int = 0


class SutCode(BaseModel):
    """Billable procedure code; base_price is in ether"""
    code: str
    description: str = ""
    service_type: ServiceCategory
    base_price: str = "0"
    is_active: bool = False


class HospitalService(BaseModel):
    hospital: str
    sut_code: str
    price: str = "0"
    is_active: bool = False
    last_updated: datetime.datetime


class TokenBalance(BaseModel):
    """Payment token holdings of an account, in whole token units"""
    token: str
    balance: str
    allowance: str
    decimals: int


# API request bodies

class CreatePolicyRequest(BaseModel):
    """Model for a policy creation request"""
    policy_holder: str
    risk_score: int = Field(ge=1, le=100)
    duration_days: int = Field(gt=0)
    ipfs_hash: Optional[str] = None


class ServiceRequestCreate(BaseModel):
    """Model for filing a service request; amount is in ether"""
    policy_id: int
    patient: str
    doctor: str
    icd_code: str
    sut_code: str
    amount: str


class ProcessServiceRequest(BaseModel):
    """Model for processing a request, by hash or by uploading the report"""
    ipfs_hash: Optional[str] = None
    document_base64: Optional[str] = None


class DocumentUpload(BaseModel):
    base64: str
    mime_type: str = "application/pdf"


class IcdCodeCreate(BaseModel):
    code: str = Field(min_length=1)
    description: str
    requires_sut: bool = False
    is_pre_existing: bool = False
    coverage_percentage: int = Field(ge=0, le=100)


class SutCodeCreate(BaseModel):
    """Model for registering a procedure code; base_price is in ether"""
    code: str = Field(min_length=1)
    description: str
    service_type: ServiceCategory
    base_price: str


class ApprovalUpdate(BaseModel):
    is_approved: bool


class HospitalServicePrice(BaseModel):
    """Model for adding or repricing a hospital service; price is in ether"""
    sut_code: str = Field(min_length=1)
    price: str


class PreExistingConditionCreate(BaseModel):
    icd_code: str = Field(min_length=1)
    diagnosis_date: datetime.datetime


class TokenApproval(BaseModel):
    amount: str
