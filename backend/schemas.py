from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

InvoiceStatus = Literal["pending", "paid", "cancelled"]
PaymentMethod = Literal["cash", "card", "upi", "insurance", "other"]
BillingType = Literal["full", "admission", "discharge"]
# "occupied" is derived from the bed count and never accepted from callers
RoomStatusOverride = Literal["available", "maintenance"]


class Patient(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    firstName: str = Field(min_length=1)
    lastName: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: Optional[str] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    patient_id: Optional[str] = Field(default=None, description="Auto-generated unique patient id")


class Department(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    description: Optional[str] = None


class Doctor(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    firstName: str = Field(min_length=1)
    lastName: str = Field(min_length=1)
    email: str = Field(min_length=1)
    specialization: Optional[str] = None
    department: Optional[str] = Field(default=None, description="Department id")


class LineItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    unitPrice: float = Field(ge=0)
    total: Optional[float] = Field(default=None, description="Defaults to quantity * unitPrice")


class PatientDetails(BaseModel):
    name: Optional[str] = None
    admissionNumber: Optional[str] = None
    contact: Optional[str] = None


class HospitalDetails(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None


class InsuranceDetails(BaseModel):
    provider: Optional[str] = None
    policyNumber: Optional[str] = None
    coverageAmount: Optional[float] = Field(default=None, ge=0)
    coveragePercentage: Optional[float] = Field(default=None, ge=0, le=100)


class Signatures(BaseModel):
    billingStaff: Optional[str] = None
    patient: Optional[str] = None


class InvoiceCreate(BaseModel):
    patient: str
    doctor: str
    appointment: Optional[str] = None
    invoiceNumber: Optional[str] = None
    invoiceDate: Optional[datetime] = None
    department: Optional[str] = None

    patientDetails: PatientDetails = Field(default_factory=PatientDetails)
    hospitalDetails: HospitalDetails = Field(default_factory=HospitalDetails)
    insuranceDetails: InsuranceDetails = Field(default_factory=InsuranceDetails)
    signatures: Signatures = Field(default_factory=Signatures)

    items: List[LineItem] = []
    tax: float = Field(default=0, ge=0, le=100)
    discount: float = Field(default=0, ge=0, le=100)
    amountPaid: float = Field(default=0, ge=0)

    paymentMethod: PaymentMethod = "cash"
    billingType: BillingType = "full"
    admissionPayment: float = Field(default=0, ge=0)
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    """Partial update; only fields the caller actually sent are applied."""

    items: Optional[List[LineItem]] = None
    tax: Optional[float] = Field(default=None, ge=0, le=100)
    discount: Optional[float] = Field(default=None, ge=0, le=100)
    amountPaid: Optional[float] = Field(default=None, ge=0)
    doctor: Optional[str] = None
    department: Optional[str] = None
    appointment: Optional[str] = None
    invoiceDate: Optional[datetime] = None

    patientDetails: Optional[PatientDetails] = None
    hospitalDetails: Optional[HospitalDetails] = None
    insuranceDetails: Optional[InsuranceDetails] = None
    signatures: Optional[Signatures] = None

    status: Optional[InvoiceStatus] = None
    paymentMethod: Optional[PaymentMethod] = None
    billingType: Optional[BillingType] = None
    admissionPayment: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class TotalsRequest(BaseModel):
    items: List[LineItem] = []
    tax: float = Field(default=0, ge=0, le=100)
    discount: float = Field(default=0, ge=0, le=100)


class Totals(BaseModel):
    subTotal: float
    taxAmount: float
    discountAmount: float
    grandTotal: float


class RoomCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    roomNumber: str = Field(min_length=1)
    type: str = "general"
    capacity: int = Field(default=1, ge=1)
    status: RoomStatusOverride = "available"


class RoomUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    roomNumber: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    status: Optional[RoomStatusOverride] = None


class RoomAssign(BaseModel):
    patient: str
    admittedDate: Optional[datetime] = None


class RoomDischarge(BaseModel):
    patient: str
    dischargedDate: Optional[datetime] = None
