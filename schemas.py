"""
Database Schemas for MedTrap

MongoDB collections are defined below using Pydantic models. Each class name
is converted to lowercase for the collection name (Company -> "company").
Documents are stored with camelCase keys, which is also the wire format.

We will use these collections:
- user: medical store accounts (owner, staff, admin)
- company: pharmaceutical manufacturers
- medicine: drug products, with per-stockist stock and user reviews
- stockist: distributors / wholesalers
- staff, purchaser: identity records shown as QR cards

The *Patch models carry the same rules with every field optional but never
null; they back the PUT endpoints, which only touch the fields that were sent.
"""
import re
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["owner", "staff", "admin"]
Status = Literal["active", "inactive"]

CompanyCategory = Literal["multinational", "national", "regional", "local"]
CompanySpecialization = Literal[
    "antibiotics", "painkillers", "vitamins", "diabetes", "cardiac", "oncology", "pediatrics", "general",
]
MedicineCategory = Literal[
    "antibiotics", "painkillers", "vitamins", "diabetes", "cardiac", "oncology", "pediatrics", "general", "other",
]
DosageForm = Literal["tablet", "capsule", "syrup", "injection", "cream", "ointment", "drops", "inhaler", "other"]
Schedule = Literal["OTC", "Schedule H", "Schedule H1", "Schedule X", "Schedule G"]
PregnancyCategory = Literal["A", "B", "C", "D", "X"]
StockistSpecialization = Literal["antibiotics", "painkillers", "vitamins", "diabetes", "cardiac", "general"]
PaymentTerms = Literal["cash", "credit", "both"]


def _matches(pattern: str, message: str):
    compiled = re.compile(pattern)

    def check(value: str) -> str:
        if not compiled.match(value):
            raise ValueError(message)
        return value
    return AfterValidator(check)


def _object_id(message: str):
    def check(value: str) -> str:
        if not ObjectId.is_valid(value):
            raise ValueError(message)
        return value
    return AfterValidator(check)


def _naive_utc(value: datetime) -> datetime:
    # BSON dates carry no zone; keep everything as naive UTC
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


Phone = Annotated[str, _matches(r"^[0-9+\-\s()]+$", "Please provide a valid phone number")]
Pincode = Annotated[str, _matches(r"^[0-9]{6}$", "Please provide a valid 6-digit pincode")]
Website = Annotated[str, _matches(r"^https?://.+", "Please provide a valid website URL")]
Email = Annotated[EmailStr, AfterValidator(str.lower)]
LicenseNo = Annotated[str, StringConstraints(strip_whitespace=True, to_upper=True, min_length=1)]
NonEmpty = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]
ObjectIdStr = Annotated[str, _object_id("Invalid id")]


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class Patch(Schema):
    # omitted fields stay untouched, an explicit null is rejected
    @field_validator("*", mode="before")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("cannot be null")
        return value


class ImageRef(Schema):
    url: Optional[str] = None
    public_id: Optional[str] = None


class Address(Schema):
    street: NonEmpty
    city: NonEmpty
    state: NonEmpty
    pincode: Pincode


class AddressPatch(Patch):
    street: Optional[NonEmpty] = None
    city: Optional[NonEmpty] = None
    state: Optional[NonEmpty] = None
    pincode: Optional[Pincode] = None


# Users

class User(Schema):
    medical_name: str = Field(..., min_length=2, max_length=100)
    owner_name: str = Field(..., min_length=2, max_length=50)
    email: Email
    contact_no: Phone
    address: Address
    drug_license_no: LicenseNo
    drug_license_image: Optional[ImageRef] = None
    password_hash: str = Field(..., description="BCrypt hash of password")
    role: Role = "owner"
    is_verified: bool = False
    status: Status = "active"
    last_login: Optional[UtcDatetime] = None


class UserProfilePatch(Patch):
    medical_name: Optional[str] = Field(None, min_length=2, max_length=100)
    owner_name: Optional[str] = Field(None, min_length=2, max_length=50)
    contact_no: Optional[Phone] = None
    address: Optional[AddressPatch] = None
    drug_license_image: Optional[ImageRef] = None


class UserAdminPatch(UserProfilePatch):
    email: Optional[Email] = None
    role: Optional[Role] = None
    is_verified: Optional[bool] = None
    status: Optional[Status] = None


# Companies

class CompanyAddress(Schema):
    street: Optional[NonEmpty] = None
    city: Optional[NonEmpty] = None
    state: Optional[NonEmpty] = None
    country: Optional[NonEmpty] = "India"
    pincode: Optional[str] = None


class ContactInfo(Schema):
    phone: Optional[Phone] = None
    email: Optional[Email] = None
    address: Optional[CompanyAddress] = None


class Certification(Schema):
    name: Optional[NonEmpty] = None
    issued_by: Optional[NonEmpty] = None
    issued_date: Optional[UtcDatetime] = None
    expiry_date: Optional[UtcDatetime] = None


class Company(Schema):
    name: str = Field(..., min_length=2, max_length=100)
    short_name: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = Field(None, max_length=500)
    logo: Optional[ImageRef] = None
    website: Optional[Website] = None
    contact_info: Optional[ContactInfo] = None
    license_number: LicenseNo
    license_expiry: UtcDatetime
    category: CompanyCategory = "national"
    specializations: List[CompanySpecialization] = []
    certifications: List[Certification] = []
    medicines: List[ObjectIdStr] = []
    stockists: List[ObjectIdStr] = []


class CompanyPatch(Patch):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    short_name: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = Field(None, max_length=500)
    logo: Optional[ImageRef] = None
    website: Optional[Website] = None
    contact_info: Optional[ContactInfo] = None
    license_number: Optional[LicenseNo] = None
    license_expiry: Optional[UtcDatetime] = None
    category: Optional[CompanyCategory] = None
    specializations: Optional[List[CompanySpecialization]] = None
    certifications: Optional[List[Certification]] = None
    medicines: Optional[List[ObjectIdStr]] = None
    stockists: Optional[List[ObjectIdStr]] = None


# Medicines

class Ingredient(Schema):
    ingredient: Optional[str] = None
    strength: Optional[str] = None
    unit: Optional[str] = None


class Price(Schema):
    mrp: float = Field(..., ge=0)
    trade_price: Optional[float] = Field(None, ge=0)
    retail_price: Optional[float] = Field(None, ge=0)


class PricePatch(Patch):
    mrp: Optional[float] = Field(None, ge=0)
    trade_price: Optional[float] = Field(None, ge=0)
    retail_price: Optional[float] = Field(None, ge=0)


class Medicine(Schema):
    name: str = Field(..., min_length=2, max_length=100)
    generic_name: Optional[str] = Field(None, min_length=2, max_length=100)
    brand_name: Optional[str] = Field(None, min_length=2, max_length=100)
    company: Annotated[str, _object_id("Valid company ID is required")]
    category: MedicineCategory
    sub_category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    composition: List[Ingredient] = []
    dosage_form: DosageForm
    strength: NonEmpty
    pack_size: NonEmpty
    price: Price
    prescription_required: bool = False
    schedule: Schedule = "OTC"
    storage: str = "Store in a cool, dry place"
    expiry_date: UtcDatetime
    batch_number: NonEmpty
    image: Optional[ImageRef] = None
    side_effects: List[str] = []
    contraindications: List[str] = []
    interactions: List[str] = []
    pregnancy_category: PregnancyCategory = "C"


class MedicinePatch(Patch):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    generic_name: Optional[str] = Field(None, min_length=2, max_length=100)
    brand_name: Optional[str] = Field(None, min_length=2, max_length=100)
    company: Optional[Annotated[str, _object_id("Valid company ID is required")]] = None
    category: Optional[MedicineCategory] = None
    sub_category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    composition: Optional[List[Ingredient]] = None
    dosage_form: Optional[DosageForm] = None
    strength: Optional[NonEmpty] = None
    pack_size: Optional[NonEmpty] = None
    price: Optional[PricePatch] = None
    prescription_required: Optional[bool] = None
    schedule: Optional[Schedule] = None
    storage: Optional[str] = None
    expiry_date: Optional[UtcDatetime] = None
    batch_number: Optional[NonEmpty] = None
    image: Optional[ImageRef] = None
    side_effects: Optional[List[str]] = None
    contraindications: Optional[List[str]] = None
    interactions: Optional[List[str]] = None
    pregnancy_category: Optional[PregnancyCategory] = None


# Stockists

class DeliveryArea(Schema):
    city: Optional[str] = None
    state: Optional[str] = None
    delivery_time: Optional[str] = None


class Stockist(Schema):
    name: str = Field(..., min_length=2, max_length=100)
    contact_person: NonEmpty
    phone: Phone
    email: Optional[Email] = None
    address: Address
    companies: List[ObjectIdStr] = []
    medicines: List[ObjectIdStr] = []
    license_number: LicenseNo
    license_expiry: UtcDatetime
    specializations: List[StockistSpecialization] = []
    delivery_areas: List[DeliveryArea] = []
    payment_terms: PaymentTerms = "both"
    minimum_order: float = Field(0, ge=0)


class StockistPatch(Patch):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    contact_person: Optional[NonEmpty] = None
    phone: Optional[Phone] = None
    email: Optional[Email] = None
    address: Optional[AddressPatch] = None
    companies: Optional[List[ObjectIdStr]] = None
    medicines: Optional[List[ObjectIdStr]] = None
    license_number: Optional[LicenseNo] = None
    license_expiry: Optional[UtcDatetime] = None
    specializations: Optional[List[StockistSpecialization]] = None
    delivery_areas: Optional[List[DeliveryArea]] = None
    payment_terms: Optional[PaymentTerms] = None
    minimum_order: Optional[float] = Field(None, ge=0)


# Staff and purchasers

class Staff(Schema):
    full_name: str = Field(..., min_length=2, max_length=100)
    contact: Phone
    email: Optional[Email] = None
    address: NonEmpty
    image: str
    aadhar_card: str
    created_by: Optional[ObjectIdStr] = None


class Purchaser(Schema):
    full_name: str = Field(..., min_length=2, max_length=100)
    contact_no: Phone
    address: NonEmpty
    photo: str
    aadhar_image: str


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
