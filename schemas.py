"""
Database Schemas for the Member Portal

Each Pydantic model maps to a MongoDB collection.
- UserAccount -> "users"
- Company -> "companies"
- Member -> "members"
- Document -> "documents"
- Notification -> "notifications"
- SavedSearch -> "saved_searches"

Timestamps are epoch milliseconds. These schemas are returned by GET /schema
for tooling/inspection.
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal

SearchModule = Literal["companies", "members", "documents"]
ALL_MODULES: List[str] = ["companies", "members", "documents"]

DormantReason = Literal["resignation", "retirement", "dismissal", "deferred", "other"]

STAFF_ID_PATTERN = r"^[A-Za-z]{2}\d{6}$"


class SearchFilters(BaseModel):
    company_region: Optional[str] = Field(None, description="Exact company region")
    company_branch: Optional[str] = Field(None, description="Exact company branch")
    member_status: Optional[Literal["active", "dormant"]] = Field(None, description="Member status")
    member_gender: Optional[Literal["male", "female"]] = Field(None, description="Member gender")
    member_region: Optional[str] = Field(None, description="Exact member region")
    member_department: Optional[str] = Field(None, description="Exact member department")
    member_position: Optional[str] = Field(None, description="Exact member position")
    company_id: Optional[str] = Field(None, description="Company _id for members and documents")
    document_file_type: Optional[str] = Field(None, description="Exact MIME type of documents")
    date_from: Optional[int] = Field(None, description="Inclusive lower bound, epoch ms")
    date_to: Optional[int] = Field(None, description="Inclusive upper bound, epoch ms")


class UserAccount(BaseModel):
    email: EmailStr = Field(..., description="Unique email used for login")
    password_hash: str = Field(..., description="BCrypt hashed password")
    role: Literal["admin", "member"] = Field("member", description="System role")
    company_id: Optional[str] = Field(None, description="Company _id for members")
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    created_at: Optional[int] = Field(None, description="Creation timestamp (autofilled)")


class Company(BaseModel):
    name: str = Field(..., min_length=1, description="Company name")
    description: Optional[str] = Field(None, description="Brief description")
    region: Optional[str] = Field(None, description="Region the company operates in")
    branch: Optional[str] = Field(None, description="Branch")
    address: Optional[str] = Field(None, description="Postal address")
    phone: Optional[str] = Field(None, description="Contact number")
    email: Optional[str] = Field(None, description="Contact email")
    created_by: Optional[str] = Field(None, description="UserAccount _id of the creating admin")
    created_at: Optional[int] = Field(None, description="Creation timestamp (autofilled)")


class Member(BaseModel):
    user_id: str = Field(..., description="UserAccount _id reference (1:1)")
    company_id: str = Field(..., description="Company _id reference")
    staff_id: str = Field(..., pattern=STAFF_ID_PATTERN, description="2 letters + 6 digits, unique")
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    email: EmailStr = Field(..., description="Email, mirrors the user account")
    gender: Literal["male", "female"] = Field(..., description="Gender")
    id_card_number: Optional[str] = Field(None, description="National ID card number")
    phone: Optional[str] = Field(None, description="Contact number")
    address: Optional[str] = Field(None, description="Address")
    date_of_birth: Optional[str] = Field(None, description="Date of birth")
    next_of_kin: Optional[str] = Field(None, description="Next of kin")
    emergency_contact: Optional[str] = Field(None, description="Emergency contact")
    position: Optional[str] = Field(None, description="Job title")
    department: Optional[str] = Field(None, description="Department")
    region: Optional[str] = Field(None, description="Region")
    branch: Optional[str] = Field(None, description="Work location")
    status: Literal["active", "dormant"] = Field("active", description="Membership status")
    dormant_reason: Optional[DormantReason] = Field(None, description="Why the member is dormant")
    dormant_note: Optional[str] = Field(None, description="Free-text note for dormancy")
    date_joined: Optional[int] = Field(None, description="Join timestamp")
    created_by: Optional[str] = Field(None, description="UserAccount _id of the creating admin")


class Document(BaseModel):
    member_id: str = Field(..., description="Member _id owning the document")
    company_id: str = Field(..., description="Company _id, copied from the member")
    title: str = Field(..., min_length=1, description="Document title")
    description: Optional[str] = Field(None, description="Description")
    storage_id: str = Field(..., description="Blob store reference")
    file_type: str = Field(..., description="MIME type")
    file_size: int = Field(..., ge=0, description="Size in bytes")
    uploaded_by: str = Field(..., description="UserAccount _id of the uploader")
    uploaded_at: Optional[int] = Field(None, description="Upload timestamp")


class RelatedEntity(BaseModel):
    kind: Literal["member", "document"]
    id: str


class Notification(BaseModel):
    user_id: str = Field(..., description="UserAccount _id of recipient")
    title: str = Field(..., description="Notification title")
    message: str = Field(..., description="Notification body")
    type: Literal["info", "success", "warning", "error"] = Field("info", description="Severity")
    read: bool = Field(False, description="Whether the user has read the notification")
    related: Optional[RelatedEntity] = Field(None, description="Entity that caused the notification")
    created_at: Optional[int] = Field(None, description="Creation timestamp (autofilled)")


class SavedSearch(BaseModel):
    user_id: str = Field(..., description="UserAccount _id of the owner")
    name: str = Field(..., min_length=1, description="Display name")
    search_term: Optional[str] = Field(None, description="Free-text term")
    modules: List[SearchModule] = Field(default_factory=lambda: list(ALL_MODULES), description="Modules to search")
    filters: SearchFilters = Field(default_factory=SearchFilters, description="Filter object")
    created_at: Optional[int] = Field(None, description="Creation timestamp")
    last_used: Optional[int] = Field(None, description="Last replay timestamp")
    use_count: int = Field(0, ge=0, description="Number of replays")
