import os
import logging
import random
import string
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, HTTPException, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Literal, Dict, Any
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import database
import search
import storage
from database import collection, create_document, get_document, get_documents, now_ms, serialize
from passwords import hash_password, verify_password, generate_password
from schemas import (
    ALL_MODULES, STAFF_ID_PATTERN, DormantReason, SearchFilters, SearchModule,
    UserAccount, Company, Member, Document, Notification, SavedSearch,
)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
logging.basicConfig(level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO), format=LOG_FORMAT)
logger = logging.getLogger(__name__)

ADMIN_SETUP_KEY = "admin_registration"
STAFF_ID_ATTEMPTS = 5


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes()
    yield


app = FastAPI(title="Member Portal API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBearer(auto_error=False)

# Token is the user id; role checks below are the only access control.
class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class LoginResponse(BaseModel):
    token: str
    user_id: str
    role: str
    email: str
    first_name: str
    last_name: str
    company_id: Optional[str] = None

# Utilities

def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid id")


def get_or_404(collection_name: str, doc_id: str, label: str) -> Dict[str, Any]:
    doc = get_document(collection_name, to_object_id(doc_id))
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize(user)
    out.pop("password_hash", None)
    return out


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Very light auth: expects Authorization: Bearer <user_id>. If not provided, treat as guest."""
    if not credentials:
        return None
    user = get_document("users", credentials.credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")
    user["_id"] = str(user["_id"])
    return user


def require_user(user=Depends(get_current_user)):
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user=Depends(get_current_user)):
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def member_for_user(user: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return collection("members").find_one({"user_id": user["_id"]})


def ensure_can_view_member(user: Dict[str, Any], member_id: str) -> None:
    """Admins see everyone; members only themselves."""
    if user.get("role") == "admin":
        return
    own = member_for_user(user)
    if not own or str(own["_id"]) != member_id:
        raise HTTPException(status_code=403, detail="Forbidden")


def notify(user_id: str, title: str, message: str, type: str = "info", related: Optional[Dict[str, str]] = None) -> str:
    return create_document("notifications", {
        "user_id": user_id,
        "title": title,
        "message": message,
        "type": type,
        "read": False,
        "related": related,
    })


def company_name(company_id: Optional[str]) -> str:
    company = get_document("companies", company_id)
    return company["name"] if company else "Unknown"


def generate_staff_id(first_name: str, last_name: str) -> str:
    """Initials plus six random digits, e.g. JD123456."""
    initials = ""
    for name in (first_name, last_name):
        letters = [c for c in name.upper() if c in string.ascii_uppercase]
        initials += letters[0] if letters else random.choice(string.ascii_uppercase)
    return initials + "".join(random.choices(string.digits, k=6))


@app.get("/")
def read_root():
    return {"message": "Member Portal Backend Running"}


@app.get("/test")
def test_database():
    info = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            info["database"] = "✅ Available"
            info["connection_status"] = "Connected"
            info["collections"] = database.db.list_collection_names()
    except Exception as e:
        info["database"] = f"⚠️ Error: {str(e)[:60]}"
    return info


# Authentication

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)


def insert_user(payload: RegisterRequest, role: str, company_id: Optional[str] = None) -> str:
    return create_document("users", {
        "email": payload.email,
        "password_hash": hash_password(payload.password),
        "role": role,
        "company_id": company_id,
        "first_name": payload.first_name,
        "last_name": payload.last_name,
    })


@app.post("/auth/register")
def register_admin(payload: RegisterRequest):
    """Self-registration of the first admin; closed once the setup record exists."""
    try:
        collection("setup").insert_one({"_id": ADMIN_SETUP_KEY, "created_at": now_ms()})
    except DuplicateKeyError:
        raise HTTPException(status_code=403, detail="Admin registration is closed. An admin already exists.")
    try:
        user_id = insert_user(payload, "admin")
    except DuplicateKeyError:
        collection("setup").delete_one({"_id": ADMIN_SETUP_KEY})
        logger.warning("Admin registration with existing email %s", payload.email)
        raise HTTPException(status_code=400, detail="Email already registered")
    except Exception:
        collection("setup").delete_one({"_id": ADMIN_SETUP_KEY})
        logger.exception("Admin registration failed; setup record released")
        raise
    collection("setup").update_one({"_id": ADMIN_SETUP_KEY}, {"$set": {"user_id": user_id}})
    logger.info("First admin registered: %s", user_id)
    return {"user_id": user_id, "email": payload.email, "role": "admin",
            "first_name": payload.first_name, "last_name": payload.last_name}


@app.get("/auth/admin-exists")
def admin_exists():
    return {"exists": collection("setup").find_one({"_id": ADMIN_SETUP_KEY}) is not None}


@app.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest):
    user = collection("users").find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.warning("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return LoginResponse(
        token=str(user["_id"]),
        user_id=str(user["_id"]),
        role=user["role"],
        email=user["email"],
        first_name=user.get("first_name", ""),
        last_name=user.get("last_name", ""),
        company_id=user.get("company_id"),
    )


@app.get("/me")
def my_profile(user=Depends(require_user)):
    member = member_for_user(user)
    profile = None
    if member:
        profile = serialize(member)
        profile["company_name"] = company_name(member.get("company_id"))
    return {"user": public_user(user), "member": profile}


@app.get("/me/documents")
def my_documents(user=Depends(require_user)):
    member = member_for_user(user)
    if not member:
        raise HTTPException(status_code=404, detail="Member profile not found")
    items = []
    for doc in collection("documents").find({"member_id": str(member["_id"])}).sort("uploaded_at", -1):
        out = serialize(doc)
        out["file_url"] = storage.get_url(doc.get("storage_id"))
        items.append(out)
    return items


# Admin user management

class RoleUpdate(BaseModel):
    role: Literal["admin", "member"]


@app.post("/admin/users")
def create_admin(payload: RegisterRequest, user=Depends(require_admin)):
    try:
        user_id = insert_user(payload, "admin")
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User with this email already exists")
    logger.info("Admin %s created admin %s", user["_id"], user_id)
    return {"user_id": user_id, "message": "Admin user created successfully"}


@app.put("/admin/users/{user_id}/role")
def update_user_role(user_id: str, payload: RoleUpdate, user=Depends(require_admin)):
    result = collection("users").update_one({"_id": to_object_id(user_id)}, {"$set": {"role": payload.role}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": f"User role updated to {payload.role}"}


@app.get("/users")
def list_users(role: Optional[Literal["admin", "member"]] = None, user=Depends(require_admin)):
    query = {"role": role} if role else {}
    return [public_user(u) for u in get_documents("users", query)]


# Companies

class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    region: Optional[str] = None
    branch: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    region: Optional[str] = None
    branch: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@app.post("/companies")
def create_company(payload: CompanyCreate, user=Depends(require_admin)):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Company name is required")
    data = payload.model_dump()
    data["name"] = payload.name.strip()
    data["created_by"] = user["_id"]
    company_id = create_document("companies", data)
    logger.info("Company %s created by %s", company_id, user["_id"])
    return {"id": company_id}


@app.get("/companies")
def list_companies(user=Depends(require_user)):
    return [serialize(c) for c in get_documents("companies")]


@app.get("/companies/search/global")
def global_search(q: str = "", user=Depends(require_admin)):
    """Quick lookup for the header search box: companies and members only."""
    if len(q.strip()) < 2:
        return {"companies": [], "members": []}
    results = search.advanced_search(q, ["companies", "members"], limit=10)
    return {"companies": results["companies"], "members": results["members"]}


@app.get("/companies/{company_id}")
def get_company(company_id: str, user=Depends(require_user)):
    return serialize(get_or_404("companies", company_id, "Company"))


@app.put("/companies/{company_id}")
def update_company(company_id: str, payload: CompanyUpdate, user=Depends(require_admin)):
    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates:
        if not updates["name"] or not updates["name"].strip():
            raise HTTPException(status_code=400, detail="Company name is required")
        updates["name"] = updates["name"].strip()
    company = get_or_404("companies", company_id, "Company")
    if updates:
        collection("companies").update_one({"_id": company["_id"]}, {"$set": updates})
    return {"updated": True}


@app.delete("/companies/{company_id}")
def delete_company(company_id: str, user=Depends(require_admin)):
    company = get_or_404("companies", company_id, "Company")
    if collection("members").count_documents({"company_id": company_id}) > 0:
        raise HTTPException(status_code=400, detail="Company still has members; move or remove them first")
    collection("companies").delete_one({"_id": company["_id"]})
    logger.info("Company %s deleted by %s", company_id, user["_id"])
    return {"deleted": True}


@app.get("/companies/{company_id}/stats")
def company_stats(company_id: str, user=Depends(require_admin)):
    get_or_404("companies", company_id, "Company")
    return {
        "total_members": collection("members").count_documents({"company_id": company_id}),
        "active_members": collection("members").count_documents({"company_id": company_id, "status": "active"}),
        "total_documents": collection("documents").count_documents({"company_id": company_id}),
    }


@app.get("/companies/{company_id}/members")
def company_members(company_id: str, user=Depends(require_admin)):
    get_or_404("companies", company_id, "Company")
    return [serialize(m) for m in get_documents("members", {"company_id": company_id})]


# Members

class MemberCreate(BaseModel):
    company_id: str
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    gender: Literal["male", "female"]
    staff_id: Optional[str] = Field(None, pattern=STAFF_ID_PATTERN)
    id_card_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[str] = None
    next_of_kin: Optional[str] = None
    emergency_contact: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    region: Optional[str] = None
    branch: Optional[str] = None
    status: Literal["active", "dormant"] = "active"
    dormant_reason: Optional[DormantReason] = None
    dormant_note: Optional[str] = None

class MemberUpdate(BaseModel):
    company_id: Optional[str] = None
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    gender: Optional[Literal["male", "female"]] = None
    staff_id: Optional[str] = Field(None, pattern=STAFF_ID_PATTERN)
    id_card_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[str] = None
    next_of_kin: Optional[str] = None
    emergency_contact: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    region: Optional[str] = None
    branch: Optional[str] = None
    status: Optional[Literal["active", "dormant"]] = None
    dormant_reason: Optional[DormantReason] = None
    dormant_note: Optional[str] = None

USER_MIRRORED_FIELDS = ("first_name", "last_name", "email", "company_id")
DORMANT_FIELDS = ("dormant_reason", "dormant_note")


def insert_member(profile: Dict[str, Any], staff_id: Optional[str]) -> str:
    """Insert a member profile; generated staff ids are retried on collision."""
    if staff_id:
        profile["staff_id"] = staff_id.upper()
        return create_document("members", profile)
    # user_id is fresh, so a duplicate key here is a staff id collision
    for _ in range(STAFF_ID_ATTEMPTS):
        profile["staff_id"] = generate_staff_id(profile["first_name"], profile["last_name"])
        try:
            return create_document("members", profile)
        except DuplicateKeyError:
            logger.info("Generated staff ID %s already taken, retrying", profile["staff_id"])
    raise HTTPException(status_code=400, detail="Could not allocate a unique staff ID")


@app.post("/members")
def create_member(payload: MemberCreate, user=Depends(require_admin)):
    get_or_404("companies", payload.company_id, "Company")
    if payload.status == "active" and (payload.dormant_reason or payload.dormant_note):
        raise HTTPException(status_code=400, detail="Dormant reason only applies to dormant members")

    plain_password = generate_password()
    account = RegisterRequest(email=payload.email, password=plain_password,
                              first_name=payload.first_name, last_name=payload.last_name)
    try:
        user_id = insert_user(account, "member", company_id=payload.company_id)
    except DuplicateKeyError:
        logger.warning("Member creation with existing email %s", payload.email)
        raise HTTPException(status_code=400, detail="Email already registered")

    profile = payload.model_dump(exclude={"staff_id"})
    profile.update({"user_id": user_id, "date_joined": now_ms(), "created_by": user["_id"]})
    try:
        member_id = insert_member(profile, payload.staff_id)
    except (DuplicateKeyError, HTTPException) as e:
        collection("users").delete_one({"_id": ObjectId(user_id)})
        if isinstance(e, HTTPException):
            raise
        logger.warning("Member creation with existing staff ID %s", payload.staff_id)
        raise HTTPException(status_code=400, detail="Staff ID already in use")

    notify(user["_id"], "New Member Added",
           f"{payload.first_name} {payload.last_name} has been added to the system",
           type="success", related={"kind": "member", "id": member_id})
    logger.info("Member %s (%s) created by %s", member_id, profile["staff_id"], user["_id"])
    return {"member_id": member_id, "user_id": user_id, "staff_id": profile["staff_id"],
            "generated_password": plain_password}


@app.get("/members")
def list_members(company_id: Optional[str] = None, status: Optional[Literal["active", "dormant"]] = None, user=Depends(require_admin)):
    query = {}
    if company_id:
        query["company_id"] = company_id
    if status:
        query["status"] = status
    return [serialize(m) for m in get_documents("members", query)]


@app.get("/members/search")
def search_members(term: str = "", company_id: Optional[str] = None,
                   status: Literal["active", "dormant", "all"] = "all", user=Depends(require_admin)):
    filters = SearchFilters(company_id=company_id, member_status=None if status == "all" else status)
    return [
        serialize(m) for m in get_documents("members")
        if search.matches_term("members", m, term.strip()) and search.matches_filters("members", m, filters)
    ]


@app.get("/members/{member_id}")
def get_member(member_id: str, user=Depends(require_user)):
    ensure_can_view_member(user, member_id)
    member = serialize(get_or_404("members", member_id, "Member"))
    member["company_name"] = company_name(member.get("company_id"))
    return member


@app.put("/members/{member_id}")
def update_member(member_id: str, payload: MemberUpdate, user=Depends(require_admin)):
    member = get_or_404("members", member_id, "Member")
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    unset = {}

    status = updates.get("status", member.get("status"))
    if status == "active":
        if updates.get("dormant_reason") or updates.get("dormant_note"):
            raise HTTPException(status_code=400, detail="Dormant reason only applies to dormant members")
        unset = {f: "" for f in DORMANT_FIELDS}
    if "company_id" in updates:
        get_or_404("companies", updates["company_id"], "Company")
    if "staff_id" in updates:
        updates["staff_id"] = updates["staff_id"].upper()

    account = collection("users").find_one({"_id": to_object_id(member["user_id"])})
    mirrored = {f: updates[f] for f in USER_MIRRORED_FIELDS if f in updates}
    if account and mirrored:
        try:
            collection("users").update_one({"_id": account["_id"]}, {"$set": mirrored})
        except DuplicateKeyError:
            raise HTTPException(status_code=400, detail="Email already registered")

    change = {}
    if updates:
        change["$set"] = updates
    if unset:
        change["$unset"] = unset
    if change:
        try:
            collection("members").update_one({"_id": member["_id"]}, change)
        except DuplicateKeyError:
            if account and mirrored:
                collection("users").update_one({"_id": account["_id"]},
                                               {"$set": {f: account.get(f) for f in mirrored}})
            raise HTTPException(status_code=400, detail="Staff ID already in use")
    return {"updated": True}


@app.post("/members/{member_id}/toggle-status")
def toggle_member_status(member_id: str, user=Depends(require_admin)):
    member = get_or_404("members", member_id, "Member")
    new_status = "dormant" if member.get("status") == "active" else "active"
    change: Dict[str, Any] = {"$set": {"status": new_status}}
    if new_status == "active":
        change["$unset"] = {f: "" for f in DORMANT_FIELDS}
    collection("members").update_one({"_id": member["_id"]}, change)
    return {"status": new_status}


def delete_document_record(doc: Dict[str, Any]) -> None:
    storage.delete_blob(doc.get("storage_id"))
    collection("documents").delete_one({"_id": doc["_id"]})


@app.delete("/members/{member_id}")
def delete_member(member_id: str, user=Depends(require_admin)):
    member = get_or_404("members", member_id, "Member")
    for doc in get_documents("documents", {"member_id": member_id}):
        delete_document_record(doc)
    collection("members").delete_one({"_id": member["_id"]})
    if member.get("user_id"):
        collection("notifications").delete_many({"user_id": member["user_id"]})
        collection("users").delete_one({"_id": to_object_id(member["user_id"])})
    logger.info("Member %s deleted by %s", member_id, user["_id"])
    return {"deleted": True}


# Documents (upload blob first, then register metadata)

class DocumentCreate(BaseModel):
    member_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    storage_id: str

class DocumentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None


def ensure_can_view_document(user: Dict[str, Any], doc: Dict[str, Any]) -> None:
    if user.get("role") == "admin":
        return
    own = member_for_user(user)
    if not own or str(own["_id"]) != doc.get("member_id"):
        raise HTTPException(status_code=404, detail="Document not found")


@app.post("/storage/upload")
async def upload_blob(request: Request, user=Depends(require_admin)):
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")
    storage_id = storage.put_blob(data, request.headers.get("content-type", "application/octet-stream"))
    return {"storage_id": storage_id}


@app.get("/storage/{storage_id}")
def download_blob(storage_id: str, user=Depends(require_user)):
    if user.get("role") != "admin":
        doc = collection("documents").find_one({"storage_id": storage_id})
        if not doc:
            raise HTTPException(status_code=404, detail="File not found")
        ensure_can_view_document(user, doc)
    blob = storage.get_blob(storage_id)
    if not blob:
        raise HTTPException(status_code=404, detail="File not found")
    return Response(content=blob["data"], media_type=blob["content_type"])


@app.post("/documents")
def register_document(payload: DocumentCreate, user=Depends(require_admin)):
    member = get_or_404("members", payload.member_id, "Member")
    blob = storage.get_blob_info(payload.storage_id)
    if blob is None:
        raise HTTPException(status_code=400, detail="Unknown storage reference")
    doc_id = create_document("documents", {
        "member_id": payload.member_id,
        "company_id": member["company_id"],
        "title": payload.title,
        "description": payload.description,
        "storage_id": payload.storage_id,
        "file_type": blob["content_type"],
        "file_size": blob["size"],
        "uploaded_by": user["_id"],
        "uploaded_at": now_ms(),
    })
    notify(member["user_id"], "New Document Uploaded",
           f'A new document "{payload.title}" has been uploaded',
           related={"kind": "document", "id": doc_id})
    logger.info("Document %s registered for member %s", doc_id, payload.member_id)
    return {"id": doc_id}


@app.get("/documents")
def list_documents(member_id: Optional[str] = None, company_id: Optional[str] = None, user=Depends(require_admin)):
    query = {}
    if member_id:
        query["member_id"] = member_id
    elif company_id:
        query["company_id"] = company_id
    return [serialize(d) for d in get_documents("documents", query)]


@app.get("/documents/member/{member_id}")
def member_documents(member_id: str, user=Depends(require_user)):
    ensure_can_view_member(user, member_id)
    items = []
    for doc in get_documents("documents", {"member_id": member_id}):
        uploader = get_document("users", doc.get("uploaded_by"))
        out = serialize(doc)
        out["uploader_name"] = f"{uploader['first_name']} {uploader['last_name']}" if uploader else "Unknown"
        out["file_url"] = storage.get_url(doc.get("storage_id"))
        items.append(out)
    return items


@app.get("/documents/{document_id}")
def get_document_detail(document_id: str, user=Depends(require_user)):
    doc = get_or_404("documents", document_id, "Document")
    ensure_can_view_document(user, doc)
    out = serialize(doc)
    out["file_url"] = storage.get_url(doc.get("storage_id"))
    return out


@app.put("/documents/{document_id}")
def update_document(document_id: str, payload: DocumentUpdate, user=Depends(require_admin)):
    doc = get_or_404("documents", document_id, "Document")
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("title") is None:
        updates.pop("title", None)
    if updates:
        collection("documents").update_one({"_id": doc["_id"]}, {"$set": updates})
    return {"updated": True}


@app.delete("/documents/{document_id}")
def delete_document(document_id: str, user=Depends(require_admin)):
    doc = get_or_404("documents", document_id, "Document")
    delete_document_record(doc)
    logger.info("Document %s deleted by %s", document_id, user["_id"])
    return {"deleted": True}


# Notifications

class NotificationCreate(BaseModel):
    user_id: str
    title: str
    message: str
    type: Literal["info", "success", "warning", "error"] = "info"
    related_kind: Optional[Literal["member", "document"]] = None
    related_id: Optional[str] = None


def own_notification_query(notification_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    return {"_id": to_object_id(notification_id), "user_id": user["_id"]}


@app.post("/notifications")
def create_notification(payload: NotificationCreate, user=Depends(require_admin)):
    get_or_404("users", payload.user_id, "User")
    related = None
    if payload.related_kind and payload.related_id:
        related = {"kind": payload.related_kind, "id": payload.related_id}
    return {"id": notify(payload.user_id, payload.title, payload.message, payload.type, related)}


@app.get("/notifications")
def my_notifications(user=Depends(require_user)):
    items = collection("notifications").find({"user_id": user["_id"]}).sort("created_at", -1).limit(50)
    return [serialize(n) for n in items]


@app.get("/notifications/unread-count")
def unread_count(user=Depends(require_user)):
    return {"count": collection("notifications").count_documents({"user_id": user["_id"], "read": False})}


@app.post("/notifications/read-all")
def mark_all_read(user=Depends(require_user)):
    result = collection("notifications").update_many({"user_id": user["_id"], "read": False}, {"$set": {"read": True}})
    return {"updated": result.modified_count}


@app.post("/notifications/{notification_id}/read")
def mark_read(notification_id: str, user=Depends(require_user)):
    result = collection("notifications").update_one(own_notification_query(notification_id, user), {"$set": {"read": True}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"updated": True}


@app.delete("/notifications")
def delete_all_notifications(user=Depends(require_user)):
    result = collection("notifications").delete_many({"user_id": user["_id"]})
    return {"deleted": result.deleted_count}


@app.delete("/notifications/{notification_id}")
def delete_notification(notification_id: str, user=Depends(require_user)):
    result = collection("notifications").delete_one(own_notification_query(notification_id, user))
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"deleted": True}


# Advanced search and saved searches

class SearchRequest(BaseModel):
    search_term: Optional[str] = None
    modules: Optional[List[SearchModule]] = None
    filters: Optional[SearchFilters] = None
    limit: Optional[int] = Field(None, ge=1)

class SaveSearchRequest(BaseModel):
    name: str
    search_term: Optional[str] = None
    modules: List[SearchModule] = Field(default_factory=lambda: list(ALL_MODULES))
    filters: SearchFilters = Field(default_factory=SearchFilters)

class SavedSearchUpdate(BaseModel):
    name: Optional[str] = None
    search_term: Optional[str] = None
    modules: Optional[List[SearchModule]] = None
    filters: Optional[SearchFilters] = None


@app.post("/search")
def advanced_search(payload: SearchRequest, user=Depends(require_admin)):
    return search.advanced_search(payload.search_term, payload.modules, payload.filters, payload.limit)


@app.get("/search/filter-options")
def filter_options(user=Depends(require_admin)):
    return search.get_filter_options()


@app.post("/search/saved")
def save_search(payload: SaveSearchRequest, user=Depends(require_user)):
    try:
        return search.save_search(user["_id"], payload.name, payload.search_term, payload.modules, payload.filters)
    except search.InvalidSearch as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/search/saved")
def saved_searches(user=Depends(require_user)):
    return search.list_saved_searches(user["_id"])


@app.post("/search/saved/{search_id}/use")
def use_saved_search(search_id: str, user=Depends(require_user)):
    try:
        return search.touch_saved_search(search_id, user["_id"])
    except search.SearchNotFound:
        raise HTTPException(status_code=404, detail="Search not found")


@app.put("/search/saved/{search_id}")
def update_saved_search(search_id: str, payload: SavedSearchUpdate, user=Depends(require_user)):
    try:
        search.update_saved_search(search_id, payload.model_dump(exclude_unset=True), user["_id"])
    except search.SearchNotFound:
        raise HTTPException(status_code=404, detail="Search not found")
    except search.InvalidSearch as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"updated": True}


@app.delete("/search/saved/{search_id}")
def delete_saved_search(search_id: str, user=Depends(require_user)):
    try:
        search.delete_saved_search(search_id, user["_id"])
    except search.SearchNotFound:
        raise HTTPException(status_code=404, detail="Search not found")
    return {"deleted": True}


# Dashboard

def start_of_month_ms() -> int:
    now = datetime.now(timezone.utc)
    return int(now.replace(day=1, hour=0, minute=0, second=0, microsecond=0).timestamp() * 1000)


def recent(collection_name: str, field: str, limit: int = 5) -> List[Dict[str, Any]]:
    return [serialize(d) for d in collection(collection_name).find({}).sort(field, -1).limit(limit)]


@app.get("/admin/dashboard")
def dashboard(user=Depends(require_admin)):
    return {
        "total_companies": collection("companies").count_documents({}),
        "total_members": collection("members").count_documents({}),
        "active_members": collection("members").count_documents({"status": "active"}),
        "dormant_members": collection("members").count_documents({"status": "dormant"}),
        "total_documents": collection("documents").count_documents({}),
        "documents_this_month": collection("documents").count_documents({"uploaded_at": {"$gte": start_of_month_ms()}}),
        "recent_companies": recent("companies", "created_at"),
        "recent_members": recent("members", "date_joined"),
        "recent_documents": recent("documents", "uploaded_at"),
    }


# Schema endpoint for tooling
@app.get("/schema")
def get_schema_models():
    return {
        "models": [
            model.__name__ for model in (UserAccount, Company, Member, Document, Notification, SavedSearch)
        ]
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
