"""
User accounts and the admin approval workflow.

Account states:

- regular: role "user", always approved
- admin-pending: role "admin", is_approved not true, cannot log in
- admin-approved: role "admin", is_approved true
- super-admin: the first admin ever created; approved for good

The first-admin check is a count followed by an insert. Two admin signups
racing on an empty collection can both become super-admin.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from auth import (
    check_password_policy,
    create_token,
    get_current_user,
    hash_password,
    require_admin,
    require_super_admin,
    verify_password,
)
from database import create_document, get_db, update_document
from errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PendingApprovalError,
    ValidationError,
)
from schemas import Role, User as UserSchema
from utils import oid, public_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


class SignUpRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: str = "user"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class AdminUserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None


def _find_user(user_id: str) -> dict:
    user = get_db()["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise NotFoundError("User")
    return user


def _ensure_email_free(email: str, user_id):
    taken = get_db()["user"].find_one({"email": email, "_id": {"$ne": user_id}})
    if taken:
        raise ConflictError("Email already in use")


def _account_summary(user: dict, **extra) -> dict:
    summary = {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "role": user["role"],
        "is_approved": user.get("is_approved"),
    }
    summary.update(extra)
    return summary


# Public

@router.post("/signup", status_code=201)
def signup(payload: SignUpRequest):
    name = payload.name.strip()
    if not name:
        raise ValidationError("Please provide all required fields")
    check_password_policy(payload.password)
    if payload.role not in ("user", "admin"):
        raise ValidationError("Invalid role. Must be either user or admin")

    email = payload.email.lower()
    users = get_db()["user"]
    if users.find_one({"email": email}):
        raise ConflictError("User with this email already exists")

    is_super_admin = False
    is_approved = True
    if payload.role == "admin":
        if users.count_documents({"role": "admin"}) == 0:
            is_super_admin = True
        else:
            is_approved = False

    user = UserSchema(
        name=name,
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        is_approved=is_approved,
        is_super_admin=is_super_admin,
    )
    user_id = create_document("user", user)
    doc = users.find_one({"_id": oid(user_id)})

    if payload.role == "admin" and not is_approved:
        logger.info("Admin signup pending approval: %s", email)
        return {
            "success": True,
            "message": "Admin account created successfully. Please wait for approval from a super administrator.",
            "needs_approval": True,
            "user": _account_summary(doc),
        }

    logger.info("User signed up: %s (role=%s, super_admin=%s)", email, payload.role, is_super_admin)
    return {
        "success": True,
        "message": "Super Admin account created successfully" if is_super_admin else "User registered successfully",
        "needs_approval": False,
        "user": _account_summary(doc, is_super_admin=is_super_admin, token=create_token(user_id)),
    }


@router.post("/login")
def login(payload: LoginRequest):
    user = get_db()["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash")):
        logger.info("Failed login for %s", payload.email)
        raise AuthenticationError("Invalid email or password")
    if user.get("role") == "admin" and user.get("is_approved") is not True:
        logger.info("Login refused, admin pending approval: %s", user["email"])
        raise PendingApprovalError()

    return {
        "success": True,
        "message": "Login successful",
        "user": _account_summary(
            user,
            is_super_admin=user.get("is_super_admin", False),
            token=create_token(str(user["_id"])),
        ),
    }


# Own profile

@router.get("/profile")
def get_profile(current: dict = Depends(get_current_user)):
    return {"success": True, "user": public_user(current)}


@router.put("/profile")
def update_profile(payload: ProfileUpdate, current: dict = Depends(get_current_user)):
    changes = {}
    if payload.name and payload.name.strip():
        changes["name"] = payload.name.strip()
    if payload.email:
        email = payload.email.lower()
        if email != current["email"]:
            _ensure_email_free(email, current["_id"])
            changes["email"] = email
    if payload.password:
        check_password_policy(payload.password)
        changes["password_hash"] = hash_password(payload.password)

    if changes:
        update_document("user", {"_id": current["_id"]}, {"$set": changes})
    user = _find_user(str(current["_id"]))
    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": {**public_user(user), "token": create_token(str(user["_id"]))},
    }


# Admin

@router.get("")
def list_users(admin: dict = Depends(require_admin)):
    users = [public_user(u) for u in get_db()["user"].find({}).sort("created_at", 1)]
    return {"success": True, "count": len(users), "users": users}


# Registered before /{user_id} so the literal path wins
@router.get("/pending-admins")
def list_pending_admins(actor: dict = Depends(require_super_admin)):
    # Anything other than an explicit true counts as pending, including a missing field
    cursor = get_db()["user"].find({"role": "admin", "is_approved": {"$ne": True}})
    pending = [public_user(u) for u in cursor if not u.get("is_super_admin")]
    return {"success": True, "count": len(pending), "pending_admins": pending}


@router.get("/{user_id}")
def get_user(user_id: str, admin: dict = Depends(require_admin)):
    return {"success": True, "user": public_user(_find_user(user_id))}


@router.put("/{user_id}")
def update_user(user_id: str, payload: AdminUserUpdate, admin: dict = Depends(require_admin)):
    user = _find_user(user_id)
    changes = {}
    if payload.name and payload.name.strip():
        changes["name"] = payload.name.strip()
    if payload.email:
        email = payload.email.lower()
        if email != user["email"]:
            _ensure_email_free(email, user["_id"])
            changes["email"] = email
    if payload.role and payload.role != user.get("role"):
        if user.get("is_super_admin"):
            raise ValidationError("Cannot change super admin role")
        changes["role"] = payload.role
        if payload.role == "user":
            changes["is_approved"] = True

    if changes:
        update_document("user", {"_id": user["_id"]}, {"$set": changes})
    user = _find_user(user_id)
    return {
        "success": True,
        "message": "User updated successfully",
        "user": _account_summary(user),
    }


@router.delete("/{user_id}")
def delete_user(user_id: str, actor: dict = Depends(require_super_admin)):
    user = _find_user(user_id)
    if user.get("is_super_admin") and user["_id"] != actor["_id"]:
        raise ValidationError("Cannot delete super admin user")
    get_db()["user"].delete_one({"_id": user["_id"]})
    logger.info("User %s deleted by %s", user["email"], actor["email"])
    return {"success": True, "message": "User removed successfully"}


# Approval workflow

@router.put("/{user_id}/approve")
def approve_admin(user_id: str, actor: dict = Depends(require_super_admin)):
    user = _find_user(user_id)
    if user.get("role") != "admin":
        raise ValidationError("User is not an admin")
    update_document("user", {"_id": user["_id"]}, {"$set": {"is_approved": True}})
    logger.info("Admin %s approved by %s", user["email"], actor["email"])
    user = _find_user(user_id)
    return {
        "success": True,
        "message": f"Admin {user['name']} has been approved",
        "user": _account_summary(user),
    }


@router.put("/{user_id}/revoke")
def revoke_admin(user_id: str, actor: dict = Depends(require_super_admin)):
    user = _find_user(user_id)
    if user.get("is_super_admin"):
        raise ValidationError("Cannot revoke super admin privileges")
    if user.get("role") != "admin":
        raise ValidationError("User is not an admin")
    update_document("user", {"_id": user["_id"]}, {"$set": {"is_approved": False}})
    logger.info("Admin %s revoked by %s", user["email"], actor["email"])
    user = _find_user(user_id)
    return {
        "success": True,
        "message": f"Admin privileges revoked for {user['name']}",
        "user": _account_summary(user),
    }


@router.put("/{user_id}/reject")
def reject_admin(user_id: str, actor: dict = Depends(require_super_admin)):
    user = _find_user(user_id)
    if user.get("is_super_admin"):
        raise ValidationError("Cannot reject super admin")
    update_document("user", {"_id": user["_id"]}, {"$set": {"role": "user", "is_approved": True}})
    logger.info("Admin request of %s rejected by %s", user["email"], actor["email"])
    user = _find_user(user_id)
    return {
        "success": True,
        "message": f"Admin request rejected. {user['name']} is now a regular user",
        "user": _account_summary(user),
    }
