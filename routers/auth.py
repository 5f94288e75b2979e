from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import Field
from pymongo.database import Database

import store
from database import create_document, get_db, now
from errors import AuthError, BadRequestError
from schemas import Address, Email, ImageRef, LicenseNo, Phone, Schema, User, UserProfilePatch
from security import generate_token, get_current_user, hash_password, verify_password

router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request Models
class RegisterRequest(Schema):
    medical_name: str = Field(..., min_length=2, max_length=100)
    owner_name: str = Field(..., min_length=2, max_length=50)
    email: Email
    contact_no: Phone
    address: Address
    drug_license_no: LicenseNo
    drug_license_image: Optional[ImageRef] = None
    password: str = Field(..., min_length=6)


class LoginRequest(Schema):
    email: Email
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(Schema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


def user_summary(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "medicalName": user.get("medicalName"),
        "ownerName": user.get("ownerName"),
        "email": user.get("email"),
        "role": user.get("role"),
        "isVerified": user.get("isVerified", False),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    existing = db["user"].find_one({"$or": [{"email": payload.email}, {"drugLicenseNo": payload.drug_license_no}]})
    if existing:
        if existing.get("email") == payload.email:
            raise BadRequestError("Email already registered")
        raise BadRequestError("Drug license number already registered")

    user_doc = User(
        **payload.model_dump(exclude={"password"}),
        password_hash=hash_password(payload.password),
    ).model_dump(by_alias=True, exclude_none=True)
    user_doc["_id"] = create_document(db, "user", user_doc)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": {"token": generate_token(user_doc["_id"]), "user": user_summary(user_doc)},
    }


@router.post("/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": payload.email})
    if not user:
        raise AuthError("Invalid credentials")
    if user.get("status") != store.ACTIVE:
        raise AuthError("Account is deactivated")
    if not verify_password(payload.password, user.get("passwordHash")):
        raise AuthError("Invalid credentials")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"lastLogin": now()}})
    return {
        "success": True,
        "message": "Login successful",
        "data": {"token": generate_token(user["_id"]), "user": user_summary(user)},
    }


@router.get("/me")
def me(current_user=Depends(get_current_user)):
    return {"success": True, "data": store.serialize(current_user, "user")}


@router.put("/profile")
def update_profile(payload: UserProfilePatch, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    fields = payload.model_dump(by_alias=True, exclude_unset=True)
    user = store.update_fields(db, "user", current_user["_id"], fields, "User")
    return {"success": True, "message": "Profile updated successfully", "data": store.serialize(user, "user")}


@router.put("/change-password")
def change_password(payload: ChangePasswordRequest, current_user=Depends(get_current_user),
                    db: Database = Depends(get_db)):
    if not verify_password(payload.current_password, current_user.get("passwordHash")):
        raise BadRequestError("Current password is incorrect")
    new_hash = hash_password(payload.new_password)
    db["user"].update_one({"_id": current_user["_id"]}, {"$set": {"passwordHash": new_hash, "updatedAt": now()}})
    return {"success": True, "message": "Password changed successfully"}


@router.post("/logout")
def logout(current_user=Depends(get_current_user)):
    return {"success": True, "message": "Logged out successfully"}
