from fastapi import APIRouter, Depends

from security import require_admin

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/panel")
def admin_panel(admin=Depends(require_admin)):
    return {
        "success": True,
        "message": "Welcome to the admin panel",
        "user": {"id": str(admin["_id"]), "email": admin.get("email"), "role": admin.get("role")},
    }
