from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse

import uploads
from security import get_current_user

router = APIRouter(prefix="/api/upload", tags=["upload"])

# Serves the stored files; the upload directory is resolved per request
files_router = APIRouter(prefix=uploads.URL_PREFIX, tags=["upload"])


# Public: the signup form uploads the drug license image before an account exists
@router.post("/image")
def upload_image(image: UploadFile = File(...)):
    info = uploads.save_upload(image, "image")
    return {"success": True, "message": "File uploaded successfully", "data": info}


@router.post("/images")
def upload_images(images: List[UploadFile] = File(...), current_user=Depends(get_current_user)):
    files = uploads.save_uploads(images, "images")
    return {"success": True, "message": "Files uploaded successfully", "count": len(files), "data": files}


@router.get("")
def list_uploads(current_user=Depends(get_current_user)):
    files = uploads.list_files()
    return {"success": True, "count": len(files), "data": files}


@router.get("/{filename}")
def get_upload(filename: str, current_user=Depends(get_current_user)):
    return {"success": True, "data": uploads.file_info(filename)}


@router.delete("/{filename}")
def delete_upload(filename: str, current_user=Depends(get_current_user)):
    uploads.delete_file(filename)
    return {"success": True, "message": "File deleted successfully"}


@files_router.get("/{filename}")
def serve_upload(filename: str):
    return FileResponse(uploads.local_path(filename), headers={"X-Content-Type-Options": "nosniff"})
