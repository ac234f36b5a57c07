from typing import List

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from app.deps import ShareCredentials, get_current_user, get_db, get_storage
from app.schemas import (
    FileRead,
    ShareAccess,
    ShareCreate,
    ShareRead,
    ShareStats,
    ShareUpdate,
    ShareVerifyReq,
)
from app.services import shares as share_service
from app.utils.storage import LocalStorage, file_response

router = APIRouter()


# --- Owner side (authenticated) ---


@router.get("/project/{project_id}", response_model=ShareRead)
async def project_share(project_id: int, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return share_service.share_read(await share_service.get_project_share(db, current, project_id))


@router.post("/project/{project_id}", response_model=ShareRead, status_code=201)
async def create_share(
    project_id: int,
    payload: ShareCreate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    share = await share_service.create_share(db, current, project_id, payload)
    return share_service.share_read(share)


@router.get("/mine", response_model=List[ShareRead])
async def my_shares(current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return [share_service.share_read(s) for s in await share_service.list_my_shares(db, current)]


@router.put("/{share_id}", response_model=ShareRead)
async def edit_share(
    share_id: str,
    payload: ShareUpdate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    share = await share_service.edit_share(db, current, share_id, payload)
    return share_service.share_read(share)


@router.delete("/{share_id}")
async def deactivate_share(share_id: str, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await share_service.deactivate_share(db, current, share_id)
    return {"ok": True, "message": "Share link deactivated"}


@router.get("/{share_id}/stats", response_model=ShareStats)
async def share_stats(share_id: str, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await share_service.share_stats(db, current, share_id)


# --- Public side ---


@router.get("/{share_id}", response_model=ShareAccess)
async def fetch_share(
    share_id: str,
    creds: ShareCredentials = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await share_service.fetch_share(db, share_id, password=creds.password, token=creds.token)


@router.post("/{share_id}/verify", response_model=ShareAccess)
async def verify_share(share_id: str, payload: ShareVerifyReq, db: AsyncSession = Depends(get_db)):
    return await share_service.verify_share(db, share_id, payload.password)


@router.get("/{share_id}/files", response_model=List[FileRead])
async def share_files(
    share_id: str,
    creds: ShareCredentials = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await share_service.list_share_files(db, share_id, password=creds.password, token=creds.token)


@router.get("/{share_id}/download/{file_id}")
async def share_download(
    share_id: str,
    file_id: int,
    creds: ShareCredentials = Depends(),
    db: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
):
    f = await share_service.consume_share(
        db, share_id, file_id, storage, password=creds.password, token=creds.token
    )
    return file_response(storage, f.storage_key, f.original_name, f.mime_type)
