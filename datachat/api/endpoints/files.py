import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from datachat.core import files, models, schemas
from datachat.core.config import settings
from datachat.core.database import get_db
from datachat.core.security import get_current_user

router = APIRouter(prefix="/files", tags=["Files"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]


async def get_owned_file(
    file_id: int, current_user: models.User, db: AsyncSession
) -> models.FileDocument:
    document = await db.get(models.FileDocument, file_id)
    if document is None or document.owner_id != current_user.id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "File not found")
    return document


@router.post(
    "", response_model=schemas.FileDocumentResponse, status_code=status.HTTP_201_CREATED
)
async def upload_file(
    current_user: user_dep,
    db: db_dep,
    file: UploadFile = File(...),
):
    """
    Upload a CSV / JSON / text file a conversation can then be bound to.
    """
    file_content = await file.read()
    if not file_content:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, "Uploaded file is empty or unreadable"
        )
    if len(file_content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            413, "Uploaded file is too large"
        )

    filename = file.filename or "upload"
    try:
        parsed = files.parse_upload(filename, file_content)
    except files.UnsupportedFile as error:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(error))

    try:
        document = models.FileDocument(
            **parsed,
            original_filename=filename,
            size_bytes=len(file_content),
            status="completed",
            owner_id=current_user.id,
        )
        db.add(document)
        await db.commit()
        await db.refresh(document)
        return document
    except Exception as error:
        await db.rollback()
        logging.error(f"File upload failed: {error}")
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload failed")


@router.get("", response_model=List[schemas.FileDocumentResponse])
async def list_files(current_user: user_dep, db: db_dep):
    query = (
        select(models.FileDocument)
        .where(models.FileDocument.owner_id == current_user.id)
        .order_by(models.FileDocument.id)
    )
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{file_id}", response_model=schemas.FileDocumentResponse)
async def get_file(file_id: int, current_user: user_dep, db: db_dep):
    return await get_owned_file(file_id, current_user, db)


@router.get("/{file_id}/schema", response_model=schemas.FileSchemaResponse)
async def get_file_schema(file_id: int, current_user: user_dep, db: db_dep):
    document = await get_owned_file(file_id, current_user, db)
    return {
        "file_id": document.id,
        "file_name": document.original_filename,
        "file_type": document.file_type,
        **files.describe_file(document.parsed_content),
    }


@router.get("/{file_id}/content", response_model=schemas.FileContentResponse)
async def get_file_content(
    file_id: int,
    current_user: user_dep,
    db: db_dep,
    page: int = 1,
    page_size: int = 100,
):
    """Stored rows of an upload, one page at a time."""
    document = await get_owned_file(file_id, current_user, db)
    if not document.parsed_content:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND, "File not found or has no content"
        )

    return {
        "file_id": document.id,
        "file_name": document.original_filename,
        **files.page_rows(document.parsed_content, page, page_size),
    }


@router.delete("/{file_id}", status_code=status.HTTP_200_OK)
async def delete_file(file_id: int, current_user: user_dep, db: db_dep):
    document = await get_owned_file(file_id, current_user, db)
    await db.delete(document)
    await db.commit()
    return {"message": f"Deleted file {file_id}"}
