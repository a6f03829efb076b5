from __future__ import annotations

from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from pymongo.database import Database

from audit import AuditAction, log_admin_action
from config import get_settings
from database import get_db
from security import AdminActor, request_ip, require_admin
from translate import TRANSLATABLE, BatchTranslator, DeepLTranslator

router = APIRouter(prefix="/api/admin", tags=["translation"])


def get_translator() -> Iterator[DeepLTranslator]:
    api_key = get_settings().deepl_api_key
    if not api_key:
        raise HTTPException(status_code=500, detail="DEEPL_API_KEY is not configured")
    with DeepLTranslator(api_key) as translator:
        yield translator


class BatchTranslateRequest(BaseModel):
    types: Optional[List[str]] = None


@router.post("/batch-translate")
def batch_translate(
    request: Request,
    body: Optional[BatchTranslateRequest] = None,
    actor: AdminActor = Depends(require_admin),
    db: Database = Depends(get_db),
    translator: DeepLTranslator = Depends(get_translator),
):
    types = (body.types if body else None) or list(TRANSLATABLE)
    unknown = sorted(set(types) - set(TRANSLATABLE))
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown content types: {', '.join(unknown)}")

    job = BatchTranslator(db, translator, delay_seconds=get_settings().translate_delay_seconds)
    results = job.run(types)
    log_admin_action(
        db, actor, AuditAction.BATCH_TRANSLATE, "system",
        details=", ".join(f"{name}={counts['translated']}" for name, counts in results.items()),
        ip_address=request_ip(request),
    )
    return {"success": True, "results": results}
