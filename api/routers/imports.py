"""
Client Imports API Router.

Handles CSV client imports: dry-run preview, committed import and the
downloadable template.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Request
from fastapi.responses import Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from agencydesk.import_service import (
    ImportService,
    ClientImportError,
    MissingFieldError,
    build_import_template,
    TEMPLATE_FILENAME,
)
from api.schemas import ImportCsvRequest, ImportCsvResponse, ImportPreviewResponse

router = APIRouter()

# Rate limiter for upload endpoints (per IP)
limiter = Limiter(key_func=get_remote_address)

logger = logging.getLogger(__name__)


@router.get("/import-template")
async def download_import_template():
    """Provide the CSV template with the expected client columns."""
    headers = {
        "Content-Disposition": f"attachment; filename={TEMPLATE_FILENAME}",
        "Cache-Control": "no-store",
    }
    return Response(content=build_import_template(), media_type="text/csv", headers=headers)


@router.post("/import-csv", response_model=ImportCsvResponse)
@limiter.limit("10/minute")  # File uploads: 10/minute (prevent DoS)
def import_clients_csv(request: Request, payload: Optional[ImportCsvRequest] = Body(None)):
    """
    Import clients from CSV text for one owner.

    Rows without a company name or with a malformed email are counted as
    invalid; rows matching an existing client (or an earlier row) are counted
    as duplicates. Everything else is inserted in one bulk request.
    """
    payload = payload or ImportCsvRequest()
    try:
        result = ImportService().import_csv(payload.csv_content, payload.user_id)
    except ClientImportError:
        raise
    except Exception as e:
        logger.exception(f"Error processing CSV import: {e}")
        raise ClientImportError(str(e) or "Erreur interne du serveur")

    return ImportCsvResponse(
        inserted_count=result.inserted_count,
        duplicate_count=result.duplicate_count,
        invalid_count=result.invalid_count,
        total_count=result.total_count,
    )


@router.post("/import-csv/preview", response_model=ImportPreviewResponse)
@limiter.limit("10/minute")
def preview_clients_csv(request: Request, payload: Optional[ImportCsvRequest] = Body(None)):
    """
    Dry run of an import: counts, detected column mapping and the first rows.

    Nothing is written. Without userId only in-file duplicates are detected.
    """
    payload = payload or ImportCsvRequest()
    if not payload.csv_content:
        raise MissingFieldError("Contenu CSV manquant")

    try:
        preview = ImportService().preview(payload.csv_content, payload.user_id)
    except ClientImportError:
        raise
    except Exception as e:
        logger.exception(f"Error previewing CSV import: {e}")
        raise ClientImportError(str(e) or "Erreur interne du serveur")

    return ImportPreviewResponse(
        total_count=preview.total_count,
        valid_count=preview.valid_count,
        invalid_count=preview.invalid_count,
        duplicate_count=preview.duplicate_count,
        mapping=preview.mapping,
        rows=preview.rows,
    )
