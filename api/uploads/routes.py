"""
Routes/endpoints for the Upload API
"""
from fastapi import APIRouter, File, UploadFile, status
from fastapi.responses import JSONResponse

from api.auth.deps import OptionalUser
from api.uploads import services
from api.uploads.validation import UPLOAD_FIELD, Rejected
from core.deps import AnalysisDep, FileStoreDep, SessionDep, SettingsDep
from core.models import ApiResponse, ErrorDetail

router = APIRouter(tags=["Upload Endpoints"])


@router.post(
    "/upload",
    response_model=ApiResponse,
    responses={
        400: {"model": ApiResponse, "description": "Missing field, unsupported type or oversized file"},
        500: {"model": ApiResponse, "description": "Storage failure"},
        504: {"model": ApiResponse, "description": "Upload timed out"},
    },
)
async def upload_files(
    session: SessionDep,
    store: FileStoreDep,
    analysis: AnalysisDep,
    settings: SettingsDep,
    current_user: OptionalUser,
    content: list[UploadFile] | None = File(
        None,
        alias=UPLOAD_FIELD,
        description="Up to 5 FRA measurement files (csv, txt, xlsx, xml), 10MB each",
    ),
) -> JSONResponse:
    """
    Upload one or more FRA measurement files.

    The request either stores every file or none of them. On success the
    response lists the stored files; any rejected file fails the request
    with 400.
    """
    outcome = await services.ingest_uploads(
        content,
        session=session,
        store=store,
        analysis=analysis,
        settings=settings,
        uploaded_by=current_user.id if current_user else None,
    )

    if isinstance(outcome, Rejected):
        return ApiResponse.error(
            outcome.message,
            [ErrorDetail(field=outcome.field, message=outcome.message)],
        ).to_response(status.HTTP_400_BAD_REQUEST)

    return ApiResponse.ok("Files uploaded successfully", outcome).to_response()
