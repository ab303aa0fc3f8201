"""
Define functions/aliases for dependency injection

Long-lived collaborators are built once in the lifespan handler and
stored on app.state; these dependencies only hand them out.
"""
from collections.abc import Generator
from typing import Annotated, TypeAlias
from fastapi import Depends, Request
from sqlmodel import Session

from core.config import Settings, get_settings
from api.uploads.analysis import AnalysisService
from api.uploads.storage import FileStore


# Define db dependency
def get_db(request: Request) -> Generator[Session, None, None]:
  yield from request.app.state.db.session()


def get_file_store(request: Request) -> FileStore:
  return request.app.state.file_store


def get_analysis_service(request: Request) -> AnalysisService:
  return request.app.state.analysis_service


SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]
SettingsDep: TypeAlias = Annotated[Settings, Depends(get_settings)]
FileStoreDep: TypeAlias = Annotated[FileStore, Depends(get_file_store)]
AnalysisDep: TypeAlias = Annotated[AnalysisService, Depends(get_analysis_service)]
