"""Cross-instance report endpoints."""
from fastapi import APIRouter, Depends, Query

from ..dependencies import get_reports
from ..schemas import (
    ActivityReport,
    CommandsReport,
    CompareMode,
    CompareReport,
    CutoffReport,
    DiskSpaceReport,
    DuplicatesReport,
    MediaKind,
    QualityProfilesReport,
    QueueReport,
)
from ..services.reports import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/duplicates", response_model=DuplicatesReport)
async def duplicates(
    media: MediaKind = Query(...),
    reports: ReportService = Depends(get_reports),
) -> DuplicatesReport:
    """Titles held by two or more instances of the same kind."""

    return await reports.duplicates(media)


@router.get("/cutoff-unmet", response_model=CutoffReport)
async def cutoff_unmet(
    media: MediaKind = Query(...),
    reports: ReportService = Depends(get_reports),
) -> CutoffReport:
    return await reports.cutoff_unmet(media)


@router.get("/compare", response_model=CompareReport)
async def compare(
    media: MediaKind = Query(...),
    mode: CompareMode = Query(default="plex-vs-arr"),
    reports: ReportService = Depends(get_reports),
) -> CompareReport:
    """Diff the Plex libraries against downloaded Sonarr/Radarr items."""

    return await reports.compare(media, mode)


@router.get("/disk-space", response_model=DiskSpaceReport)
async def disk_space(
    top: int = Query(default=20, ge=1, le=500),
    reports: ReportService = Depends(get_reports),
) -> DiskSpaceReport:
    return await reports.disk_space(top=top)


@router.get("/quality-profiles", response_model=QualityProfilesReport)
async def quality_profiles(reports: ReportService = Depends(get_reports)) -> QualityProfilesReport:
    return await reports.quality_profiles()


@router.get("/queue", response_model=QueueReport)
async def queue(reports: ReportService = Depends(get_reports)) -> QueueReport:
    """Download queue of every automation instance, errors first."""

    return await reports.queue()


@router.get("/activity", response_model=ActivityReport)
async def activity(
    page_size: int = Query(default=50, ge=1, le=250),
    reports: ReportService = Depends(get_reports),
) -> ActivityReport:
    return await reports.activity(page_size=page_size)


@router.get("/commands", response_model=CommandsReport)
async def commands(reports: ReportService = Depends(get_reports)) -> CommandsReport:
    return await reports.commands()
