import re
from datetime import datetime

import pytz
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.database import SessionLocal, ensure_scheduling_schema
from backend.models.provider import Provider
from backend.models.schedule import ProviderSchedule
from backend.models.time_off import ProviderTimeOff, TimeOffKind
from backend.scheduling.availability import compute_availability
from backend.scheduling.errors import SchedulingInputError
from backend.scheduling.records import WeeklyPattern
from backend.scheduling.repository import SchedulingRepository, to_naive_utc, to_utc
from backend.scheduling.suggestions import suggest_providers

router = APIRouter(tags=['providers'])

LOCAL_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')
DEFAULT_BLOCK_REASON = 'Availability block'
DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class DayBlockPayload(BaseModel):
    start: str
    end: str
    location_id: str | None = None
    chair_id: str | None = None

    @field_validator('start', 'end')
    @classmethod
    def validate_local_time(cls, value: str) -> str:
        normalized = value.strip()
        if not LOCAL_TIME_PATTERN.match(normalized):
            raise ValueError('Times must use the 24-hour HH:MM format.')
        return normalized

    @model_validator(mode='after')
    def validate_same_day_block(self) -> 'DayBlockPayload':
        if self.end <= self.start:
            raise ValueError('Block end must be after block start on the same day.')
        return self


class WeeklyPatternPayload(BaseModel):
    mon: list[DayBlockPayload] = Field(default_factory=list)
    tue: list[DayBlockPayload] = Field(default_factory=list)
    wed: list[DayBlockPayload] = Field(default_factory=list)
    thu: list[DayBlockPayload] = Field(default_factory=list)
    fri: list[DayBlockPayload] = Field(default_factory=list)
    sat: list[DayBlockPayload] = Field(default_factory=list)
    sun: list[DayBlockPayload] = Field(default_factory=list)

    model_config = {'extra': 'forbid'}


class CreateScheduleRequest(BaseModel):
    weekly: WeeklyPatternPayload
    breaks: WeeklyPatternPayload = Field(default_factory=WeeklyPatternPayload)
    timezone: str = config.DEFAULT_TIMEZONE
    effective_from: datetime | None = None
    effective_to: datetime | None = None

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        normalized = value.strip()
        if normalized not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone '{normalized}'.")
        return normalized

    @model_validator(mode='after')
    def validate_effective_window(self) -> 'CreateScheduleRequest':
        if self.effective_from and self.effective_to and to_utc(self.effective_from) >= to_utc(self.effective_to):
            raise ValueError('effective_from must be before effective_to.')
        return self


class ScheduleResponse(BaseModel):
    id: int
    provider_id: int
    version: int
    timezone: str
    weekly: dict
    breaks: dict
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    created_at: datetime


class CreateTimeOffRequest(BaseModel):
    kind: TimeOffKind
    start: datetime
    end: datetime
    reason: str = ''
    location_id: str | None = None
    chair_id: str | None = None

    @model_validator(mode='after')
    def validate_range(self) -> 'CreateTimeOffRequest':
        if to_utc(self.start) >= to_utc(self.end):
            raise ValueError('Time off end must be after its start.')
        return self


class UpdateTimeOffRequest(BaseModel):
    kind: TimeOffKind | None = None
    start: datetime | None = None
    end: datetime | None = None
    reason: str | None = None
    location_id: str | None = None
    chair_id: str | None = None


class CreateBlockRequest(BaseModel):
    start: datetime
    end: datetime
    reason: str | None = None
    location_id: str | None = None
    chair_id: str | None = None

    @model_validator(mode='after')
    def validate_range(self) -> 'CreateBlockRequest':
        if to_utc(self.start) >= to_utc(self.end):
            raise ValueError('Block end must be after its start.')
        return self


class TimeOffResponse(BaseModel):
    id: int
    provider_id: int
    kind: TimeOffKind
    start: datetime
    end: datetime
    reason: str
    location_id: str | None = None
    chair_id: str | None = None


class AvailabilitySlotResponse(BaseModel):
    start_utc: datetime
    end_utc: datetime
    local_label: str
    meta: dict[str, str | None]


class RankedProviderResponse(BaseModel):
    provider_id: int
    fits: bool
    partial: bool
    score: float


class SuggestionsResponse(BaseModel):
    data: list[RankedProviderResponse]


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_repository() -> SchedulingRepository:
    return SchedulingRepository(SessionLocal)


def schedule_response(schedule: ProviderSchedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=schedule.id,
        provider_id=schedule.provider_id,
        version=schedule.version,
        timezone=schedule.timezone,
        weekly=schedule.weekly or {},
        breaks=schedule.breaks or {},
        effective_from=to_utc(schedule.effective_from),
        effective_to=to_utc(schedule.effective_to),
        created_at=to_utc(schedule.created_at),
    )


def time_off_response(row: ProviderTimeOff) -> TimeOffResponse:
    return TimeOffResponse(
        id=row.id,
        provider_id=row.provider_id,
        kind=row.kind,
        start=to_utc(row.start_time),
        end=to_utc(row.end_time),
        reason=row.reason or '',
        location_id=row.location_id,
        chair_id=row.chair_id,
    )


def require_provider(provider_id: int, db: Session) -> Provider:
    provider = db.query(Provider).filter(Provider.id == provider_id).first()
    if not provider:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Provider not found.',
        )
    return provider


def parse_id_list(raw: str | None, name: str) -> list[int]:
    if not raw:
        return []
    try:
        return [int(item) for item in raw.split(',') if item.strip()]
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'{name} must be a comma separated list of ids.',
        ) from exc


def time_off_range_filter(query, range_from: datetime | None, range_to: datetime | None):
    # Overlap rule: start < to AND end > from.
    if range_to is not None:
        query = query.filter(ProviderTimeOff.start_time < to_naive_utc(to_utc(range_to)))
    if range_from is not None:
        query = query.filter(ProviderTimeOff.end_time > to_naive_utc(to_utc(range_from)))
    return query


@router.get('/suggest', response_model=SuggestionsResponse)
def suggest(
    range_from: datetime = Query(..., alias='from'),
    range_to: datetime = Query(..., alias='to'),
    provider_ids: str | None = Query(default=None),
    treatment_ids: str | None = Query(default=None),
    duration_min: int | None = Query(default=None),
    location_id: str | None = Query(default=None),
    chair_id: str | None = Query(default=None),
    repository: SchedulingRepository = Depends(get_repository),
):
    candidate_ids = parse_id_list(provider_ids, 'provider_ids')
    requested_treatments = parse_id_list(treatment_ids, 'treatment_ids')
    if not candidate_ids and not requested_treatments:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Either provider_ids or treatment_ids is required.',
        )

    ensure_database_ready()

    try:
        if not candidate_ids:
            candidate_ids = repository.list_providers_with_skills(requested_treatments)

        ranked = suggest_providers(
            repository,
            candidate_ids,
            to_utc(range_from),
            to_utc(range_to),
            treatment_id=requested_treatments[0] if requested_treatments else None,
            duration_minutes=duration_min,
            location_id=location_id,
            chair_id=chair_id,
        )
    except SchedulingInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc

    return SuggestionsResponse(
        data=[
            RankedProviderResponse(
                provider_id=result.provider_id,
                fits=result.fits,
                partial=result.partial,
                score=result.score,
            )
            for result in ranked
        ]
    )


@router.get('/{provider_id}/availability', response_model=list[AvailabilitySlotResponse])
def provider_availability(
    provider_id: int,
    range_from: datetime = Query(..., alias='from'),
    range_to: datetime = Query(..., alias='to'),
    treatment_id: int | None = Query(default=None),
    location_id: str | None = Query(default=None),
    chair_id: str | None = Query(default=None),
    repository: SchedulingRepository = Depends(get_repository),
):
    ensure_database_ready()

    try:
        slots = compute_availability(
            repository,
            provider_id,
            to_utc(range_from),
            to_utc(range_to),
            treatment_id=treatment_id,
            location_id=location_id,
            chair_id=chair_id,
        )
    except SchedulingInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc

    return [
        AvailabilitySlotResponse(
            start_utc=slot.start_utc,
            end_utc=slot.end_utc,
            local_label=slot.local_label,
            meta=dict(slot.meta),
        )
        for slot in slots
    ]


@router.post('/{provider_id}/schedule', response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule_version(provider_id: int, data: CreateScheduleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        require_provider(provider_id, db)

        latest_version = db.query(func.max(ProviderSchedule.version)).filter(
            ProviderSchedule.provider_id == provider_id,
        ).scalar()

        schedule = ProviderSchedule(
            provider_id=provider_id,
            version=(latest_version or 0) + 1,
            timezone=data.timezone,
            weekly=WeeklyPattern.from_document(data.weekly.model_dump()).to_document(),
            breaks=WeeklyPattern.from_document(data.breaks.model_dump()).to_document(),
            effective_from=to_naive_utc(data.effective_from),
            effective_to=to_naive_utc(data.effective_to),
        )
        db.add(schedule)
        db.commit()
        db.refresh(schedule)

        return schedule_response(schedule)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/{provider_id}/schedule', response_model=ScheduleResponse | None)
def get_latest_schedule(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedule = db.query(ProviderSchedule).filter(
            ProviderSchedule.provider_id == provider_id,
        ).order_by(ProviderSchedule.version.desc()).first()

        if not schedule:
            return None
        return schedule_response(schedule)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/{provider_id}/schedule/versions', response_model=list[ScheduleResponse])
def list_schedule_versions(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedules = db.query(ProviderSchedule).filter(
            ProviderSchedule.provider_id == provider_id,
        ).order_by(ProviderSchedule.version.asc()).all()

        return [schedule_response(schedule) for schedule in schedules]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


def _create_time_off(provider_id: int, db: Session, **fields) -> TimeOffResponse:
    ensure_database_ready()

    try:
        require_provider(provider_id, db)

        time_off = ProviderTimeOff(
            provider_id=provider_id,
            kind=fields['kind'],
            start_time=to_naive_utc(to_utc(fields['start'])),
            end_time=to_naive_utc(to_utc(fields['end'])),
            reason=fields.get('reason') or '',
            location_id=fields.get('location_id'),
            chair_id=fields.get('chair_id'),
        )
        db.add(time_off)
        db.commit()
        db.refresh(time_off)

        return time_off_response(time_off)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.post('/{provider_id}/timeoff', response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
def create_time_off(provider_id: int, data: CreateTimeOffRequest, db: Session = Depends(get_db)):
    return _create_time_off(provider_id, db, **data.model_dump())


@router.get('/{provider_id}/timeoff', response_model=list[TimeOffResponse])
def list_time_off(
    provider_id: int,
    range_from: datetime | None = Query(default=None, alias='from'),
    range_to: datetime | None = Query(default=None, alias='to'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(ProviderTimeOff).filter(ProviderTimeOff.provider_id == provider_id)
        query = time_off_range_filter(query, range_from, range_to)
        rows = query.order_by(ProviderTimeOff.start_time.asc()).all()

        return [time_off_response(row) for row in rows]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.patch('/{provider_id}/timeoff/{time_off_id}', response_model=TimeOffResponse)
def update_time_off(
    provider_id: int,
    time_off_id: int,
    data: UpdateTimeOffRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        time_off = db.query(ProviderTimeOff).filter(
            ProviderTimeOff.id == time_off_id,
            ProviderTimeOff.provider_id == provider_id,
        ).first()

        if not time_off:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Time off not found.',
            )

        if data.kind is not None:
            time_off.kind = data.kind
        if data.start is not None:
            time_off.start_time = to_naive_utc(to_utc(data.start))
        if data.end is not None:
            time_off.end_time = to_naive_utc(to_utc(data.end))
        if data.reason is not None:
            time_off.reason = data.reason
        if data.location_id is not None:
            time_off.location_id = data.location_id
        if data.chair_id is not None:
            time_off.chair_id = data.chair_id

        if time_off.start_time >= time_off.end_time:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Time off end must be after its start.',
            )

        db.commit()
        db.refresh(time_off)

        return time_off_response(time_off)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.delete('/{provider_id}/timeoff/{time_off_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_time_off(provider_id: int, time_off_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        time_off = db.query(ProviderTimeOff).filter(
            ProviderTimeOff.id == time_off_id,
            ProviderTimeOff.provider_id == provider_id,
        ).first()

        if not time_off:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Time off not found.',
            )

        db.delete(time_off)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.post('/{provider_id}/availability/blocks', response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
def create_availability_block(provider_id: int, data: CreateBlockRequest, db: Session = Depends(get_db)):
    return _create_time_off(
        provider_id,
        db,
        kind=TimeOffKind.BLOCK,
        start=data.start,
        end=data.end,
        reason=data.reason or DEFAULT_BLOCK_REASON,
        location_id=data.location_id,
        chair_id=data.chair_id,
    )


@router.get('/{provider_id}/availability/blocks', response_model=list[TimeOffResponse])
def list_availability_blocks(
    provider_id: int,
    range_from: datetime | None = Query(default=None, alias='from'),
    range_to: datetime | None = Query(default=None, alias='to'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(ProviderTimeOff).filter(
            ProviderTimeOff.provider_id == provider_id,
            ProviderTimeOff.kind == TimeOffKind.BLOCK,
        )
        query = time_off_range_filter(query, range_from, range_to)
        rows = query.order_by(ProviderTimeOff.start_time.asc()).all()

        return [time_off_response(row) for row in rows]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.delete('/{provider_id}/availability/blocks/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability_block(provider_id: int, block_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        block = db.query(ProviderTimeOff).filter(
            ProviderTimeOff.id == block_id,
            ProviderTimeOff.provider_id == provider_id,
        ).first()

        if not block:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Availability block not found.',
            )
        if block.kind != TimeOffKind.BLOCK:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='The specified time off is not a Block.',
            )

        db.delete(block)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc
