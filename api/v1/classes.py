from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.deps import get_current_admin, get_current_staff
from app.models.class_ import Class, ClassLevel, DanceStyle
from app.models.enrollment import Enrollment
from app.models.user import Role, User
from app.schemas.class_ import (
    ClassCreate,
    ClassListResponse,
    ClassResponse,
    ClassUpdate,
    RosterEntry,
    RosterResponse,
)
from core.db import get_db, get_session_factory, run_in_transaction
from core.exceptions.base import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/classes", tags=["Classes"])


def ensure_can_manage(class_obj: Class, current_user: User) -> None:
    """Admins manage every class, teachers only their own."""
    if current_user.role != Role.ADMIN and not class_obj.is_taught_by(current_user.id):
        raise ForbiddenException(message="Only the class teacher or an admin can do this")


async def resolve_teacher(db_session: AsyncSession, teacher_id: str) -> User:
    teacher = await User.get_by_id(db_session, teacher_id)
    if not teacher or not teacher.is_staff:
        raise BadRequestException(message="teacher_id must reference a teacher")
    return teacher


@router.get("/", response_model=ClassListResponse)
async def list_classes(
    style: Optional[DanceStyle] = None,
    level: Optional[ClassLevel] = None,
    teacher_id: Optional[str] = None,
    has_capacity: Optional[bool] = None,
    search: Optional[str] = Query(None, description="Search in class name and description"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db_session: AsyncSession = Depends(get_db),
) -> ClassListResponse:
    """
    List active classes with optional filters.

    Public endpoint - no authentication required.
    """
    logger.info(f"List classes request - skip: {skip}, limit: {limit}, search: {search}")
    classes, total = await Class.get_filtered(
        db_session,
        style=style,
        level=level,
        teacher_id=teacher_id,
        has_capacity=has_capacity,
        search=search,
        skip=skip,
        limit=limit,
    )

    logger.info(f"Found {total} classes")
    return ClassListResponse(
        items=[ClassResponse.model_validate(c) for c in classes],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/{class_id}", response_model=ClassResponse)
async def get_class(
    class_id: str,
    db_session: AsyncSession = Depends(get_db),
) -> ClassResponse:
    """
    Get class details by ID.

    Public endpoint - no authentication required.
    """
    class_obj = await Class.get_by_id(db_session, class_id)
    if not class_obj:
        logger.warning(f"Class not found: {class_id}")
        raise NotFoundException(message="Class not found")

    return ClassResponse.model_validate(class_obj)


@router.post("/", response_model=ClassResponse, status_code=201)
async def create_class(
    data: ClassCreate,
    db_session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff),
) -> ClassResponse:
    """
    Create a new class.

    Teachers create classes they teach; admins may assign any teacher.
    """
    logger.info(f"Create class request by user: {current_user.id}, name: {data.name}")

    teacher_id = current_user.id
    if data.teacher_id and data.teacher_id != current_user.id:
        if current_user.role != Role.ADMIN:
            raise ForbiddenException(message="Teachers can only create their own classes")
        teacher_id = (await resolve_teacher(db_session, data.teacher_id)).id

    class_obj = Class(
        **data.model_dump(exclude={"teacher_id"}),
        teacher_id=teacher_id,
        enrolled=0,
        enrolled_students=[],
        organization_id=current_user.organization_id,
    )
    db_session.add(class_obj)
    await db_session.commit()
    await db_session.refresh(class_obj)

    logger.info(f"Class created successfully: {class_obj.id}")
    return ClassResponse.model_validate(class_obj)


@router.put("/{class_id}", response_model=ClassResponse)
async def update_class(
    class_id: str,
    data: ClassUpdate,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    current_user: User = Depends(get_current_staff),
) -> ClassResponse:
    """
    Update a class.

    Requires the class teacher or an admin. Capacity cannot drop below the
    number of enrolled students; enrollment counters are not editable here.
    """
    logger.info(f"Update class request by user: {current_user.id}, class_id: {class_id}")
    update_data = data.model_dump(exclude_unset=True)

    async def work(db_session: AsyncSession) -> Class:
        class_obj = await Class.get_by_id(db_session, class_id)
        if not class_obj:
            raise NotFoundException(message="Class not found")
        ensure_can_manage(class_obj, current_user)

        if "teacher_id" in update_data:
            if current_user.role != Role.ADMIN:
                raise ForbiddenException(message="Only admins can reassign a class")
            if update_data["teacher_id"] is not None:
                await resolve_teacher(db_session, update_data["teacher_id"])

        new_capacity = update_data.get("capacity")
        if new_capacity is not None and new_capacity < class_obj.enrolled:
            raise BadRequestException(
                message="Capacity cannot be lower than the number of enrolled students",
                error_code="CAPACITY_BELOW_ENROLLED",
                data={"enrolled": class_obj.enrolled, "capacity": new_capacity},
            )

        for field, value in update_data.items():
            setattr(class_obj, field, value)

        await db_session.flush()
        await db_session.refresh(class_obj)
        return class_obj

    class_obj = await run_in_transaction(session_factory, work)
    logger.info(f"Class updated successfully: {class_id}")
    return ClassResponse.model_validate(class_obj)


@router.delete("/{class_id}")
async def delete_class(
    class_id: str,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    current_user: User = Depends(get_current_admin),
) -> dict:
    """
    Soft delete a class.

    Requires admin role. Refused while students are enrolled.
    """
    logger.info(f"Delete class request by user: {current_user.id}, class_id: {class_id}")

    async def work(db_session: AsyncSession) -> None:
        class_obj = await Class.get_by_id(db_session, class_id)
        if not class_obj:
            raise NotFoundException(message="Class not found")

        if class_obj.enrolled > 0:
            raise ConflictException(
                message="Class has active enrollments",
                error_code="CLASS_HAS_ENROLLMENTS",
                data={"enrolled": class_obj.enrolled},
            )

        class_obj.is_active = False
        class_obj.soft_delete()
        await db_session.flush()

    await run_in_transaction(session_factory, work)
    logger.info(f"Class deleted successfully: {class_id}")
    return {"message": "Class deleted successfully"}


@router.get("/{class_id}/roster", response_model=RosterResponse)
async def get_class_roster(
    class_id: str,
    db_session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff),
) -> RosterResponse:
    """Students actively enrolled in a class. Requires the class teacher or an admin."""
    class_obj = await Class.get_by_id(db_session, class_id)
    if not class_obj:
        raise NotFoundException(message="Class not found")
    ensure_can_manage(class_obj, current_user)

    enrollments = await Enrollment.get_active_by_class(db_session, class_id)
    return RosterResponse(
        class_id=class_obj.id,
        class_name=class_obj.name,
        capacity=class_obj.capacity,
        enrolled=class_obj.enrolled,
        students=[
            RosterEntry(
                enrollment_id=e.id,
                user_id=e.user_id,
                name=e.user.name,
                email=e.user.email,
                enrolled_at=e.enrolled_at,
            )
            for e in enrollments
        ],
    )
