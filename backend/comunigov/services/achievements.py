"""
Achievement badges earned at activity milestones.
"""
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.models.activity_log import UserActivityLog, UserAction
from comunigov.models.badge import AchievementBadge, UserBadge
from comunigov.models.communication import Communication
from comunigov.models.meeting import Meeting
from comunigov.models.subject import Subject
from comunigov.models.task import Task, TaskStatus

logger = logging.getLogger(__name__)

MILESTONE_THRESHOLDS: dict[str, list[int]] = {
    "entity_created": [1, 5, 10, 25],
    "subject_created": [1, 10, 25, 50],
    "meeting_created": [1, 5, 15, 30],
    "task_completed": [1, 5, 15, 30],
    "task_assigned": [1, 5, 15, 30],
    "communication_sent": [1, 5, 15, 30],
    "first_login": [1],
}

TIERS = ["bronze", "silver", "gold", "platinum"]

# name per level, description template, icon
BADGE_DEFINITIONS: dict[str, tuple[list[str], str, str]] = {
    "entity_created": (
        ["First Entity", "Network Builder", "Entity Coordinator", "Organization Master"],
        "Registered {count} entit{plural_y} in the system.",
        "award",
    ),
    "subject_created": (
        ["Subject Starter", "Topic Creator", "Subject Specialist", "Content Maestro"],
        "Created {count} subject{plural_s}.",
        "star",
    ),
    "meeting_created": (
        ["First Meeting", "Regular Organizer", "Seasoned Coordinator", "Meeting Maestro"],
        "Organized {count} meeting{plural_s}.",
        "trophy",
    ),
    "task_completed": (
        ["First Task Done", "Efficient Executor", "Task Achiever", "Productivity Master"],
        "Completed {count} task{plural_s}.",
        "star",
    ),
    "task_assigned": (
        ["First Assignment", "Active Contributor", "Trusted Contributor", "Reliable Leader"],
        "Received {count} task assignment{plural_s}.",
        "award",
    ),
    "communication_sent": (
        ["First Communication", "Regular Communicator", "Active Communicator", "Master Communicator"],
        "Sent {count} communication{plural_s}.",
        "message",
    ),
    "first_login": (
        ["Welcome Aboard"],
        "Logged in to ComuniGov for the first time.",
        "flag",
    ),
}


def default_badges() -> list[dict]:
    """One badge definition per (milestone, level)."""
    badges = []
    for milestone, thresholds in MILESTONE_THRESHOLDS.items():
        names, description, icon = BADGE_DEFINITIONS[milestone]
        for level, count in enumerate(thresholds, start=1):
            badges.append({
                "name": names[level - 1],
                "description": description.format(
                    count=count,
                    plural_s="" if count == 1 else "s",
                    plural_y="y" if count == 1 else "ies",
                ),
                "icon": f"{icon}-{TIERS[level - 1]}",
                "category": milestone,
                "level": level,
                "criteria": {"milestone": milestone, "count": count},
            })
    return badges


async def ensure_default_badges(db: AsyncSession) -> int:
    """Create missing default badges. Returns how many were created."""
    result = await db.execute(select(AchievementBadge.name))
    existing = set(result.scalars().all())

    created = 0
    for data in default_badges():
        if data["name"] in existing:
            continue
        db.add(AchievementBadge(**data))
        created += 1

    if created:
        await db.flush()
        logger.info("Created %d default achievement badges", created)
    return created


async def count_milestone(db: AsyncSession, user_id: str, milestone: str) -> int:
    """Count the user's rows that qualify for a milestone."""
    if milestone == "entity_created":
        query = select(func.count()).select_from(UserActivityLog).where(
            UserActivityLog.user_id == user_id,
            UserActivityLog.action == UserAction.CREATE,
            UserActivityLog.entity_type == "entity",
        )
    elif milestone == "subject_created":
        query = select(func.count()).select_from(Subject).where(Subject.created_by_id == user_id)
    elif milestone == "meeting_created":
        query = select(func.count()).select_from(Meeting).where(Meeting.created_by_id == user_id)
    elif milestone == "task_completed":
        query = select(func.count()).select_from(Task).where(
            Task.assigned_to_user_id == user_id,
            Task.status == TaskStatus.COMPLETED,
        )
    elif milestone == "task_assigned":
        query = select(func.count()).select_from(Task).where(Task.assigned_to_user_id == user_id)
    elif milestone == "communication_sent":
        query = select(func.count()).select_from(Communication).where(
            Communication.sent_by_id == user_id
        )
    elif milestone == "first_login":
        query = select(func.count()).select_from(UserActivityLog).where(
            UserActivityLog.user_id == user_id,
            UserActivityLog.action == UserAction.LOGIN,
        )
    else:
        raise ValueError(f"Unknown milestone: {milestone}")

    return (await db.execute(query)).scalar() or 0


async def record_milestone(db: AsyncSession, user_id: str, milestone: str) -> list[UserBadge]:
    """Award every badge of ``milestone`` whose threshold the user has reached."""
    count = await count_milestone(db, user_id, milestone)
    if count == 0:
        return []

    result = await db.execute(
        select(AchievementBadge).where(AchievementBadge.category == milestone)
    )
    badges = [
        b for b in result.scalars().all()
        if (b.criteria or {}).get("milestone") == milestone
        and int((b.criteria or {}).get("count", 0)) <= count
    ]
    if not badges:
        return []

    earned = await db.execute(
        select(UserBadge.badge_id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id.in_([b.id for b in badges]),
        )
    )
    already = set(earned.scalars().all())

    awarded = []
    for badge in sorted(badges, key=lambda b: b.level):
        if badge.id in already:
            continue
        user_badge = UserBadge(
            user_id=user_id,
            badge_id=badge.id,
            progress={"milestone": milestone, "count": count},
            featured=False,
            seen=False,
        )
        db.add(user_badge)
        awarded.append(user_badge)

    if awarded:
        await db.flush()
        logger.info("User %s earned %d badge(s) for %s", user_id, len(awarded), milestone)
    return awarded
