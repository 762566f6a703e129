"""
Seed script to populate courses and course_levels.

One course per stage with its monthly fee and duration per level. Existing courses and levels
are updated in place, so the script can be re-run after changing the fee table below.
Usage: python -m feecycle.db.seed_courses
"""

import asyncio
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.core.models import Course, CourseLevel
from feecycle.db.session import AsyncSessionLocal

# (level_number, fee_amount, duration_months, approximate_hours)
LevelSeed = Tuple[int, int, Optional[int], int]

# (course_name, display_name, description, display_order, levels)
COURSES: List[Tuple[str, str, str, int, List[LevelSeed]]] = [
    (
        "beginner",
        "Beginner Chess Training",
        "Foundation level training: piece movements, board setup and basic strategy.",
        1,
        [(1, 2000, 1, 20), (2, 2500, 1, 25)],
    ),
    (
        "intermediate",
        "Intermediate Chess Training",
        "Tactics and strategy for players with basic chess knowledge.",
        2,
        [(1, 3000, 1, 30), (2, 3500, 1, 35)],
    ),
    (
        "advanced",
        "Advanced Chess Training",
        "Expert level training and tournament preparation.",
        3,
        [(1, 4000, 1, 40), (2, 4500, 1, 45)],
    ),
]


async def seed_courses(db: AsyncSession) -> Tuple[int, int, int]:
    """Insert or update every course and level. Returns (courses created, courses updated, levels written)."""
    courses_created = 0
    courses_updated = 0
    levels_written = 0

    for course_name, display_name, description, display_order, levels in COURSES:
        course = (
            await db.execute(select(Course).where(Course.course_name == course_name))
        ).scalar_one_or_none()
        if course:
            course.display_name = display_name
            course.description = description
            course.display_order = display_order
            course.is_active = True
            courses_updated += 1
        else:
            course = Course(
                course_name=course_name,
                display_name=display_name,
                description=description,
                display_order=display_order,
                is_active=True,
            )
            db.add(course)
            await db.flush()
            courses_created += 1

        for level_number, fee_amount, duration_months, approximate_hours in levels:
            level = (
                await db.execute(
                    select(CourseLevel).where(
                        CourseLevel.course_id == course.id,
                        CourseLevel.level_number == level_number,
                    )
                )
            ).scalar_one_or_none()
            if level is None:
                level = CourseLevel(course_id=course.id, level_number=level_number)
                db.add(level)
            level.fee_amount = fee_amount
            level.duration_months = duration_months
            level.approximate_hours = approximate_hours
            levels_written += 1

    await db.commit()
    return courses_created, courses_updated, levels_written


async def main() -> None:
    async with AsyncSessionLocal() as session:
        created, updated, levels = await seed_courses(session)

    print("=" * 60)
    print("Course Seeding Summary")
    print("=" * 60)
    print(f"Courses created: {created}")
    print(f"Courses updated: {updated}")
    print(f"Levels written:  {levels}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
