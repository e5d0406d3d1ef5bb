"""Demo data: subjects, achievements and a handful of accounts.

Idempotent: rows that already exist (by unique name or email) are left
alone, so seeding twice is harmless.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

import structlog

from tutorhub.core.auth import hash_password
from tutorhub.db.database import Database, Transaction, new_id
from tutorhub.utils.time_utils import utc_now

logger = structlog.get_logger(__name__)

SUBJECTS = [
    ("Mathematics", "STEM", "Advanced mathematics including calculus and algebra"),
    ("Physics", "STEM", "Classical and modern physics"),
    ("Chemistry", "STEM", "Organic and inorganic chemistry"),
    ("Computer Science", "STEM", "Programming and algorithms"),
    ("English", "Language", "English language and literature"),
    ("Biology", "STEM", "Life sciences and biology"),
    ("History", "Humanities", "World and regional history"),
    ("Economics", "Social Science", "Micro and macroeconomics"),
    ("Statistics", "STEM", "Statistical analysis and probability"),
    ("Spanish", "Language", "Spanish language"),
    ("French", "Language", "French language"),
    ("Philosophy", "Humanities", "Philosophy and logic"),
]

ACHIEVEMENTS = [
    ("First Session", "Completed your first tutoring session", "star", {"sessions": 1}),
    ("Quick Learner", "Completed 10 sessions", "trophy", {"sessions": 10}),
    ("Dedicated Student", "Studied for 50 hours", "book", {"hours": 50}),
    ("Top Performer", "Maintained 90% average", "medal", {"average": 90}),
    ("Consistent Learner", "30 day streak", "fire", {"streak_days": 30}),
]

DEMO_PASSWORD = "Password123!"
ADMIN_PASSWORD = "Admin123!"


@dataclass(frozen=True)
class DemoUser:
    email: str
    full_name: str
    role: str
    bio: str
    subjects: tuple[str, ...] = ()


DEMO_USERS = [
    DemoUser("admin@email.com", "System Administrator", "admin", "Platform administrator"),
    DemoUser("student@email.com", "John Student", "student", "Computer Science student",
             ("Computer Science",)),
    DemoUser("student2@email.com", "Jane Learner", "student", "Mathematics enthusiast",
             ("Mathematics",)),
    DemoUser("tutor@email.com", "Dr. Sarah Smith", "tutor",
             "Mathematics PhD with 10 years of teaching experience", ("Mathematics", "Statistics")),
    DemoUser("tutor2@email.com", "Prof. Michael Chen", "tutor",
             "Computer Science professor specializing in AI", ("Computer Science",)),
    DemoUser("both@email.com", "Emma Williams", "both",
             "Physics tutor and lifelong learner", ("Physics",)),
]


@dataclass
class SeedResult:
    subjects: int = 0
    achievements: int = 0
    users: int = 0


def _seed_user(tx: Transaction, user: DemoUser, password_hash: str, now: str) -> bool:
    if tx.fetch_value("SELECT 1 FROM users WHERE email = ?", (user.email,)):
        return False
    user_id = new_id()
    tx.execute(
        """
        INSERT INTO users (id, email, password_hash, full_name, role, bio, is_verified,
                           is_active, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, 1, 1, ?, ?)
        """,
        (user_id, user.email, password_hash, user.full_name, user.role, user.bio, now, now),
    )
    tx.execute("INSERT INTO user_settings (user_id) VALUES (?)", (user_id,))
    if user.role in ("tutor", "both"):
        tx.execute(
            """
            INSERT INTO tutor_profiles (user_id, hourly_rate, rating, total_reviews,
                                        years_experience, bio, status, created_at, updated_at)
            VALUES (?, 25.0, 4.8, 15, 5, ?, 'approved', ?, ?)
            """,
            (user_id, user.bio, now, now),
        )
    for name in user.subjects:
        tx.execute(
            """
            INSERT OR IGNORE INTO user_subjects (user_id, subject_id)
            SELECT ?, id FROM subjects WHERE name = ?
            """,
            (user_id, name),
        )
    return True


def seed_database(db: Database, bcrypt_rounds: int = 12) -> SeedResult:
    """Insert the demo data set.

    Args:
        db: Open database
        bcrypt_rounds: Cost for the demo password hashes

    Returns:
        Counts of newly inserted rows
    """
    result = SeedResult()
    now = utc_now()
    demo_hash = hash_password(DEMO_PASSWORD, bcrypt_rounds)
    admin_hash = hash_password(ADMIN_PASSWORD, bcrypt_rounds)

    with db.transaction() as tx:
        for name, category, description in SUBJECTS:
            result.subjects += tx.execute(
                "INSERT OR IGNORE INTO subjects (id, name, category, description) VALUES (?, ?, ?, ?)",
                (new_id(), name, category, description),
            ).rowcount
        for name, description, icon, criteria in ACHIEVEMENTS:
            result.achievements += tx.execute(
                "INSERT OR IGNORE INTO achievements (id, name, description, icon, criteria)"
                " VALUES (?, ?, ?, ?, ?)",
                (new_id(), name, description, icon, json.dumps(criteria)),
            ).rowcount
        for user in DEMO_USERS:
            password_hash = admin_hash if user.role == "admin" else demo_hash
            if _seed_user(tx, user, password_hash, now):
                result.users += 1

    logger.info(
        "database.seeded",
        subjects=result.subjects,
        achievements=result.achievements,
        users=result.users,
    )
    return result
