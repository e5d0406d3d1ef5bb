"""Core business logic.

Modules:
- errors: Error taxonomy mapped to HTTP statuses by the web layer
- auth: Password hashing, access tokens, principals and role checks
- side_effects: Post-commit notification and activity hooks
- accounts: Registration, login, password management
- users: Profiles, settings, progress, activity, achievements
- tutors: Tutor directory, profiles, reviews, earnings
- sessions: Booking and session lifecycle, disputes
- exams: Exams, submissions, grading
- documents: Document metadata, favourites, sharing
- planner: Planner items and reminders
- messages: Direct messages and conversations
- notifications: In-app notifications
- admin: Verification, payments, disputes, coupons
- analytics: Platform statistics
- export: CSV export
"""

__all__ = [
    "errors",
    "auth",
    "side_effects",
    "accounts",
    "users",
    "tutors",
    "sessions",
    "exams",
    "documents",
    "planner",
    "messages",
    "notifications",
    "admin",
    "analytics",
    "export",
]
