from app.routers import admin, auth, editor, files, health, lessons, progress, quiz, topics

__all__ = [
    "admin",
    "auth",
    "editor",
    "files",
    "health",
    "lessons",
    "progress",
    "quiz",
    "topics",
]
