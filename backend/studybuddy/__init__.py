"""
StudyBuddy Backend — Application Package
==========================================

What: Backend of the AI Study Buddy: accounts, a per-user Subject → Chapter →
      Note tree with optional file attachments, and a chat assistant grounded
      in those notes.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← NoteTree, Chat, Auth, Gemini
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database / Object store (I/O)     │  ← Async SQLAlchemy, GCS or local
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
