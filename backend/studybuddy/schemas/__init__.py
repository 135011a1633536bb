"""
StudyBuddy Backend — Pydantic Schemas
======================================

    - notes.py:   the Subject → Chapter → Note tree and its request/response models
    - auth.py:    register/login/logout contracts
    - chat.py:    AI buddy chat contracts
    - common.py:  error and health responses

All models serialize with camelCase keys (fileUrl, createdAt, hasSubjects).
"""
