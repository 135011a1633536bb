"""
StudyBuddy Backend — Middleware Package
=========================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Logging] → [Upload size limit] → [GZip] → [CORS] → Route

    - Request ID first so every later log line and error body can carry it
    - Upload size limit rejects oversized bodies before the form is parsed
"""
