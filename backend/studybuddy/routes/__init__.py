"""
StudyBuddy Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:      POST /api/register, /api/login, /api/logout
    - user.py:      GET/POST /api/user/subjects, POST /api/user/chapters,
                    POST /api/user/notes, POST /api/user/upload-note-file
    - ai_buddy.py:  POST /api/ai-buddy/chat, POST /api/ai-buddy/clear-chat,
                    GET /api/ai-buddy/context
    - health.py:    GET /api/health

Routes stay thin: read the session, call a service, shape the response.
"""
