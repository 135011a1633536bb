"""
StudyBuddy Backend — Services Layer
=====================================

Service Inventory:
    - ProfileRepository: UserProfile documents with optimistic concurrency
    - NoteTreeService: Subject → Chapter → Note operations and file notes
    - ObjectStore: GCS or local storage for note attachments
    - ChatService: AI buddy replies, fallback rules, per-session history
    - LLMService / GeminiService: text generation behind a circuit breaker
    - AuthService / SessionManager: bcrypt credentials and signed cookies

All of them are wired once by studybuddy.container.build_services().
"""
