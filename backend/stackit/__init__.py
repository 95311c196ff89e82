"""
StackIt Backend — Application Package Initializer
===================================================

What: The `stackit` package: a question & answer site backend (questions,
      answers, votes, tags, notifications, real-time updates).
Who:  Imported by uvicorn (`stackit.main:app`), Alembic and pytest.

Architecture Note:

    ┌─────────────────────────────────────┐
    │     Routes + WebSocket (API Layer)  │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← counters, reputation, rules
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
