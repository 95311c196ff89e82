"""
StackIt Backend — Pydantic Request/Response Schemas
=====================================================

Kept separate from the ORM models: API contracts change independently of the
table layout, and only fields listed here ever leave the server (the user
password hash has no schema field, so it cannot leak).
"""
