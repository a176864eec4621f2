"""
Omnivore API - Application Package
==================================

What:  The upload and library backend of the Omnivore read-it-later app.
How:   Layered the same way in every module:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Upload / Page / Store)  │  ← Orchestration, typed results
    ├─────────────────────────────────────┤
    │   Utils (URL classify, file names)  │  ← Pure functions
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

Routes never touch the ORM directly for writes; they hand a request context
or a session to a service and render what comes back.
"""

__version__ = "1.0.0"
