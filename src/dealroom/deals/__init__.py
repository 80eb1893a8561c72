"""Deal room module -- models, schemas, repository and derived deal views.

Provides SQLAlchemy models (Deal, Lender, Invitation, Document, AuditLog),
Pydantic schemas, DealRepository for async CRUD, and the pure derivations
the pages consume: deadlines, the deal context and the ICS calendar.
"""
