"""Core Business Logic Module

This module provides the RBAC and account logic of the admin starter,
independent of the HTTP framework.

Module Structure:
    - models.py       : SQLAlchemy tables (accounts, roles, permissions, edges)
    - database.py     : Engine and session scopes
    - accounts.py     : Account store
    - rbac_store.py   : Role / permission / edge store
    - rbac.py         : Snapshot resolver (identity -> account -> roles -> permissions)
    - gate.py         : Authorization gate (query / mutation / action shapes)
    - lifecycle.py    : Account status hooks run by the identity provider
    - identity/       : Identity provider boundary and Keycloak adapter
    - email.py        : Templated email delivery
    - operations/     : Operations exposed to the API and scripts
    - seed.py         : Built-in roles, permissions and first administrator

Usage Pattern:
    These modules are NOT auto-imported. Import explicitly when needed:
        from app.core.operations import invite_user
        from app.core.rbac import resolve_snapshot
"""
