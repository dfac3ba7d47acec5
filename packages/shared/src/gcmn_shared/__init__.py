"""Shared contract types for the GCMN Library portal.

Provides the pydantic models that flow between the auth layer, the data
access layer and the admin table mirrors, plus the relation name constants
every component uses to address the hosted backend.
"""
