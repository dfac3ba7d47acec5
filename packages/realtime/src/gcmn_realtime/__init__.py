"""Realtime admin tables for the GCMN Library portal.

A ChangeFeed turns Postgres notifications into per-relation callbacks; each
admin view owns a TableMirror that re-reads its relation on every callback.
"""
