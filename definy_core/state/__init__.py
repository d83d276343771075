"""Persistence layer: tables, engines, sessions and content-addressed storage."""
