"""Application package for the StudyBuddy study-planning backend.

This package exposes the service, storage, planner and model modules used
by the FastAPI application. It is intentionally lightweight; individual
modules contain the concrete implementations and documentation.
"""
