"""Debrief services: aggregation, narrative, delivery, storage."""
