"""Booking domain model: entities, value rules, events and errors."""
