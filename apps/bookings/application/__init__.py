"""Use cases for the booking domain."""
