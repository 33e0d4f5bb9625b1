"""Bookings app package.

This app encapsulates the room reservation domain: the booking ledger,
availability checks, payment reconciliation against the payment gateway
and the HTTP and worker entry points around them. Writes on a room are
serialized through a per-room lock row and compare-and-set updates.
"""
