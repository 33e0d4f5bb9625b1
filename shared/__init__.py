"""
Shared Kernel

Base classes, value objects and application plumbing (unit of work,
message bus, keyed locks) used by the booking and payment contexts.
"""
