"""
Scheduling domain - shared booking rules

Logic used by every booking area, kept free of HTTP concerns:
- conflicts.py: half-open window overlap detection for slots and visits
- lifecycle.py: slot and visit transition tables and time predicates
- matcher.py: recurring availability -> concrete slot window

Services in slots/, visits/ and spontaneous/ own the transactions; nothing in
this package commits.
"""

__all__ = []
