"""
Scheduling Services Module

Core booking logic for imaging equipment:
- Overlap detection (overlap.py)
- Availability aggregation (availability.py)
- Tentative holds (holds.py)
- Draft lifecycle (drafts.py)
- Rescheduling (reschedule.py)
- Booking flow / session (flow.py)
- Collection store and query contract (store.py, query.py)
- Scheduled tasks (tasks.py)
"""
