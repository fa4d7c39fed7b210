"""
Scheduling domain - recurring schedules and the appointments generated from them.

- recurrence.py: pure date arithmetic for weekly / biweekly / monthly rules
- service.py: ScheduleEngine (generation, pause/resume, reconciliation)
- generation_job.py: the batch run over all active schedules
- router.py: /recurring-schedules endpoints
"""

from .router import router

__all__ = ["router"]
