"""
Scheduling Domain

Appointment slots and booking.

- repository.py: pet, slot and appointment queries (slot capacity is reserved
  with an atomic conditional UPDATE)
- service.py: BookingService (reserve slot + create appointment, then
  best-effort video session, notifications and analytics)
- router.py: /appointments endpoints
"""
