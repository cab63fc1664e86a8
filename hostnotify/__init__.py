"""Host RSVP notification service."""
