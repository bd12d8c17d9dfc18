"""Push notification fan-out for the coaching platform."""
