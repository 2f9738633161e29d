"""Parish domain services built on the calendar core."""
