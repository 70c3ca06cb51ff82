"""Rule engine for classroom-conduct inspection: calendar, deadlines, scheduling, suggestions and grades."""

__version__ = "0.1.0"
