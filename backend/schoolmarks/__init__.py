"""SchoolMarks - exam session and marks backend."""

__version__ = "1.0.0"
