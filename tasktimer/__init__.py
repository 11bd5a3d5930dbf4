"""Personal time tracking: projects, tasks, a single running timer and summaries."""
