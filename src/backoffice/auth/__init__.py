"""Authentication, principal resolution, and authorization gates."""
