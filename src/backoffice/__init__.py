"""Back-office access-control and audit core."""
