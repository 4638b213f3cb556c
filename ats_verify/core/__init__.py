"""Configuration and logging helpers for ATS Verify."""
