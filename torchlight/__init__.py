"""Torchlight: intake service for the ETA onboarding questionnaire."""
