"""Collaborator onboarding service."""
