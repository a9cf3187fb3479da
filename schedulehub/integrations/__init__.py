"""Adapters for external collaborators: calendar, ATS and email."""
