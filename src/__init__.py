"""Fluency scheduler source package."""
