"""Shared-item rental booking service."""
