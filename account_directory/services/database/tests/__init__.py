"""Tests for :mod:`account_directory.services.database`."""
