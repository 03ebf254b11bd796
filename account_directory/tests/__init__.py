"""Tests for :mod:`account_directory`."""
