"""Utilities package for batch-tracker."""
