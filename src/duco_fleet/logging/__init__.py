"""Logging configuration for the device fleet."""
