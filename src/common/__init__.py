"""Helpers shared by the plugged-kbd application."""
