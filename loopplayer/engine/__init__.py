"""Playback timing."""
