"""Zoom RTMS (real-time media streams) session connector.

A session is driven over two sockets: signaling authenticates and hands out
the media endpoint, media carries audio, video, screen share, transcript and
chat frames. ``coordinator.SessionCoordinator`` is the entry point.
"""
