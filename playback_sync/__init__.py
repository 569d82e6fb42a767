"""Adaptive audio/text playback synchronization.

Learns the offset between spoken audio and its word-level transcript from
user interactions and corrects word timestamps during playback.
"""

__version__ = "0.1.0"
