"""
clipmerge: batch merge orchestration for action-camera recordings.

Chapter files recorded by one camera session are grouped, concatenated
through FFmpeg with live progress, and failures are classified and
journaled for later retry.
"""

__version__ = "0.1.0"
