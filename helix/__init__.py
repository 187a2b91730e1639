"""
Triple Helix: position-based learning progression scheduler.

Decides, after every answered learning unit, which unit the learner sees
next across three rotating content tracks.
"""

__version__ = "1.0.0"
