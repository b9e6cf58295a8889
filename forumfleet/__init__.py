"""
forumfleet: upgrade orchestration for a fleet of self-hosted Discourse forums.
"""

__version__ = "0.1.0"
