"""
GitHub Analytics Service

Collects GitHub user data and serves analytics over it:
1. Fetches profiles, repositories, events and contribution calendars from GitHub
2. Stores users and daily activity in a relational database
3. Ranks users on leaderboards and computes period analytics
4. Caches upstream responses and computed results in namespaced in-process stores
"""

__version__ = "0.1.0"
