"""
Directed follow graph between accounts.

Edges are unique per (follower, followed) pair and self-follows are rejected.
follow/unfollow are idempotent so concurrent duplicates need no locking.
"""
