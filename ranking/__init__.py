"""
Ranking — owner leaderboard

top_tribes.py: count markers per owner and pick the N largest with a
deterministic tie-break (count desc, owner id asc).
"""
from .top_tribes import build_leaderboard, count_owners, top_n_owners

__all__ = ["build_leaderboard", "count_owners", "top_n_owners"]
