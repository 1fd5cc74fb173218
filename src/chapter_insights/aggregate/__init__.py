"""Chapter aggregation helpers.

This package turns the raw member, metric and trade records of one chapter
into derived views: windowed statistics with month-over-month growth,
member composite scores and inactivity flags, the leaderboard, pending
actions and the merged activity feed. Every function recomputes from the
store on each call.
"""
