"""chapter_insights package.

Derives chapter-level views for a membership organization from raw member,
metric and trade records held in MongoDB: chapter statistics with
month-over-month growth, per-member composite scores and inactivity flags,
a merged activity feed, and validated trade status transitions.

Architecture:
- Records are read through a narrow `ChapterStore` interface
- pandas is used for the per-member / per-metric rollups
- Pydantic models validate every record read from the store
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
