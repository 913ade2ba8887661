"""Deal pipeline -- deals, timeline, stars, memos, assignments, documents and closings.

Provides SQLAlchemy models, Pydantic schemas, DealRepository for async
CRUD, DealService for the pipeline rules, and the scoring helpers behind
the leaderboard and dashboard.
"""
