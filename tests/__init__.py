"""
Leaderboard Test Suite
======================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with fakes, mocks and SQLite
- tests/integration/   : Integration tests with testcontainers (PostgreSQL + Redis)
- tests/fakes.py       : In-memory PlayerStore and RankIndex

Testing Philosophy
------------------
- Unit tests: fast, isolated, cover the cache protocol and validation rules
- Integration tests: slower, run only with RUN_INTEGRATION=1
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
