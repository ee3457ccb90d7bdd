"""Unit tests for the topic voting service.

These run in-process against MemoryStore or fakeredis:

- Store adapter contract and failure mapping
- Topic registry and vote ledger behaviour, including the append race
- HTTP API status codes and response shapes
"""
