"""
Dataset ingestion and serving.

Layout follows the other feature packages:
- `router.py`      HTTP endpoints
- `service.py`     orchestration (ingest -> allocate -> store, address -> query)
- `parsing.py`     upload bytes -> records
- `addressing.py`  public slugs
- `store.py`       store contract + in-memory backend
- `repository.py`  Postgres backend (raw SQL)
- `query.py`       sub-path / index / filter evaluation
"""
