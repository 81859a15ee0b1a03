"""
Tests Package - Unit and integration tests for the Ziyuanbao import pipeline.
=============================================================================

Test modules:
- test_ingestion: Fetcher, listing, detail, markdown, cloud-disk tests
- test_outline: Outline schema, heuristic parser, Gemini generator tests
- test_storage: Staging, catalog and job store tests
- test_pipeline: Batch loop, service, importer, job runner tests
- test_api: HTTP endpoint tests
- test_cli: Typer command tests

Run tests with:
    pytest tests/
    pytest tests/ -v -m "not integration"
"""
