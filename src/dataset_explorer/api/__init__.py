"""FastAPI backend for the filter-aware aggregation engine.

Architecture:
- API routes: effective filters, column/table aggregations, condition preview, rebinning
- Services: AggregationService (classify -> compile -> aggregate)
- Models: Pydantic schemas (API contracts)
- Dependencies: AggregationService injection
"""
