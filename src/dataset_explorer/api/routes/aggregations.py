"""Aggregation API routes.

Endpoints:
- POST /api/datasets/{dataset_id}/effective-filters - Direct/propagated filters per table
- POST /api/datasets/{dataset_id}/tables/{table}/columns/{column}/aggregation - One column
- POST /api/datasets/{dataset_id}/tables/{table}/aggregations - All (or selected) columns
- POST /api/datasets/{dataset_id}/tables/{table}/condition - Compiled condition preview
- POST /api/histograms/rebin - Redistribute a histogram onto nice bin widths

Routes are plain ``def`` so FastAPI runs the blocking DuckDB work in its threadpool.
"""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from dataset_explorer.analysis.aggregator import HistogramBin, NumericStats
from dataset_explorer.api.dependencies import AggregationServiceDep
from dataset_explorer.api.models import schemas
from dataset_explorer.core.compiler import describe_warnings
from dataset_explorer.core.errors import (
    FilterEngineError,
    InvalidFilterValue,
    StoreQueryFailed,
    TableNotFound,
    UnknownColumn,
)
from dataset_explorer.core.filters import Filter, filter_to_dict, parse_filters

router = APIRouter()

DatasetId = Annotated[str, Path(..., description="Dataset ID")]
TableName = Annotated[str, Path(..., description="Logical table name")]


def to_http_exception(error: FilterEngineError) -> HTTPException:
    """Map an engine error to its HTTP status.

    InvalidFilterValue -> 400, TableNotFound/UnknownColumn -> 404,
    StoreQueryFailed -> 502, anything else -> 500.
    """
    if isinstance(error, InvalidFilterValue):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, TableNotFound | UnknownColumn):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, StoreQueryFailed):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))


def _parse(request: schemas.FiltersRequest) -> list[Filter]:
    try:
        return parse_filters(request.filters)
    except InvalidFilterValue as e:
        raise to_http_exception(e) from e


# ============================================================================
# POST /api/datasets/{dataset_id}/effective-filters
# ============================================================================


@router.post("/datasets/{dataset_id}/effective-filters", response_model=dict[str, schemas.TableFilters])
def get_effective_filters(
    dataset_id: DatasetId,
    request: schemas.FiltersRequest,
    service: AggregationServiceDep,
) -> dict[str, schemas.TableFilters]:
    """Classify filters into direct and propagated sets for every table of the dataset.

    Example:
        POST /api/datasets/study1/effective-filters
        {"filters": [{"column": "status", "operator": "eq", "value": "Active", "tableName": "patients"}]}

        Response (200):
        {
            "patients": {"direct": [{...}], "propagated": []},
            "samples": {"direct": [], "propagated": [{...}]}
        }
    """
    filters = _parse(request)
    try:
        classification = service.get_dataset_effective_filters(dataset_id, filters)
    except FilterEngineError as e:
        raise to_http_exception(e) from e

    return {
        table: schemas.TableFilters(
            direct=[filter_to_dict(node) for node in effective.direct],
            propagated=[filter_to_dict(node) for node in effective.propagated],
        )
        for table, effective in classification.items()
    }


# ============================================================================
# POST /api/datasets/{dataset_id}/tables/{table}/columns/{column}/aggregation
# ============================================================================


@router.post(
    "/datasets/{dataset_id}/tables/{table}/columns/{column}/aggregation",
    response_model=schemas.ColumnAggregationResponse,
)
def get_column_aggregation(
    dataset_id: DatasetId,
    table: TableName,
    column: Annotated[str, Path(..., description="Column to aggregate")],
    request: schemas.ColumnAggregationRequest,
    service: AggregationServiceDep,
) -> schemas.ColumnAggregationResponse:
    """Aggregate one column under the filters that apply to its table.

    Raises:
        HTTPException: 400 invalid filter, 404 unknown table/column, 502 store failure
    """
    filters = _parse(request)
    try:
        aggregation = service.get_column_aggregation(
            dataset_id,
            table,
            column,
            filters,
            display_type=request.display_type,
            limit=request.limit,
            bins=request.bins,
        )
    except FilterEngineError as e:
        raise to_http_exception(e) from e

    return schemas.ColumnAggregationResponse.model_validate(aggregation.to_dict())


# ============================================================================
# POST /api/datasets/{dataset_id}/tables/{table}/aggregations
# ============================================================================


@router.post("/datasets/{dataset_id}/tables/{table}/aggregations", response_model=schemas.TableAggregationsResponse)
def get_table_aggregations(
    dataset_id: DatasetId,
    table: TableName,
    request: schemas.TableAggregationsRequest,
    service: AggregationServiceDep,
) -> schemas.TableAggregationsResponse:
    """Aggregate every requested column concurrently; failed columns are reported, not fatal."""
    filters = _parse(request)
    try:
        result = service.get_table_aggregations(dataset_id, table, filters, columns=request.columns)
    except FilterEngineError as e:
        raise to_http_exception(e) from e

    return schemas.TableAggregationsResponse.model_validate(result.to_dict())


# ============================================================================
# POST /api/datasets/{dataset_id}/tables/{table}/condition
# ============================================================================


@router.post("/datasets/{dataset_id}/tables/{table}/condition", response_model=schemas.ConditionResponse)
def get_condition(
    dataset_id: DatasetId,
    table: TableName,
    request: schemas.FiltersRequest,
    service: AggregationServiceDep,
) -> schemas.ConditionResponse:
    """Show the condition a table would be aggregated under, with dropped filters.

    Example:
        POST /api/datasets/study1/tables/samples/condition
        {"filters": [{"column": "status", "operator": "eq", "value": "Active", "tableName": "patients"}]}

        Response (200):
        {
            "table": "samples",
            "sql": "patient_id IN (SELECT patient_id FROM study1_patients WHERE status = 'Active')",
            "parameterized_sql": "patient_id IN (SELECT patient_id FROM study1_patients WHERE status = ?)",
            "params": ["Active"],
            "warnings": []
        }
    """
    filters = _parse(request)
    try:
        condition = service.compile_condition(dataset_id, table, filters)
    except FilterEngineError as e:
        raise to_http_exception(e) from e

    parameterized = condition.render()
    return schemas.ConditionResponse(
        table=table,
        sql=condition.render(inline=True).sql or None,
        parameterized_sql=parameterized.sql or None,
        params=list(parameterized.params),
        warnings=[schemas.FilterWarningResponse(**warning) for warning in describe_warnings(condition.warnings)],
    )


# ============================================================================
# POST /api/histograms/rebin
# ============================================================================


@router.post("/histograms/rebin", response_model=schemas.RebinResponse)
def rebin_histogram(request: schemas.RebinRequest, service: AggregationServiceDep) -> schemas.RebinResponse:
    """Redistribute an existing histogram onto nice bin widths without querying the store."""
    histogram = [HistogramBin(**bin_.model_dump()) for bin_ in request.histogram]
    stats = NumericStats(**request.numeric_stats.model_dump())
    try:
        rebinned = service.rebin(histogram, stats, request.bins)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return schemas.RebinResponse(
        histogram=[schemas.HistogramBinSchema.model_validate(asdict(bin_)) for bin_ in rebinned]
    )
