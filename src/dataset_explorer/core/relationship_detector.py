"""
Relationship Detector - foreign key discovery for tables uploaded without metadata.

When a dataset arrives without declared relationships, this module proposes
``Relationship`` declarations by:
- Detecting the primary key of each table (unique, non-null, preferably *id*)
- Finding child columns whose names match a parent key
- Verifying referential integrity (share of child values present in the parent)

Detected relationships feed the same RelationshipGraph as declared ones.
"""

from dataclasses import dataclass

import polars as pl
import structlog

from dataset_explorer.core.relationships import Relationship

logger = structlog.get_logger(__name__)

MIN_MATCH_RATIO = 0.8


@dataclass(frozen=True)
class DetectedRelationship:
    """Candidate foreign key with its evidence."""

    child_table: str
    child_column: str
    parent_table: str
    parent_key: str
    confidence: float  # 0-1 score from name similarity and referential integrity
    match_ratio: float  # 0-1 share of distinct child values found in the parent key

    def to_relationship(self) -> Relationship:
        return Relationship(
            foreign_key_column=self.child_column,
            referenced_table=self.parent_table,
            referenced_column=self.parent_key,
            kind="many-to-one",
        )


class RelationshipDetector:
    """Detects foreign key relationships between Polars tables."""

    def __init__(self, min_match_ratio: float = MIN_MATCH_RATIO):
        self.min_match_ratio = min_match_ratio

    def detect_primary_key(self, df: pl.DataFrame) -> str | None:
        """
        Detect primary key column in a table.

        Strategy:
        1. Column must be 100% unique (no duplicates)
        2. Column must have no null values
        3. Prefer columns with "id" in name

        Returns:
            Primary key column name or None
        """
        if df.height == 0:
            return None

        id_cols = [col for col in df.columns if "id" in col.lower()]
        other_cols = [col for col in df.columns if col not in id_cols]

        for col in [*id_cols, *other_cols]:
            if df[col].null_count() == 0 and df[col].n_unique() == df.height:
                return col

        return None

    def is_foreign_key_candidate(self, parent_key: str, child_col: str) -> bool:
        """
        Check if a column name suggests a reference to ``parent_key``.

        Matches the exact name (case-insensitive), common FK patterns
        (``{key}_id``, ``fk_{key}``, ``{key}_fk``) and names that only differ by
        underscores (``patient_id`` vs ``patientid``).
        """
        parent_lower = parent_key.lower()
        child_lower = child_col.lower()

        if child_lower in {parent_lower, f"{parent_lower}_id", f"fk_{parent_lower}", f"{parent_lower}_fk"}:
            return True

        return parent_lower.replace("_", "") == child_lower.replace("_", "")

    def verify_referential_integrity(
        self, parent_df: pl.DataFrame, parent_key: str, child_df: pl.DataFrame, child_col: str
    ) -> float:
        """
        Share of distinct non-null child values that exist in the parent key.

        Both sides are compared as text so an integer key matches its string form.

        Returns:
            Match ratio (0-1); 0.0 when the child column has no values
        """
        child_values = (
            child_df.select(pl.col(child_col).cast(pl.Utf8, strict=False).alias("value")).drop_nulls().unique()
        )
        if child_values.height == 0:
            return 0.0

        parent_values = (
            parent_df.select(pl.col(parent_key).cast(pl.Utf8, strict=False).alias("value")).drop_nulls().unique()
        )
        matches = child_values.join(parent_values, on="value", how="inner").height
        return matches / child_values.height

    def detect_relationships(self, tables: dict[str, pl.DataFrame]) -> list[DetectedRelationship]:
        """
        Auto-detect foreign key relationships between tables.

        Args:
            tables: Dictionary mapping table names to Polars DataFrames

        Returns:
            Detected relationships sorted by confidence (descending), at most one
            per (child table, child column)
        """
        primary_keys = {name: pk for name, df in tables.items() if (pk := self.detect_primary_key(df))}
        best: dict[tuple[str, str], DetectedRelationship] = {}

        for parent_table, parent_key in sorted(primary_keys.items()):
            parent_df = tables[parent_table]
            for child_table, child_df in sorted(tables.items()):
                if child_table == parent_table:
                    continue
                for child_col in child_df.columns:
                    # A child's own primary key only references the parent when it shares its name
                    if child_col == primary_keys.get(child_table) and child_col.lower() != parent_key.lower():
                        continue
                    if not self.is_foreign_key_candidate(parent_key, child_col):
                        continue

                    match_ratio = self.verify_referential_integrity(parent_df, parent_key, child_df, child_col)
                    if match_ratio < self.min_match_ratio:
                        continue

                    name_conf = 1.0 if parent_key.lower() == child_col.lower() else 0.9
                    candidate = DetectedRelationship(
                        child_table=child_table,
                        child_column=child_col,
                        parent_table=parent_table,
                        parent_key=parent_key,
                        confidence=(name_conf + match_ratio) / 2,
                        match_ratio=match_ratio,
                    )
                    key = (child_table, child_col)
                    if key not in best or candidate.confidence > best[key].confidence:
                        best[key] = candidate

        detected = sorted(best.values(), key=lambda r: (-r.confidence, r.child_table, r.child_column))
        for rel in detected:
            logger.info(
                "relationship_detected",
                child=f"{rel.child_table}.{rel.child_column}",
                parent=f"{rel.parent_table}.{rel.parent_key}",
                confidence=round(rel.confidence, 3),
            )
        return detected

    def detect_declarations(self, tables: dict[str, pl.DataFrame]) -> dict[str, list[Relationship]]:
        """Detected relationships grouped by child table, as declarations."""
        declarations: dict[str, list[Relationship]] = {name: [] for name in tables}
        for rel in self.detect_relationships(tables):
            declarations[rel.child_table].append(rel.to_relationship())
        return declarations
