"""
Cross-source reconciliation engine.

Groups records from independent sources (bank statement, cash register,
POS, accounting) into value/date buckets, scores candidate pairs from
different sources and aggregates the proposed matches into a report.

Grouping trade-off: only records in the same bucket (or, with neighbour
probing, in the adjacent value bucket and the day buckets within the date
tolerance) are ever compared. Records further apart than one bucket width in
value, or further apart in time than the date tolerance, are never matched.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Union
import logging
import threading
import uuid

from ..config import ReconConfig
from ..models.reconciliation import (
    Discrepancy,
    MatchType,
    Participant,
    ReconciliationMatch,
    ReconciliationReport,
    ReconciliationSource,
    ReconciliationSummary,
    ResolutionAction,
    Severity,
)
from ..models.record import Record
from ..models.rules import ReconciliationRule
from ..utils.exceptions import ValidationError
from .rules import apply_rule, prepare_rules
from .scoring import (
    CONFIDENCE_BANDS,
    MEDIUM_SEVERITY_VALUE_DIFF,
    RECON_DATE_EXACT,
    RECON_DATE_NEAR,
    RECON_IDENTIFIER_EXACT,
    RECON_IDENTIFIER_PARTIAL,
    RECON_TEXT,
    RECON_VALUE_FLOOR,
    RECON_VALUE_PARTIAL,
    RECON_VALUE_WEIGHT,
    cap_confidence,
    confidence_band,
)
from .similarity import (
    ONE,
    ZERO,
    count_common_digits,
    normalize_text,
    string_similarity,
    value_similarity,
)

logger = logging.getLogger(__name__)

BucketKey = tuple[int, date]
RecordPair = tuple[Record, Record]


class EngineState(Enum):
    """Phase of the current ``reconcile()`` run."""

    IDLE = "idle"
    GROUPING = "grouping"
    EVALUATING = "evaluating"
    REPORTING = "reporting"


class ReconciliationEngine:
    """
    Rule-based matcher across independently sourced record sets.

    A run either completes and returns a report or raises; nothing from a
    failed run is kept.
    """

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the reconciliation engine.

        Args:
            config: Application configuration (defaults when omitted)
        """
        self.config = config or ReconConfig()
        self.settings = self.config.reconciliation
        self.state = EngineState.IDLE
        self._run_lock = threading.Lock()

    def reconcile(
        self,
        sources: Sequence[ReconciliationSource],
        rules: Optional[Iterable[Union[ReconciliationRule, dict[str, Any]]]] = None,
    ) -> ReconciliationReport:
        """
        Reconcile records across sources.

        Args:
            sources: Record sets to compare; ids must be unique
            rules: Custom rules; the configured rules are used when omitted

        Returns:
            Reconciliation report

        Raises:
            RuleDefinitionError: If a rule is malformed
            ValidationError: If sources are inconsistent
        """
        rule_definitions = self.config.rules if rules is None else rules

        with self._run_lock:
            start_time = datetime.now()
            try:
                active_rules = prepare_rules(rule_definitions)
                self._check_sources(sources)

                records = [record for source in sources for record in source.records]
                logger.info(
                    f"Starting reconciliation: {len(sources)} sources, "
                    f"{len(records)} records, {len(active_rules)} rules"
                )

                self.state = EngineState.GROUPING
                buckets = self._group_records(records)
                pairs = self._candidate_pairs(buckets, records)
                logger.debug(f"{len(buckets)} buckets, {len(pairs)} candidate pairs")

                self.state = EngineState.EVALUATING
                matches = self._evaluate_pairs(pairs, active_rules)

                self.state = EngineState.REPORTING
                elapsed = (datetime.now() - start_time).total_seconds()
                report = self._build_report(sources, records, matches, elapsed)
            finally:
                self.state = EngineState.IDLE

        logger.info(
            f"Reconciliation complete in {report.processing_time_seconds:.2f}s: "
            f"{len(report.matches)} matches, {report.summary.matched_records} matched and "
            f"{report.summary.unmatched_records} unmatched records"
        )
        return report

    def _check_sources(self, sources: Sequence[ReconciliationSource]) -> None:
        seen: set[str] = set()
        for source in sources:
            if source.id in seen:
                raise ValidationError(f"Duplicate source id: {source.id!r}")
            seen.add(source.id)

    def _bucket_key(self, record: Record) -> BucketKey:
        value_bucket = (record.amount / self.settings.value_bucket_width).to_integral_value(
            rounding=ROUND_FLOOR
        )
        return int(value_bucket), record.date

    def _group_records(self, records: list[Record]) -> dict[BucketKey, list[Record]]:
        """Bucket records by value range and calendar day."""
        buckets: dict[BucketKey, list[Record]] = {}
        for record in records:
            buckets.setdefault(self._bucket_key(record), []).append(record)
        return buckets

    def _candidate_pairs(
        self,
        buckets: dict[BucketKey, list[Record]],
        records: list[Record],
    ) -> list[RecordPair]:
        """
        Cross-source pairs sharing a bucket (or a neighbouring one).

        Pairs are oriented by input order so runs are reproducible.
        """
        order = {record.ref: index for index, record in enumerate(records)}
        seen: set[tuple[str, str]] = set()
        pairs: list[RecordPair] = []

        def add(a: Record, b: Record) -> None:
            if a.source_id == b.source_id:
                return
            if order[a.ref] > order[b.ref]:
                a, b = b, a
            key = (a.ref, b.ref)
            if key in seen:
                return
            seen.add(key)
            pairs.append((a, b))

        if self.settings.probe_neighbor_buckets:
            days = self.settings.date_tolerance_days
            offsets = [
                (dv, dd)
                for dv in (-1, 0, 1)
                for dd in range(-days, days + 1)
                if (dv, dd) != (0, 0)
            ]
        else:
            offsets = []

        for (value_bucket, day), members in buckets.items():
            for i, a in enumerate(members):
                for b in members[i + 1 :]:
                    add(a, b)

            for dv, dd in offsets:
                neighbour = buckets.get((value_bucket + dv, day + timedelta(days=dd)))
                if not neighbour:
                    continue
                for a in members:
                    for b in neighbour:
                        add(a, b)

        pairs.sort(key=lambda p: (order[p[0].ref], order[p[1].ref]))
        return pairs

    def _evaluate_pairs(
        self,
        pairs: list[RecordPair],
        rules: list[ReconciliationRule],
    ) -> list[ReconciliationMatch]:
        """Score every candidate pair, optionally on a thread pool."""
        if self.settings.max_workers > 1 and len(pairs) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
                results = list(executor.map(lambda p: self._evaluate_pair(p[0], p[1], rules), pairs))
        else:
            results = [self._evaluate_pair(a, b, rules) for a, b in pairs]

        matches = [m for m in results if m is not None]
        matches.sort(key=lambda m: (-m.confidence, m.id))
        return matches

    def _evaluate_pair(
        self,
        a: Record,
        b: Record,
        rules: list[ReconciliationRule],
    ) -> Optional[ReconciliationMatch]:
        """
        Weighted score for one pair.

        value (0.4, partial 0.2) + date (0.3 same day, 0.15 within tolerance)
        + identifier (0.2 exact, 0.1 partial) + description (0.1)
        + 0.05 per satisfied rule condition.
        """
        settings = self.settings
        total = ZERO
        fields: list[str] = []
        discrepancies: list[Discrepancy] = []

        difference = abs(a.amount - b.amount)
        similarity = value_similarity(a.amount, b.amount)
        within_value_tolerance = similarity >= ONE - settings.value_tolerance
        if difference == ZERO:
            total += RECON_VALUE_WEIGHT
            fields.append("amount")
        elif within_value_tolerance or similarity > RECON_VALUE_FLOOR:
            if within_value_tolerance:
                total += RECON_VALUE_WEIGHT * similarity
            else:
                total += RECON_VALUE_PARTIAL
            fields.append("amount")
            discrepancies.append(
                Discrepancy(
                    field="amount",
                    values_by_source={a.source_id: a.amount, b.source_id: b.amount},
                    severity=(
                        Severity.MEDIUM
                        if difference > MEDIUM_SEVERITY_VALUE_DIFF
                        else Severity.LOW
                    ),
                    reason=f"Value difference: {difference:.2f}",
                )
            )

        days_apart = abs((a.date - b.date).days)
        if days_apart == 0:
            total += RECON_DATE_EXACT
            fields.append("date")
        elif days_apart <= settings.date_tolerance_days:
            total += RECON_DATE_NEAR
            discrepancies.append(
                Discrepancy(
                    field="date",
                    values_by_source={a.source_id: a.date, b.source_id: b.date},
                    severity=Severity.LOW,
                    reason=f"{days_apart} day(s) apart",
                )
            )

        if a.identifier and b.identifier:
            min_digits = settings.partial_identifier_min_digits
            if a.identifier == b.identifier:
                total += RECON_IDENTIFIER_EXACT
                fields.append("identifier")
            elif (
                len(a.identifier) >= min_digits
                and len(b.identifier) >= min_digits
                and count_common_digits(a.identifier, b.identifier) >= min_digits
            ):
                total += RECON_IDENTIFIER_PARTIAL

        # Two blank descriptions count as identical
        text_similarity = string_similarity(
            normalize_text(a.original_text), normalize_text(b.original_text)
        )
        if text_similarity > settings.text_similarity_threshold:
            total += RECON_TEXT
            fields.append("original_text")

        for rule in rules:
            outcome = apply_rule(rule, a, b)
            total += outcome.bonus
            fields.extend(outcome.matching_fields)
            discrepancies.extend(outcome.discrepancies)

        confidence = cap_confidence(total)
        if confidence < settings.min_confidence:
            return None

        if confidence > settings.exact_threshold:
            match_type = MatchType.EXACT
        elif confidence > settings.approximate_threshold:
            match_type = MatchType.APPROXIMATE
        else:
            match_type = MatchType.PATTERN

        matching_fields = tuple(dict.fromkeys(fields))

        # One discrepancy per field
        collapsed: dict[str, Discrepancy] = {}
        for discrepancy in discrepancies:
            collapsed.setdefault(discrepancy.field, discrepancy)

        return ReconciliationMatch(
            id=f"match:{a.ref}|{b.ref}",
            confidence=confidence,
            match_type=match_type,
            participants=(
                Participant(source_id=a.source_id, record=a, matching_fields=matching_fields),
                Participant(source_id=b.source_id, record=b, matching_fields=matching_fields),
            ),
            discrepancies=tuple(collapsed.values()),
        )

    def _build_report(
        self,
        sources: Sequence[ReconciliationSource],
        records: list[Record],
        matches: list[ReconciliationMatch],
        processing_time: float,
    ) -> ReconciliationReport:
        """Aggregate totals and the confidence histogram."""
        matched_refs = {ref for match in matches for ref in match.record_refs}

        matched = [r for r in records if r.ref in matched_refs]
        unmatched = [r for r in records if r.ref not in matched_refs]

        matched_value = sum((r.amount for r in matched), Decimal("0"))
        unmatched_value = sum((r.amount for r in unmatched), Decimal("0"))

        distribution = {name: 0 for name, _ in CONFIDENCE_BANDS}
        for match in matches:
            band = confidence_band(match.confidence)
            if band:
                distribution[band] += 1

        by_type = Counter(match.match_type.value for match in matches)

        all_dates = [r.date for r in records]

        summary = ReconciliationSummary(
            total_records=len(records),
            matched_records=len(matched),
            unmatched_records=len(unmatched),
            conflicting_records=sum(1 for m in matches if m.has_discrepancies),
            total_value=matched_value + unmatched_value,
            matched_value=matched_value,
            unmatched_value=unmatched_value,
            confidence_distribution=distribution,
            matches_by_type=dict(by_type),
        )

        return ReconciliationReport(
            id=f"report_{uuid.uuid4().hex[:12]}",
            generated_at=datetime.now(),
            period_start=min(all_dates) if all_dates else None,
            period_end=max(all_dates) if all_dates else None,
            source_record_counts={s.id: len(s.records) for s in sources},
            matches=tuple(matches),
            unmatched=tuple(unmatched),
            summary=summary,
            processing_time_seconds=processing_time,
        )

    def create_manual_match(
        self,
        records: Sequence[Record],
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ReconciliationMatch:
        """
        Link records an operator has matched by hand.

        The match is created accepted, with confidence 1.0.

        Raises:
            ValidationError: If fewer than two sources are involved
        """
        if len({r.source_id for r in records}) < 2:
            raise ValidationError("A manual match needs records from at least two sources")

        match = ReconciliationMatch(
            id="manual:" + "|".join(r.ref for r in records),
            confidence=ONE,
            match_type=MatchType.MANUAL,
            participants=tuple(
                Participant(source_id=r.source_id, record=r) for r in records
            ),
        )
        match.resolve(ResolutionAction.ACCEPT, resolved_by=resolved_by, notes=notes)
        logger.info(f"Manual match created: {match.id}")
        return match
