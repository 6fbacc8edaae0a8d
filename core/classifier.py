# core/classifier.py
import asyncio
import re
import time
from typing import Any, Dict, List, Optional, Sequence
from config.settings import Settings
from core import confidence as conf
from core.candidate_store import CandidateStore
from core.embeddings import EmbeddingService
from core.entities import CandidateEntry, CandidateIndex, QueryContext, SearchHit
from core.hybrid_search import search
from core.query_processor import build_context, parse_percent
from core.reranker import rerank
from core.rules import DirectRule, NonHazardRule, RuleMatch, match_direct, match_non_hazard
from model.classification import Citation, CitationEntry, ClassificationResult, ProductRequest
from repository.history_repository import HistoryRepository
from util.constants import Citations, Confidence
from util.enums import CandidateSource, Outcome, QueryIntent, ResultSource, Stage
from util.errors import IndexUnavailableError
from util.functions import clip_words, join_labels, meta_str, normalize_packing_group
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

_LABELS_IN_TEXT = re.compile(r"Labels ([^—;|]+)")


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _shipping_name(meta: Dict[str, Any]) -> str:
    psn = meta_str(meta, "proper_shipping_name", "properShippingName")
    if psn:
        return psn
    base = meta_str(meta, "base_name", "baseName", "name")
    qualifier = meta_str(meta, "qualifier")
    return f"{base} - {qualifier}" if qualifier else base


def _hazard_class(meta: Dict[str, Any]) -> Optional[str]:
    return meta_str(meta, "class", "class_or_division", "hazard_class", "hazardClass") or None


def _labels(meta: Dict[str, Any], text: str) -> Optional[str]:
    codes = meta.get("label_codes")
    if isinstance(codes, (list, tuple)):
        return join_labels([str(c) for c in codes])
    if isinstance(codes, str) and codes.strip():
        return codes.strip()
    m = _LABELS_IN_TEXT.search(text or "")
    return m.group(1).strip() if m else None


class HazmatClassifier:
    """
    Runs one product description through the classification stages:

      non-hazard rules -> direct rules -> verified record -> expand -> embed
      -> gated search (ungated fallback) -> rerank -> confidence -> augment

    Every stage may end the run. The only exception that escapes `classify`
    is IndexUnavailableError; everything else degrades to a lower-confidence
    result.
    """

    def __init__(
        self,
        store: CandidateStore,
        embeddings: EmbeddingService,
        settings: Settings,
        history: Optional[HistoryRepository] = None,
        direct_rules: Optional[List[DirectRule]] = None,
        non_hazard_rules: Optional[List[NonHazardRule]] = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._settings = settings
        self._history = history
        self._direct_rules = direct_rules
        self._non_hazard_rules = non_hazard_rules

    async def classify(self, sku: Optional[str], product_name: str) -> ClassificationResult:
        started = time.perf_counter()
        name = (product_name or "").strip()
        logger.info("classify.start sku=%s name=%r", sku, clip_words(name, 12))

        # Stages entered so far; the last one is reported on failure
        trail: List[Stage] = [Stage.INPUT]

        # INPUT: the knowledge base must be loadable for any answer to count
        index = await self._store.ensure_loaded()

        trail.append(Stage.NON_HAZARD_RULE_CHECK)
        exempt = match_non_hazard(name, self._non_hazard_rules)
        if exempt is not None:
            logger.info("classify.rule.nonhaz rule=%s", exempt.name)
            return self._non_hazardous(name, exempt, started)

        trail.append(Stage.DIRECT_PATTERN_CHECK)
        direct = match_direct(name, self._direct_rules)
        if direct is not None:
            logger.info("classify.rule.direct rule=%s un=%s", direct.note, direct.rule.un_number)
            return self._from_rule(direct, started)

        trail.append(Stage.VERIFIED_RECORD_CHECK)
        try:
            if sku:
                verified = await self._verified_record(sku)
                if verified is not None:
                    logger.info("classify.verified sku=%s id=%s", sku, verified.id)
                    return self._from_verified(verified, started)
            return await self._retrieve(sku, name, index, started, trail)
        except IndexUnavailableError:
            raise
        except Exception:
            logger.error(
                "classify.failed stage=%s path=%s name=%r",
                trail[-1].value, ">".join(s.value for s in trail), name, exc_info=True,
            )
            return self._no_match("Classification failed; no candidate could be scored", started)

    async def classify_many(
        self, products: Sequence[ProductRequest], concurrency: Optional[int] = None
    ) -> List[ClassificationResult]:
        """
        Classify `products` with at most `concurrency` in flight. Results keep
        input order. A failure on one product yields an error result for that
        product only; an unavailable index still aborts the whole batch.
        """
        limit = max(1, concurrency or self._settings.CLASSIFY_CONCURRENCY)
        gate = asyncio.Semaphore(limit)

        async def _one(p: ProductRequest) -> ClassificationResult:
            async with gate:
                try:
                    return await self.classify(p.sku, p.name)
                except IndexUnavailableError:
                    raise
                except Exception:
                    logger.error("classify.batch.item.error sku=%s", p.sku, exc_info=True)
                    return ClassificationResult(
                        confidence=0.0,
                        source=ResultSource.ERROR.value,
                        outcome=Outcome.UNCLASSIFIED,
                        explanation="Classification failed",
                    )

        with timed(logger, "classify.batch", n=len(products), concurrency=limit):
            return list(await asyncio.gather(*(_one(p) for p in products)))

    # ---- stages ----

    async def _verified_record(self, sku: str) -> Optional[CandidateEntry]:
        entry = await self._store.find_by_field(CandidateSource.PRODUCTS.value, "sku", sku)
        if entry is None:
            return None
        flag = entry.metadata.get("is_verified")
        if not (flag is True or str(flag).lower() in ("true", "1", "yes")):
            return None
        if meta_str(entry.metadata, "id_number", "un_number", "unNumber") and not _hazard_class(entry.metadata):
            logger.warning("classify.verified.incomplete sku=%s id=%s missing=class", sku, entry.id)
            return None
        return entry

    async def _retrieve(
        self,
        sku: Optional[str],
        name: str,
        index: CandidateIndex,
        started: float,
        trail: List[Stage],
    ) -> ClassificationResult:
        s = self._settings
        trail.append(Stage.QUERY_EXPAND)
        ctx = build_context(name)
        logger.debug(
            "classify.expand family=%s intent=%s terms=%d",
            ctx.family, ctx.intent.value, len(ctx.expansion_terms),
        )

        trail.append(Stage.EMBED)
        with timed(logger, "classify.embed", logging.DEBUG, dim=index.dim):
            vectors = await self._embeddings.embed([ctx.expanded], dim=index.dim)
        query_vec = vectors[0]

        trail.append(Stage.GATED_SEARCH)
        hits = search(
            query_vec, ctx.expanded, index.entries,
            k=s.SEARCH_K, alpha=s.SEARCH_ALPHA, filters=ctx.filters, matrix=index.matrix,
        )
        if not hits and ctx.filters:
            trail.append(Stage.UNGATED_SEARCH)
            logger.info("classify.gate.empty family=%s; retrying ungated", ctx.family)
            hits = search(
                query_vec, ctx.expanded, index.entries,
                k=s.SEARCH_K, alpha=s.SEARCH_ALPHA, filters=None, matrix=index.matrix,
            )

        if not hits or hits[0].hybrid_score < s.MIN_MATCH_SCORE:
            best = hits[0].hybrid_score if hits else 0.0
            logger.info("classify.nomatch best=%.3f threshold=%.2f", best, s.MIN_MATCH_SCORE)
            return self._no_match("No close match in CFR HMT", started)

        trail.append(Stage.RERANK)
        # A hit can only classify when it carries both a UN number and a class
        ranked = [
            h for h in rerank(ctx, hits, top_n=s.RERANK_TOP_N)
            if h.un_number and _hazard_class(h.entry.metadata)
        ]
        if not ranked:
            return self._no_match("No close match in CFR HMT", started)

        trail.append(Stage.CONFIDENCE_CALC)
        confidence = conf.calculate(ctx, ranked, top_k=s.AGREEMENT_TOP_K)
        top = ranked[0]

        trail.append(Stage.AUGMENT)
        erg_guide = await self._erg_guide(top)
        agreeing = await self._history_count(name, top.un_number, sku)
        confidence = conf.with_history(confidence, agreeing)

        trail.append(Stage.RESULT)
        return self._from_hit(ctx, top, confidence, erg_guide, agreeing, started)

    async def _erg_guide(self, hit: SearchHit) -> Optional[str]:
        guide = meta_str(hit.entry.metadata, "erg_guide", "guide")
        if guide:
            return guide
        try:
            erg = await self._store.find_by_field(CandidateSource.ERG.value, "id_number", hit.un_number)
        except IndexUnavailableError:
            raise
        except Exception:
            logger.warning("classify.augment.erg.error un=%s", hit.un_number, exc_info=True)
            return None
        if erg is None:
            return None
        return meta_str(erg.metadata, "guide", "erg_guide") or None

    async def _history_count(self, name: str, un_number: str, sku: Optional[str]) -> int:
        if self._history is None:
            return 0
        try:
            return await self._history.count_agreeing(name, un_number, sku)
        except Exception:
            logger.warning("classify.augment.history.error un=%s", un_number, exc_info=True)
            return 0

    # ---- result builders ----

    def _non_hazardous(self, name: str, rule: NonHazardRule, started: float) -> ClassificationResult:
        pct = parse_percent(name)
        reason = rule.explain(pct)
        return ClassificationResult(
            confidence=Confidence.NON_HAZARD_RULE,
            source=ResultSource.RULE_NONHAZ.value,
            outcome=Outcome.NON_HAZARDOUS,
            explanation=f"Not regulated: {reason}",
            exemption_reason=reason,
            search_time_ms=_elapsed_ms(started),
        )

    def _from_rule(self, match: RuleMatch, started: float) -> ClassificationResult:
        rule = match.rule
        return ClassificationResult(
            un_number=rule.un_number,
            proper_shipping_name=rule.proper_shipping_name,
            hazard_class=rule.hazard_class,
            packing_group=rule.packing_group,
            labels=rule.labels or rule.hazard_class,
            confidence=Confidence.DIRECT_RULE,
            source=ResultSource.RULE_DIRECT.value,
            outcome=Outcome.CLASSIFIED,
            explanation=f"Direct rule '{match.note}' mapped to {rule.un_number} {rule.proper_shipping_name}.",
            citations=(
                Citation(
                    type="CFR",
                    ref=Citations.HMT_REF,
                    entry=CitationEntry(id_number=rule.un_number, base_name=rule.proper_shipping_name),
                ),
            ),
            search_time_ms=_elapsed_ms(started),
        )

    def _from_verified(self, entry: CandidateEntry, started: float) -> ClassificationResult:
        meta = entry.metadata
        un = meta_str(meta, "id_number", "un_number", "unNumber").upper() or None
        name = _shipping_name(meta) or None
        if un is None:
            return ClassificationResult(
                proper_shipping_name=name,
                confidence=Confidence.VERIFIED,
                source=ResultSource.VERIFIED.value,
                outcome=Outcome.NON_HAZARDOUS,
                explanation="Verified product record: not regulated",
                exemption_reason="Verified as not regulated for DOT",
                citations=(Citation(type="VERIFIED", ref=entry.id),),
                search_time_ms=_elapsed_ms(started),
            )
        guide = meta_str(meta, "erg_guide", "guide") or None
        return ClassificationResult(
            un_number=un,
            proper_shipping_name=name,
            hazard_class=_hazard_class(meta),
            packing_group=normalize_packing_group(meta_str(meta, "packing_group", "packingGroup")),
            labels=_labels(meta, entry.text),
            erg_guide=guide,
            confidence=Confidence.VERIFIED,
            source=ResultSource.VERIFIED.value,
            outcome=Outcome.CLASSIFIED,
            explanation=f"Verified product record {entry.id} for this SKU.",
            citations=(Citation(type="VERIFIED", ref=entry.id),),
            search_time_ms=_elapsed_ms(started),
        )

    def _from_hit(
        self,
        ctx: QueryContext,
        hit: SearchHit,
        confidence: float,
        erg_guide: Optional[str],
        agreeing: int,
        started: float,
    ) -> ClassificationResult:
        meta = hit.entry.metadata
        un = hit.un_number
        base = meta_str(meta, "base_name", "baseName", "name")
        qualifier = meta_str(meta, "qualifier")
        psn = _shipping_name(meta)

        parts = [f"Matched '{ctx.raw}' to '{psn}' in {Citations.HMT_REF} (HMT)."]
        if qualifier:
            parts.append("Concentration/qualifier aligned via numeric-aware reranker.")
        if erg_guide:
            parts.append(f"ERG Guide {erg_guide} added for emergency reference.")
        elif ctx.intent == QueryIntent.EMERGENCY_RESPONSE:
            parts.append(f"No ERG guide on file for {un}; look it up in {Citations.ERG_REF} before responding.")
        if agreeing > 0:
            parts.append(f"Historical shipments confirm {agreeing} prior use of {un}.")

        citations = [
            Citation(
                type="CFR",
                ref=Citations.HMT_REF,
                entry=CitationEntry(id_number=un, base_name=base or None, qualifier=qualifier or None),
            )
        ]
        if erg_guide:
            citations.append(Citation(type="ERG", ref=Citations.ERG_REF, guide=erg_guide))

        result = ClassificationResult(
            un_number=un,
            proper_shipping_name=psn or None,
            hazard_class=_hazard_class(meta),
            packing_group=normalize_packing_group(meta_str(meta, "packing_group", "packingGroup")),
            labels=_labels(meta, hit.entry.text),
            erg_guide=erg_guide,
            confidence=confidence,
            source=ResultSource.RETRIEVAL.value,
            outcome=Outcome.CLASSIFIED,
            explanation=" ".join(parts),
            citations=tuple(citations),
            packaging=meta.get("packaging"),
            quantity_limitations=meta.get("quantity_limitations"),
            vessel_stowage=meta.get("vessel_stowage"),
            special_provisions=meta.get("special_provisions"),
            search_time_ms=_elapsed_ms(started),
        )
        logger.info(
            "classify.done un=%s conf=%.2f source=%s ms=%d",
            un, confidence, result.source, result.search_time_ms,
        )
        return result

    def _no_match(self, explanation: str, started: float) -> ClassificationResult:
        return ClassificationResult(
            confidence=Confidence.NO_MATCH,
            source=ResultSource.NO_MATCH.value,
            outcome=Outcome.UNCLASSIFIED,
            explanation=explanation,
            search_time_ms=_elapsed_ms(started),
        )
