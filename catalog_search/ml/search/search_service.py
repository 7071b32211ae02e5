"""
Search Service
Product search pipeline integrating query understanding, relevance and pagination.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from ...api.models.search import (
    AppliedFilter,
    EntityModel,
    ExperimentInfo,
    Facet,
    PaginationInfo,
    PriceStats,
    ProductResult,
    QueryAnalysis,
    SearchRequest,
    SearchResponse,
)
from ...config import SearchSettings, get_settings
from ..analytics import AnalyticsSink, LoggingAnalyticsSink, SearchPerformedEvent, track_safely
from ..caching import PreferenceCache, RedisCache
from ..config import SearchConfig, get_search_config
from ..errors import IndexUnavailableError, InvalidRequestError, QueryFailedError
from ..experiments import (
    ABTestAllocator,
    VariantAssignment,
    build_analytics_event,
    default_ab_tests,
)
from ..nlp.entity_extraction import EntityExtractor, EntityType, ExtractedEntity, parse_price_range
from ..nlp.intent_detection import Intent, IntentClassifier, IntentSearchParameters
from ..nlp.tokenizer import QueryTokenizer
from ..personalization import PreferenceStore, UserContext
from ..retrieval.facets import FacetMapper
from ..retrieval.filters import ProductFilters, combine_filters
from ..retrieval.pagination import CursorPaginator
from ..retrieval.query_builder import SearchQueryBuilder
from ..retrieval.query_dsl import IndexRequest, SortOrder, SortSpec, index_field
from ..retrieval.scoring_profiles import ScoringProfileEngine
from .index_client import IndexClient, total_hits

logger = logging.getLogger(__name__)


def entity_price_filters(
    entities: List[ExtractedEntity], qualifier_confidence: float
) -> ProductFilters:
    """Price bounds from the first explicit price entity ("under $50", "$20-$40")."""
    filters = ProductFilters()
    for entity in entities:
        if entity.type != EntityType.PRICE:
            continue
        # Qualitative bands ("cheap") are at or below qualifier_confidence
        if entity.confidence <= qualifier_confidence:
            continue
        filters.min_price, filters.max_price = parse_price_range(entity.value)
        break
    return filters


def merge_filters(
    params: IntentSearchParameters,
    entities: List[ExtractedEntity],
    request_filters: Optional[ProductFilters] = None,
    qualifier_confidence: Optional[float] = None,
) -> ProductFilters:
    """
    Merge intent, entity and request filters for one query.

    Args:
        params: Search parameters of the detected intent
        entities: Extracted entities
        request_filters: Filters the caller asked for
        qualifier_confidence: Price entities at or below this are not turned into filters
            (defaults to the global NLP config)

    Returns:
        Combined ProductFilters; request filters take precedence
    """
    if qualifier_confidence is None:
        qualifier_confidence = get_search_config().nlp.price_qualifier_confidence
    return combine_filters(
        params.filters,
        entity_price_filters(entities, qualifier_confidence),
        request_filters or ProductFilters(),
    )



class SearchService:
    """
    Product search service.

    Orchestrates one search request:
    - Query understanding (tokens, entities, intent)
    - Experiment assignment and scoring profile selection
    - Filter merging (intent, entity and request filters)
    - Index request construction and a single index call
    - Cursor pagination, facets and analytics

    All collaborators are built once at startup and are read-only while
    serving, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        index_client: IndexClient,
        settings: Optional[SearchSettings] = None,
        extractor: Optional[EntityExtractor] = None,
        classifier: Optional[IntentClassifier] = None,
        scoring_engine: Optional[ScoringProfileEngine] = None,
        allocator: Optional[ABTestAllocator] = None,
        query_builder: Optional[SearchQueryBuilder] = None,
        paginator: Optional[CursorPaginator] = None,
        facet_mapper: Optional[FacetMapper] = None,
        analytics: Optional[AnalyticsSink] = None,
        tokenizer: Optional[QueryTokenizer] = None,
        config: Optional[SearchConfig] = None,
    ):
        """
        Initialize search service.

        Args:
            index_client: Document index
            settings: Search settings (defaults to global settings)
            extractor: Entity extractor
            classifier: Trained intent classifier
            scoring_engine: Scoring profile engine
            allocator: A/B test allocator
            query_builder: Index request builder
            paginator: Cursor paginator
            facet_mapper: Aggregation to facet mapper
            analytics: Analytics sink (None disables tracking)
            tokenizer: Query tokenizer
            config: Search configuration (defaults to global config)
        """
        self.index_client = index_client
        self.settings = settings or get_settings()
        self.config = config or get_search_config()

        self.tokenizer = tokenizer or QueryTokenizer(self.config.nlp.min_token_length)
        self.extractor = extractor or EntityExtractor(self.config.nlp)
        self.classifier = classifier or IntentClassifier(
            self.settings.intent_confidence_threshold, self.config.nlp
        )
        self.scoring_engine = scoring_engine or ScoringProfileEngine(config=self.config.scoring)
        self.allocator = allocator or ABTestAllocator()
        self.query_builder = query_builder or SearchQueryBuilder(self.config.query)
        self.paginator = paginator or CursorPaginator()
        self.facet_mapper = facet_mapper or FacetMapper()
        self.analytics = analytics

        logger.info("Search service initialized")

    def search(self, request: SearchRequest) -> SearchResponse:
        """
        Execute a search request.

        Args:
            request: Search request

        Returns:
            Search response

        Raises:
            InvalidRequestError: If the page size is out of range
            IndexQueryError: If the index call fails
        """
        start_time = time.time()

        limit = request.pagination.limit
        if not 1 <= limit <= self.settings.max_page_size:
            raise InvalidRequestError(
                f"limit must be between 1 and {self.settings.max_page_size}, got {limit}",
                details={"limit": limit},
            )

        query = (request.query or "").strip()
        logger.info(
            f"Search request: user={request.user_id}, query='{query}', "
            f"cursor={'yes' if request.pagination.cursor else 'no'}"
        )

        # Query understanding
        entities: List[ExtractedEntity] = []
        intent: Optional[Intent] = None
        if query:
            tokens = self.tokenizer.tokenize(query)
            entities = self.extractor.extract(query, tokens)
            intent = self.classifier.detect(query, tokens)

        # Relevance profile
        assignment = self._assign_variant(request)
        profile_name = self._profile_name(request, assignment)
        user = UserContext(request.user_id, request.session_id) if request.user_id else None

        # Filters
        params = (
            self.classifier.get_search_parameters(intent, entities, query)
            if intent is not None
            else IntentSearchParameters()
        )
        request_filters = (
            ProductFilters(**request.filters.model_dump()) if request.filters else ProductFilters()
        )
        qualifier_confidence = self.config.nlp.price_qualifier_confidence
        filters = merge_filters(params, entities, request_filters, qualifier_confidence)
        entity_filters = entity_price_filters(entities, qualifier_confidence)

        # Sort and cursor
        sort = (
            [SortSpec(index_field(request.sort.field), SortOrder(request.sort.order))]
            if request.sort
            else params.sort
        )
        sort_keys = self.query_builder.sort_keys(sort)
        cursor = self.paginator.decode_or_none(
            request.pagination.cursor, expected_length=len(sort_keys)
        )

        scorer = self.scoring_engine.scorer(
            profile_name,
            user=user,
            intent=intent,
            entities=entities,
            params=assignment.params if assignment else None,
        )
        index_request = self.query_builder.build(
            query=query or None,
            filters=filters,
            cursor=cursor,
            limit=limit,
            sort=sort,
            include_aggregations=request.include_facets,
            scorer=scorer,
            boosts=params.boost,
        )

        response = self._execute(index_request, query, cursor is not None)

        # Results
        hits = (response.get("hits") or {}).get("hits") or []
        page = self.paginator.paginate(hits, limit)
        results = [ProductResult.from_hit(hit, rank=i) for i, hit in enumerate(page.hits)]
        total = total_hits(response)

        aggregations = response.get("aggregations")
        facets = [Facet.model_validate(f.to_dict()) for f in self.facet_mapper.map(aggregations)]
        stats = self.facet_mapper.price_stats(aggregations)

        self._track(request, query, total, intent, profile_name, assignment)

        search_time_ms = (time.time() - start_time) * 1000

        search_response = SearchResponse(
            query=request.query,
            pagination=PaginationInfo(
                total=total, next_cursor=page.next_cursor, has_more=page.has_more
            ),
            results=results,
            facets=facets,
            applied_filters=self._applied_filters(filters, request_filters, entity_filters),
            price_stats=PriceStats.model_validate(stats.to_dict()) if stats else None,
            analysis=self._analysis(intent, entities, profile_name),
            experiment=(
                ExperimentInfo(
                    test_id=assignment.test_id,
                    variant_id=assignment.variant_id,
                    algorithm=assignment.algorithm.value,
                )
                if assignment
                else None
            ),
            search_time_ms=search_time_ms,
        )

        logger.info(
            f"Search completed: {len(results)} of {total} results in {search_time_ms:.2f}ms "
            f"(profile={profile_name})"
        )

        return search_response

    def _assign_variant(self, request: SearchRequest) -> Optional[VariantAssignment]:
        test_id = self.settings.default_ab_test_id
        bucket_key = request.user_id or request.session_id
        if not test_id or not bucket_key:
            return None
        return self.allocator.select(test_id, bucket_key)

    def _profile_name(
        self, request: SearchRequest, assignment: Optional[VariantAssignment]
    ) -> str:
        if request.scoring_profile:
            return request.scoring_profile
        if assignment is not None:
            return assignment.profile_name
        return self.settings.default_scoring_profile

    def _execute(
        self, index_request: IndexRequest, query: str, has_cursor: bool
    ) -> Dict[str, Any]:
        """
        Call the index once.

        Raises:
            IndexUnavailableError: If the index cannot be reached
            QueryFailedError: If the index fails the request
        """
        index = self.settings.index_name
        details = {"index": index, "query": query, "has_cursor": has_cursor}
        try:
            return self.index_client.search(index=index, body=index_request.to_dict())
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Index '{index}' unavailable for query '{query}': {e}")
            raise IndexUnavailableError(f"Search index unavailable: {e}", details=details) from e
        except Exception as e:
            logger.error(f"Index '{index}' failed query '{query}' (cursor={has_cursor}): {e}")
            raise QueryFailedError(f"Search query failed: {e}", details=details) from e

    @staticmethod
    def _applied_filters(
        filters: ProductFilters, request_filters: ProductFilters, entity_filters: ProductFilters
    ) -> List[AppliedFilter]:
        applied = []
        for f in filters.applied(source="intent"):
            if getattr(request_filters, f.field, None) is not None:
                f.source = "request"
            elif getattr(entity_filters, f.field, None) is not None:
                f.source = "entity"
            applied.append(AppliedFilter(**f.to_dict()))
        return applied

    @staticmethod
    def _analysis(
        intent: Optional[Intent], entities: List[ExtractedEntity], profile_name: str
    ) -> Optional[QueryAnalysis]:
        if intent is None:
            return None
        data = intent.to_dict()
        return QueryAnalysis(
            intent=data["intent"],
            confidence=data["confidence"],
            sub_intents=data["sub_intents"],
            entities=[EntityModel(**e.to_dict()) for e in entities],
            scoring_profile=profile_name,
        )

    def _track(
        self,
        request: SearchRequest,
        query: str,
        total: int,
        intent: Optional[Intent],
        profile_name: str,
        assignment: Optional[VariantAssignment],
    ) -> None:
        if self.analytics is None:
            return
        if assignment is not None:
            event = build_analytics_event(assignment, query, total)
        else:
            event = SearchPerformedEvent(
                query=query,
                result_count=total,
                intent=intent.label.value if intent else None,
                scoring_profile=profile_name,
                user_id=request.user_id,
                session_id=request.session_id,
            ).to_dict()
        track_safely(self.analytics, event)


def create_search_service(
    index_client: IndexClient,
    settings: Optional[SearchSettings] = None,
    preference_store: Optional[PreferenceStore] = None,
    analytics: Optional[AnalyticsSink] = None,
    config: Optional[SearchConfig] = None,
    allocator: Optional[ABTestAllocator] = None,
) -> SearchService:
    """
    Build a search service with startup wiring.

    Trains the intent classifier once, refreshes entity dictionaries from
    the index (best-effort), loads A/B tests and builds the preference cache.

    Args:
        index_client: Document index
        settings: Search settings (defaults to global settings)
        preference_store: Source of user preferences (None disables preference boosts)
        analytics: Analytics sink (defaults to logging sink)
        config: Search configuration (defaults to global config)
        allocator: A/B test allocator (defaults to settings-driven tests)

    Returns:
        SearchService
    """
    settings = settings or get_settings()
    config = config or get_search_config()

    extractor = EntityExtractor(config.nlp)
    if settings.refresh_dictionaries_on_startup:
        if not extractor.refresh_dictionaries(index_client, settings.index_name):
            logger.warning("Entity extraction running on seed dictionaries")

    classifier = IntentClassifier(settings.intent_confidence_threshold, config.nlp)

    if allocator is None:
        if settings.ab_tests_path:
            allocator = ABTestAllocator.from_json_file(settings.ab_tests_path)
        elif settings.enable_default_ab_tests:
            allocator = ABTestAllocator(default_ab_tests())
        else:
            allocator = ABTestAllocator()

    preference_cache = None
    if preference_store is not None:
        redis_cache = RedisCache(settings) if settings.preference_cache_backend == "redis" else None
        preference_cache = PreferenceCache(
            preference_store,
            ttl_seconds=settings.preference_cache_ttl_seconds,
            max_entries=settings.preference_cache_max_entries,
            redis_cache=redis_cache,
        )

    scoring_engine = ScoringProfileEngine(preference_cache=preference_cache, config=config.scoring)
    if settings.default_scoring_profile not in scoring_engine.registry:
        logger.warning(
            f"Default scoring profile '{settings.default_scoring_profile}' is not registered"
        )

    return SearchService(
        index_client,
        settings=settings,
        extractor=extractor,
        classifier=classifier,
        scoring_engine=scoring_engine,
        allocator=allocator,
        query_builder=SearchQueryBuilder(config.query),
        paginator=CursorPaginator(),
        facet_mapper=FacetMapper(),
        analytics=analytics if analytics is not None else LoggingAnalyticsSink(),
        tokenizer=QueryTokenizer(config.nlp.min_token_length),
        config=config,
    )
