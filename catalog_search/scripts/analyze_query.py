#!/usr/bin/env python3
"""
Query Analysis Script
Shows how a query is understood and the index request it would produce, without calling an index.

Usage:
    python -m catalog_search.scripts.analyze_query "sustainable dresses under $50"
    python -m catalog_search.scripts.analyze_query "nike running shoes" --profile hybrid --limit 10
"""

import argparse
import json
import logging
import sys

from catalog_search.config import configure_logging, get_settings
from catalog_search.ml.config import get_search_config
from catalog_search.ml.experiments import ABTestAllocator, default_ab_tests
from catalog_search.ml.nlp import EntityExtractor, IntentClassifier, QueryTokenizer
from catalog_search.ml.personalization import UserContext
from catalog_search.ml.retrieval import SearchQueryBuilder
from catalog_search.ml.retrieval.scoring_profiles import ScoringProfileEngine
from catalog_search.ml.search import merge_filters

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main function to analyze a query."""
    parser = argparse.ArgumentParser(description="Analyze a product search query")
    parser.add_argument("query", type=str, help="Query text")
    parser.add_argument(
        "--profile", type=str, default=None, help="Scoring profile (default: from settings)"
    )
    parser.add_argument(
        "--user-id", type=str, default=None, help="User ID used for experiment bucketing"
    )
    parser.add_argument("--limit", type=int, default=20, help="Page size (default: 20)")

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    config = get_search_config()

    if not 1 <= args.limit <= settings.max_page_size:
        logger.error(f"--limit must be between 1 and {settings.max_page_size}")
        sys.exit(1)

    tokenizer = QueryTokenizer(config.nlp.min_token_length)
    extractor = EntityExtractor(config.nlp)
    classifier = IntentClassifier(settings.intent_confidence_threshold, config.nlp)

    tokens = tokenizer.tokenize(args.query)
    entities = extractor.extract(args.query, tokens)
    intent = classifier.detect(args.query, tokens)
    params = classifier.get_search_parameters(intent, entities, args.query)
    filters = merge_filters(
        params, entities, qualifier_confidence=config.nlp.price_qualifier_confidence
    )

    profile = args.profile or settings.default_scoring_profile
    assignment = None
    if args.user_id and not args.profile:
        allocator = ABTestAllocator(default_ab_tests())
        running = allocator.active_tests()
        test_id = settings.default_ab_test_id or (running[0].id if running else None)
        if test_id:
            assignment = allocator.select(test_id, args.user_id)
        if assignment is not None:
            profile = assignment.profile_name

    engine = ScoringProfileEngine(config=config.scoring)
    user = UserContext(args.user_id) if args.user_id else None
    scorer = engine.scorer(
        profile,
        user=user,
        intent=intent,
        entities=entities,
        params=assignment.params if assignment else None,
    )

    request = SearchQueryBuilder(config.query).build(
        query=args.query,
        filters=filters,
        limit=args.limit,
        sort=params.sort,
        scorer=scorer,
        boosts=params.boost,
    )

    output = {
        "query": args.query,
        "tokens": tokens,
        "entities": [e.to_dict() for e in entities],
        "intent": intent.to_dict(),
        "scoring_profile": engine.get_profile(profile).name,
        "experiment": assignment.model_dump(mode="json") if assignment else None,
        "index_request": request.to_dict(),
    }
    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    main()
