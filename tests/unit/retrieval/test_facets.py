"""
Tests for facet mapping.
"""

from catalog_search.ml.retrieval import FacetMapper


def test_grouped_value_facet():
    facets = FacetMapper().map({"values": {"buckets": [{"key": "Material: Cotton", "doc_count": 7}]}})

    assert [f.to_dict() for f in facets] == [
        {"name": "material", "display_name": "Material", "values": [{"value": "Cotton", "count": 7}]}
    ]


def test_ungrouped_values_and_multiword_groups():
    facets = FacetMapper().map(
        {
            "values": {
                "buckets": [
                    {"key": "vegan", "doc_count": 4},
                    {"key": "Care Instructions: Hand wash", "doc_count": 2},
                    {"key": "organic", "doc_count": 1},
                ]
            }
        }
    )

    by_name = {f.name: f for f in facets}
    assert [v.value for v in by_name["values"].values] == ["vegan", "organic"]
    assert by_name["care_instructions"].display_name == "Care Instructions"


def test_category_brand_and_price_facets():
    facets = FacetMapper().map(
        {
            "categories": {"buckets": [{"key": "dresses", "doc_count": 10}]},
            "brands": {"buckets": [{"key": "avnu", "doc_count": 3}, {"key": "", "doc_count": 9}]},
            "price_ranges": {
                "buckets": [
                    {"to": 25.0, "doc_count": 5},
                    {"from": 25.0, "to": 50.0, "doc_count": 2},
                    {"from": 200.0, "doc_count": 1},
                ]
            },
        }
    )

    assert [f.name for f in facets] == ["category", "brand", "price"]
    assert [v.value for v in facets[1].values] == ["avnu"]
    assert [v.value for v in facets[2].values] == ["$0-$25", "$25-$50", "$200+"]


def test_no_aggregations():
    assert FacetMapper().map(None) == []
    assert FacetMapper().price_stats({}) is None


def test_price_stats():
    stats = FacetMapper().price_stats(
        {"avg_price": {"value": 42.5}, "min_price": {"value": 5}, "max_price": {"value": None}}
    )

    assert stats.to_dict() == {"avg": 42.5, "min": 5.0, "max": None}
