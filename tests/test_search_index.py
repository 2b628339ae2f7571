import asyncio

import pytest

from conftest import SAMPLE_JOBS
from jobmap.models.db import IndexNotReadyError
from jobmap.models.records import parse_jobs_payload
from jobmap.models.search_index import (
    SearchIndex,
    document_fields,
    max_edit_distance,
    tokenize,
)


@pytest.fixture
def records():
    return parse_jobs_payload(SAMPLE_JOBS)


@pytest.fixture
def index(records):
    idx = SearchIndex()
    idx.build(records)
    return idx


def _ids(refs):
    return [ref.id for ref in refs]


def test_tokenize_is_unicode_aware():
    assert tokenize("Zürich, Senior-Developer (80%)") == ["zürich", "senior", "developer", "80"]
    assert tokenize(None) == []


def test_edit_distance_budget_is_tighter_for_longer_tokens():
    assert max_edit_distance("ab") == 0
    assert max_edit_distance("dev") == 1
    assert max_edit_distance("java") == 0
    assert max_edit_distance("developper") == 1
    assert max_edit_distance("internationalization") == 2


def test_fuzzy_matching_respects_edit_budget():
    idx = SearchIndex()
    idx.build(parse_jobs_payload([
        {"id": "dev", "title": "Developer"},
        {"id": "far", "title": "Devops"},
    ]))
    assert [ref.id for ref in idx.query("developper")] == ["dev_0"]
    assert idx.query("develxxxr") == []


def test_document_fields_join_categories_and_locations(records):
    fields = document_fields(records[2])
    assert fields["categories"] == "IT"
    assert fields["locations"] == "Basel  Zürich Oerlikon Hofwiesenstrasse 5"


def test_query_before_build_raises():
    with pytest.raises(IndexNotReadyError):
        SearchIndex().query("java")
    with pytest.raises(IndexNotReadyError):
        SearchIndex().rebuild()


def test_multi_token_queries_require_every_token(index):
    assert _ids(index.query("senior java")) == ["1_0"]
    assert set(_ids(index.query("java"))) == {"1_0", "3_2"}
    assert set(_ids(index.query("senior"))) == {"1_0", "2_1"}


def test_prefix_and_fuzzy_matches(index):
    assert set(_ids(index.query("devel"))) == {"1_0", "3_2"}
    assert set(_ids(index.query("developper"))) == {"1_0", "3_2"}
    assert _ids(index.query("pythn")) == ["2_1"]
    assert index.query("kotlin") == []


def test_matches_company_category_and_location_fields(index):
    assert _ids(index.query("globex")) == ["2_1"]
    assert _ids(index.query("health")) == ["4_3"]
    assert set(_ids(index.query("oerlikon"))) == {"3_2"}
    assert set(_ids(index.query("zürich"))) == {"1_0", "3_2", "5_4"}


def test_title_matches_outrank_company_matches():
    records = parse_jobs_payload(
        [
            {"id": "company-hit", "title": "Clerk", "company": "Acme"},
            {"id": "title-hit", "title": "Acme Specialist", "company": "Other"},
        ]
    )
    idx = SearchIndex()
    idx.build(records)
    refs = idx.query("acme")
    assert _ids(refs) == ["title-hit_1", "company-hit_0"]
    assert refs[0].score > refs[1].score


def test_exact_matches_outrank_prefix_matches():
    records = parse_jobs_payload(
        [
            {"id": "prefix", "title": "Javascript Engineer"},
            {"id": "exact", "title": "Java Engineer"},
        ]
    )
    idx = SearchIndex()
    idx.build(records)
    assert _ids(idx.query("java")) == ["exact_1", "prefix_0"]


def test_chunked_build_matches_single_build(records):
    whole = SearchIndex()
    whole.build(records)
    chunked = SearchIndex(batch_size=2)
    asyncio.run(chunked.build_chunked(records))
    assert chunked.size == whole.size == 5
    assert chunked._state.postings == whole._state.postings
    for text in ("senior java", "zürich", "devel", "nurse"):
        assert chunked.query(text) == whole.query(text)


def test_rebuild_reconstructs_state(index, records):
    before = index.query("java")
    index.rebuild()
    assert index.query("java") == before
    assert index.size == len(records)


def test_empty_query_text_returns_nothing(index):
    assert index.query("   ") == []
    assert index.query("!!") == []
