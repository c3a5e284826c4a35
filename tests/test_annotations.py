"""
Tests for the title-attribute and JSON-tree entity decoders and the
response-shape dispatch between them.
"""
import json

import pytest

from pseudonymization.core.definitions import SourceKind
from pseudonymization.core.domain import HocrDocument
from pseudonymization.engine.annotations import (
    MAX_TREE_DEPTH,
    DirectMappingSource,
    JsonTreeAnnotationSource,
    TitleAnnotationSource,
    decode_json_form,
    decode_json_form_by_entity,
    decode_response,
    decode_title_form,
    decode_title_form_full,
    extract_entity_id,
    extract_entity_label,
    has_annotations,
    invert_mapping,
    iter_hocr_words,
    select_annotation_source,
)

SAMPLE_TITLE = "x_sensibility 1; bbox 414 176 526 200; x_entity first_name 0"


def test_extract_label_drops_instance_index():
    assert extract_entity_label(SAMPLE_TITLE) == "first_name"


def test_extract_full_id_keeps_instance_index():
    assert extract_entity_id(SAMPLE_TITLE) == "first_name_0"


@pytest.mark.parametrize(
    "title, label, full_id",
    [
        ("bbox 1 2 3 4; x_entity city", "city", "city"),
        ("x_entity first name 3; bbox 1 2 3 4", "first name", "first_name_3"),
        ("bbox 1 2 3 4;x_entity   email   2  ", "email", "email_2"),
    ],
)
def test_extract_entity_variants(title, label, full_id):
    assert extract_entity_label(title) == label
    assert extract_entity_id(title) == full_id


@pytest.mark.parametrize(
    "title",
    [None, "", "bbox 1 2 3 4; x_wconf 95", "bbox 1 2 3 4; x_entity", "x_entityfoo 1"],
)
def test_titles_without_usable_entity_yield_nothing(title):
    assert extract_entity_label(title) is None
    assert extract_entity_id(title) is None


def test_decode_title_form_groups_by_label(annotated_hocr):
    assert decode_title_form(annotated_hocr) == {
        "first_name": "Korben",
        "last_name": "Dallas",
        "city": "Berlin",
    }


def test_decode_title_form_concatenates_in_document_order():
    hocr = (
        "<span class='ocrx_word' title='x_entity name 0'>Korben</span>"
        "<span class='ocrx_word' title='bbox 1 1 2 2'>und</span>"
        "<span class='ocrx_word' title='x_entity name 1'>Leeloo</span>"
        "<span class='ocrx_word' title='x_entity name 0'>Dallas</span>"
    )

    assert decode_title_form(hocr) == {"name": "Korben Leeloo Dallas"}
    assert decode_title_form_full(hocr) == {"name_0": "Korben Dallas", "name_1": "Leeloo"}


def test_label_and_full_decoders_agree_on_annotated_words(annotated_hocr):
    annotated = [
        text
        for title, text in iter_hocr_words(annotated_hocr)
        if extract_entity_label(title)
    ]
    full = [
        text for title, text in iter_hocr_words(annotated_hocr) if extract_entity_id(title)
    ]

    assert annotated == full == ["Korben", "Dallas", "Berlin"]
    assert decode_title_form_full(annotated_hocr) == {
        "first_name_0": "Korben",
        "last_name_0": "Dallas",
        "city_0": "Berlin",
    }


def test_missing_title_attribute_is_ignored():
    hocr = "<span class='ocrx_word'>Gruss</span>"

    assert decode_title_form(hocr) == {}
    assert decode_title_form_full(hocr) == {}


def test_has_annotations_is_a_substring_check(annotated_hocr):
    assert has_annotations(annotated_hocr) is True
    assert has_annotations(HocrDocument(markup="<p>x_entity</p>")) is True
    assert has_annotations("<span class='ocrx_word'>Hallo</span>") is False
    assert has_annotations("") is False


def test_json_form_finds_nodes_under_children_and_other_keys(json_tree):
    assert decode_json_form(json_tree) == {"Korben": "first_name_0", "Berlin": "city"}


def test_json_form_finds_deeply_nested_word():
    tree = {
        "alpha": {
            "beta": {
                "gamma": {
                    "type": "word",
                    "attributes": {"x_entity": "city"},
                    "id": 1,
                    "text": "Berlin",
                }
            }
        }
    }

    assert decode_json_form(tree) == {"Berlin": "city"}


def test_json_form_is_invariant_to_string_input(json_tree):
    assert decode_json_form(json.dumps(json_tree)) == decode_json_form(json_tree)


def test_json_form_malformed_string_yields_empty_mapping():
    assert decode_json_form("{not json") == {}


def test_invert_mapping_swaps_keys_and_values():
    mapping = {"first_name": "Korben", "city": "Berlin", "country": ""}

    assert invert_mapping(mapping) == {"Korben": "first_name", "Berlin": "city"}


def test_json_form_collision_last_writer_wins():
    tree = [
        {"type": "word", "id": 1, "text": "Paris", "attributes": {"x_entity": "city 0"}},
        {"type": "word", "id": 2, "text": "Paris", "attributes": {"x_entity": "first_name 1"}},
    ]

    assert decode_json_form(tree) == {"Paris": "first_name_1"}


@pytest.mark.parametrize(
    "node",
    [
        {"type": "line", "id": 1, "text": "Berlin", "attributes": {"x_entity": "city"}},
        {"type": "word", "text": "Berlin", "attributes": {"x_entity": "city"}},
        {"type": "word", "id": 1, "text": "  ", "attributes": {"x_entity": "city"}},
        {"type": "word", "id": 1, "text": "Berlin", "attributes": {}},
        {"type": "word", "id": 1, "text": "Berlin", "attributes": {"x_entity": " "}},
    ],
)
def test_json_form_ignores_non_qualifying_nodes(node):
    assert decode_json_form({"children": [node]}) == {}


def test_json_form_visits_shared_and_cyclic_nodes_once():
    word = {"type": "word", "id": 1, "text": "Berlin", "attributes": {"x_entity": "city"}}
    root = {"a": word, "b": word, "children": []}
    root["children"].append(root)

    assert decode_json_form_by_entity(root) == {"city": "Berlin"}


def test_json_form_bounds_traversal_depth():
    node = {"type": "word", "id": 1, "text": "Berlin", "attributes": {"x_entity": "city"}}
    for _ in range(MAX_TREE_DEPTH + 5):
        node = {"children": [node]}

    assert decode_json_form(node) == {}


def test_select_source_by_shape(annotated_hocr, json_tree):
    assert isinstance(select_annotation_source(annotated_hocr), TitleAnnotationSource)
    assert isinstance(select_annotation_source({"hocr": annotated_hocr}), TitleAnnotationSource)
    assert isinstance(select_annotation_source(json_tree), JsonTreeAnnotationSource)
    assert isinstance(select_annotation_source(json.dumps(json_tree)), JsonTreeAnnotationSource)
    assert isinstance(select_annotation_source({"city": "Berlin"}), DirectMappingSource)
    assert isinstance(
        select_annotation_source({"entityMappings": {"city": "Berlin"}}), DirectMappingSource
    )
    assert select_annotation_source("") is None
    assert select_annotation_source(None) is None


def test_decode_response_title_form(annotated_hocr):
    mappings = decode_response(annotated_hocr)

    assert mappings.source == SourceKind.HOCR
    assert mappings.labels["first_name"] == "Korben"
    assert mappings.spans == {
        "Korben": "first_name_0",
        "Dallas": "last_name_0",
        "Berlin": "city_0",
    }


def test_title_form_spans_drop_surrounding_punctuation():
    markup = (
        "<span class='ocrx_word' title='bbox 1 1 2 2; x_entity email 0'>max@example.com,</span>"
        "<span class='ocrx_word' title='bbox 3 1 4 2; x_entity city 0'>(Berlin)</span>"
    )

    mappings = decode_response(markup)

    assert mappings.entities == {"email_0": "max@example.com,", "city_0": "(Berlin)"}
    assert mappings.spans == {"max@example.com": "email_0", "Berlin": "city_0"}


def test_decode_response_json_tree(json_tree):
    mappings = decode_response(json_tree)

    assert mappings.source == SourceKind.JSON_TREE
    assert mappings.labels == {"first_name": "Korben", "city": "Berlin"}
    assert mappings.entities == {"first_name_0": "Korben", "city": "Berlin"}
    assert mappings.spans == {"Korben": "first_name_0", "Berlin": "city"}


def test_decode_response_direct_mapping_from_json_string():
    mappings = decode_response(json.dumps({"entityMappings": {"first_name": "Korben Dallas"}}))

    assert mappings.source == SourceKind.MAPPING
    assert mappings.spans == {"Korben Dallas": "first_name"}


def test_decode_response_unknown_shape_is_empty():
    mappings = decode_response(42)

    assert not mappings
    assert mappings.source == SourceKind.NONE


def test_unannotated_hocr_decodes_to_empty_mapping():
    mappings = decode_response("<span class='ocrx_word' title='bbox 1 1 2 2'>Hallo</span>")

    assert mappings.source == SourceKind.HOCR
    assert not mappings
