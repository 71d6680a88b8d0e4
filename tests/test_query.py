"""Unit tests for query dispatch."""

import json

import pytest

from engravekit.errors import ElementNotFoundError, QueryError
from engravekit.query import (
    Attrs,
    Elements,
    ExpansionIds,
    Features,
    MidiValues,
    NotatedId,
    Page,
    QueryFormat,
    Time,
    Times,
)
from engravekit.render import Midi
from engravekit.toolkit import Toolkit

from conftest import FakeEngine


def test_page_of_element_is_one_based(loaded: Toolkit) -> None:
    assert loaded.get(Page.of("n1")) == 1
    assert loaded.get(Page.of("n3")) == 3


def test_unknown_element_raises_element_not_found(loaded: Toolkit) -> None:
    with pytest.raises(ElementNotFoundError) as excinfo:
        loaded.get(Page.of("nope"))
    assert excinfo.value.xml_id == "nope"


def test_notated_id_passes_the_engine_answer_through(loaded: Toolkit) -> None:
    assert loaded.get(NotatedId.of("n2")) == "n2"
    assert loaded.get(NotatedId.of("ghost")) == "ghost"
    assert "Element 'ghost' not found" in loaded.get_log()


def test_empty_notated_id_raises(engine: FakeEngine, loaded: Toolkit) -> None:
    engine.last_instance().getNotatedIdForElement = lambda xml_id: ""
    with pytest.raises(ElementNotFoundError) as excinfo:
        loaded.get(NotatedId.of("n2"))
    assert excinfo.value.xml_id == "n2"


def test_time_for_element_is_milliseconds(loaded: Toolkit) -> None:
    assert loaded.get(Time.of("n2")) == 500.0


@pytest.mark.parametrize(
    ("query", "key"),
    [
        (Attrs.of("n1"), "pname"),
        (Times.of("n1"), "scoreTimeOnset"),
        (MidiValues.of("n1"), "pitch"),
    ],
)
def test_json_queries_return_json_object_text(loaded: Toolkit, query: QueryFormat[str], key: str) -> None:
    result = loaded.get(query)
    assert isinstance(result, str)
    assert key in json.loads(result)


def test_expansion_ids_are_json_array(loaded: Toolkit) -> None:
    assert json.loads(loaded.get(ExpansionIds.of("n1"))) == ["n1"]


def test_elements_at_time(loaded: Toolkit) -> None:
    assert json.loads(loaded.get(Elements.at(0)))["notes"] == ["n1"]


def test_elements_at_negative_time_is_rejected() -> None:
    with pytest.raises(QueryError, match="negative"):
        Elements.at(-1)
    with pytest.raises(TypeError):
        Elements.at(1.5)  # type: ignore[arg-type]


def test_features_pass_options(engine: FakeEngine, loaded: Toolkit) -> None:
    features = json.loads(loaded.get(Features.with_options(intervals="true")))
    assert features["pitchesIds"] == [["n1"], ["n2"], ["n3"]]
    assert engine.last_instance().last_payloads["getDescriptiveFeatures"] == {"intervals": "true"}


def test_query_without_document_raises(toolkit: Toolkit) -> None:
    for query in (Page.of("n1"), Attrs.of("n1"), Elements.at(0), Features()):
        with pytest.raises(QueryError, match="no document loaded"):
            toolkit.get(query)


def test_element_id_is_validated() -> None:
    with pytest.raises(QueryError, match="empty"):
        Page.of("")
    with pytest.raises(QueryError, match="NUL"):
        Attrs.of("n\x001")


def test_queries_cannot_be_extended() -> None:
    with pytest.raises(TypeError, match="closed set"):

        class Everything(QueryFormat[str]):  # noqa: F841
            def query(self, handle: object) -> str:
                return ""


def test_get_rejects_render_formats(loaded: Toolkit) -> None:
    with pytest.raises(TypeError, match="not a query"):
        loaded.get(Midi())  # type: ignore[arg-type]
