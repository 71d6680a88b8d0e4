"""Shared fixtures: an in-process stand-in for the verovio extension module.

The fake mirrors the binding's call surface closely enough to exercise every
code path in engravekit without the native engine. Two flavours run each test
that asks for ``engine``:

* ``text``    - older bindings: option payloads only as JSON strings,
                JSON results returned as strings, ``renderToSVG(page)``.
* ``decoded`` - newer bindings: option payloads as dicts, JSON results
                returned decoded, ``renderToSVG(page, xmlDeclaration)``.
"""

from __future__ import annotations

import base64
import gc
import json
import re
import tempfile
import threading
import weakref
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from engravekit import _native, diagnostics
from engravekit.toolkit import Toolkit

THREE_PAGE_MEI = """<?xml version="1.0" encoding="UTF-8"?>
<mei xmlns="http://www.music-encoding.org/ns/mei" meiversion="5.0">
  <music><body><mdiv><score>
    <section>
      <measure xml:id="m1"><staff n="1"><layer n="1">
        <note xml:id="n1" pname="c" oct="4" dur="4"/>
      </layer></staff></measure>
      <pb/>
      <measure xml:id="m2"><staff n="1"><layer n="1">
        <note xml:id="n2" pname="d" oct="4" dur="4"/>
      </layer></staff></measure>
      <pb/>
      <measure xml:id="m3"><staff n="1"><layer n="1">
        <note xml:id="n3" pname="e" oct="4" dur="4"/>
      </layer></staff></measure>
    </section>
  </score></mdiv></body></music>
</mei>
"""

ONE_PAGE_MEI = """<?xml version="1.0" encoding="UTF-8"?>
<mei xmlns="http://www.music-encoding.org/ns/mei" meiversion="5.0">
  <music><body><mdiv><score><section>
    <measure xml:id="m9"><staff n="1"><layer n="1">
      <note xml:id="solo" pname="g" oct="4" dur="1"/>
    </layer></staff></measure>
  </section></score></mdiv></body></music>
</mei>
"""

MIDI_BYTES = b"MThd\x00\x00\x00\x06\x00\x01\x00\x01\x01\xe0MTrk\x00\x00\x00\x04\x00\xff\x2f\x00"

HUMDRUM = "**kern\n*clefG2\n4c\n*-\n"

DEFAULT_ENGINE_OPTIONS: dict[str, Any] = {
    "scale": 100,
    "pageWidth": 2100,
    "breaks": "auto",
    "font": "Leipzig",
    "unmodelledOption": 3,
}


class FakeToolkit:
    """Text flavour: strings in, strings out."""

    def __init__(self, engine: FakeEngine) -> None:
        self.engine = engine
        self.resource_path = ""
        self.document: str | None = None
        self.ids: dict[str, int] = {}
        self.pages = 0
        self.options: dict[str, Any] = {}
        self.log = ""
        self.last_payloads: dict[str, dict[str, Any]] = {}
        self.edits: list[dict[str, Any]] = []
        self.converted_mei: str | None = None

    # ── payload helpers ──────────────────────────────────────────────────

    def _payload(self, method: str, value: Any) -> dict[str, Any]:
        if not isinstance(value, str):
            raise TypeError(
                f"in method 'toolkit_{method}', argument 2 of type 'std::string const &'"
            )
        payload = json.loads(value) if value else {}
        self.last_payloads[method] = payload
        return payload

    def _result(self, value: Any) -> Any:
        return json.dumps(value)

    # ── resources and metadata ───────────────────────────────────────────

    def setResourcePath(self, path: str) -> bool:
        if not (Path(path) / "Bravura.xml").is_file():
            self.log = f"[Error] Bravura font could not be loaded from '{path}'"
            return False
        self.resource_path = path
        self.engine.track_resources(self, path)
        return True

    def getResourcePath(self) -> str:
        return self.resource_path

    def getVersion(self) -> str:
        return "5.7.0-fake"

    def getLog(self) -> str:
        return self.log

    def getID(self) -> str:
        return f"fake-{id(self):x}"

    # ── document ─────────────────────────────────────────────────────────

    def loadData(self, data: str) -> bool:
        if "<mei" not in data:
            self.log = "[Error] input could not be parsed"
            return False
        ids: dict[str, int] = {}
        for match in re.finditer(r'xml:id="([^"]+)"', data):
            ids[match.group(1)] = data.count("<pb", 0, match.start()) + 1
        self.document = data
        self.ids = ids
        self.pages = data.count("<pb") + 1
        self.log = ""
        return True

    def getPageCount(self) -> int:
        gate = self.engine.gate
        if gate is not None:
            self.engine.entered.set()
            gate.wait(timeout=5)
        return self.pages

    # ── options ──────────────────────────────────────────────────────────

    def setOptions(self, options: Any) -> bool:
        payload = self._payload("setOptions", options)
        scale = payload.get("scale")
        if scale is not None and not 1 <= scale <= 1000:
            self.log = f"[Warning] Parameter 'scale' out of bounds; value {scale}"
            return False
        self.options.update(payload)
        return True

    def getOptions(self) -> Any:
        return self._result({**DEFAULT_ENGINE_OPTIONS, **self.options})

    def getDefaultOptions(self) -> Any:
        return self._result(dict(DEFAULT_ENGINE_OPTIONS))

    def getAvailableOptions(self) -> Any:
        return self._result({"groups": {"general": {"options": {"scale": {"type": "int"}}}}})

    def resetOptions(self) -> None:
        self.options = {}

    def getScale(self) -> int:
        return self.options.get("scale", DEFAULT_ENGINE_OPTIONS["scale"])

    def setScale(self, scale: int) -> bool:
        if not 1 <= scale <= 1000:
            return False
        self.options["scale"] = scale
        return True

    def redoLayout(self, options: Any = "") -> None:
        self._payload("redoLayout", options)

    def edit(self, action: Any) -> bool:
        payload = self._payload("edit", action)
        self.edits.append(payload)
        return payload.get("action") in {"commit", "drag", "insert", "set"}

    def editResponse(self) -> Any:
        return self._result({"action": self.edits[-1].get("action")} if self.edits else {})

    def editSatus(self) -> Any:
        return self._result({"canRedo": False, "canUndo": bool(self.edits)})

    # ── render ───────────────────────────────────────────────────────────

    def renderToSVG(self, page: int = 1) -> str:
        return self._svg(page, False)

    def _svg(self, page: int, declaration: bool) -> str:
        if self.document is None or not 1 <= page <= self.pages:
            return ""
        scale = self.options.get("scale", DEFAULT_ENGINE_OPTIONS["scale"])
        svg = f'<svg xmlns="http://www.w3.org/2000/svg" data-page="{page}" data-scale="{scale}"><g/></svg>'
        if declaration:
            svg = '<?xml version="1.0" encoding="UTF-8"?>\n' + svg
        return svg

    def renderToMIDI(self) -> str:
        if self.document is None:
            return ""
        return base64.b64encode(self.engine.midi_bytes).decode("ascii")

    def renderToPAE(self) -> str:
        return "@clef:G-2\n@data:4C" if self.document else ""

    def convertMEIToHumdrum(self, mei: str) -> str:
        self.converted_mei = mei
        return HUMDRUM if "<mei" in mei else ""

    def getHumdrumFile(self, filename: str) -> bool:
        if not self.document:
            return False
        with open(filename, "w", encoding="utf-8") as handle:
            handle.write(HUMDRUM)
        return True

    def getMEI(self, options: Any = "") -> str:
        self._payload("getMEI", options)
        return self.document or ""

    def renderToTimemap(self, options: Any = "") -> Any:
        payload = self._payload("renderToTimemap", options)
        entries: list[dict[str, Any]] = [
            {"tstamp": index * 500, "on": [xml_id]}
            for index, xml_id in enumerate(i for i in self.ids if i.startswith("n"))
        ]
        if payload.get("includeMeasures"):
            entries.insert(0, {"tstamp": 0, "measureOn": "m1"})
        return self._result(entries)

    def renderToExpansionMap(self) -> Any:
        return self._result({xml_id: [xml_id] for xml_id in self.ids})

    # ── queries ──────────────────────────────────────────────────────────

    def getPageWithElement(self, xml_id: str) -> int:
        return self.ids.get(xml_id, 0)

    def getElementAttr(self, xml_id: str) -> Any:
        return self._result({"pname": "c", "oct": "4"} if xml_id in self.ids else {})

    def getTimeForElement(self, xml_id: str) -> float:
        notes = [i for i in self.ids if i.startswith("n")]
        return float(notes.index(xml_id) * 500) if xml_id in notes else 0.0

    def getTimesForElement(self, xml_id: str) -> Any:
        return self._result({"scoreTimeOnset": [0.0], "realTimeOnsetMilliseconds": [0]})

    def getExpansionIdsForElement(self, xml_id: str) -> Any:
        return self._result([xml_id] if xml_id in self.ids else [])

    def getMIDIValuesForElement(self, xml_id: str) -> Any:
        return self._result({"pitch": 60, "time": 0, "duration": 500})

    def getNotatedIdForElement(self, xml_id: str) -> str:
        if xml_id not in self.ids:
            self.log += f"[Warning] Element '{xml_id}' not found\n"
        return xml_id

    def getElementsAtTime(self, millisec: int) -> Any:
        return self._result({"notes": ["n1"] if millisec < 500 else [], "page": 1})

    def getDescriptiveFeatures(self, options: Any = "") -> Any:
        self._payload("getDescriptiveFeatures", options)
        return self._result({"pitchesIds": [[i] for i in self.ids if i.startswith("n")]})


class DecodedFakeToolkit(FakeToolkit):
    """Decoded flavour: dicts in, decoded JSON out."""

    def _payload(self, method: str, value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            raise TypeError(f"{method}() expects a dict, got {type(value).__name__}")
        self.last_payloads[method] = value
        return value

    def _result(self, value: Any) -> Any:
        return value

    def renderToSVG(self, page: int = 1, xmlDeclaration: bool = False) -> str:
        return self._svg(page, xmlDeclaration)

    def redoLayout(self, options: Any = None) -> None:
        self._payload("redoLayout", options if options is not None else {})


class FakeEngine:
    """Stands in for the ``verovio`` module."""

    LOG_OFF = 0
    LOG_ERROR = 1
    LOG_WARNING = 2
    LOG_INFO = 3
    LOG_DEBUG = 4

    def __init__(self, package_dir: Path, toolkit_cls: type[FakeToolkit]) -> None:
        self.__file__ = str(package_dir / "__init__.py")
        self.toolkit_cls = toolkit_cls
        self.created: list[weakref.ref[FakeToolkit]] = []
        self.destroyed_with_resources: list[bool] = []
        self.log_calls: list[tuple[str, Any]] = []
        self.midi_bytes = MIDI_BYTES
        self.fail_construction = False
        self.gate: threading.Event | None = None
        self.entered = threading.Event()

    def toolkit(self, init_font: bool = True) -> FakeToolkit:
        if self.fail_construction:
            raise RuntimeError("out of memory")
        instance = self.toolkit_cls(self)
        self.created.append(weakref.ref(instance))
        return instance

    def track_resources(self, instance: FakeToolkit, path: str) -> None:
        weakref.finalize(instance, self._on_destroy, path)

    def _on_destroy(self, path: str) -> None:
        self.destroyed_with_resources.append(Path(path).is_dir())

    def live_instances(self) -> int:
        gc.collect()
        return sum(1 for ref in self.created if ref() is not None)

    def last_instance(self) -> FakeToolkit:
        instance = self.created[-1]()
        assert instance is not None
        return instance

    def enableLog(self, level: Any) -> None:
        self.log_calls.append(("enableLog", level))

    def enableLogToBuffer(self, to_buffer: bool) -> None:
        self.log_calls.append(("enableLogToBuffer", to_buffer))


def make_resource_dir(root: Path, fonts: tuple[str, ...] = ("Bravura", "Leipzig")) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for font in fonts:
        (root / f"{font}.xml").write_text(f'<font name="{font}"/>', encoding="utf-8")
    (root / "text").mkdir(exist_ok=True)
    (root / "text" / "Times.xml").write_text("<glyphs/>", encoding="utf-8")
    return root


@pytest.fixture(params=["text", "decoded"])
def engine(request: pytest.FixtureRequest, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeEngine:
    package_dir = tmp_path / "site-packages" / "verovio"
    make_resource_dir(package_dir / "data")
    toolkit_cls = FakeToolkit if request.param == "text" else DecodedFakeToolkit
    fake = FakeEngine(package_dir, toolkit_cls)
    monkeypatch.setattr(_native, "import_engine", lambda: fake)

    staging_root = tmp_path / "staging"
    staging_root.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(staging_root))
    monkeypatch.setattr(diagnostics, "_current", diagnostics.DEFAULT_SETTINGS)
    return fake


@pytest.fixture
def staging_root(engine: FakeEngine, tmp_path: Path) -> Path:
    return tmp_path / "staging"


@pytest.fixture
def bundled_dir(engine: FakeEngine) -> Path:
    return Path(engine.__file__).parent / "data"


@pytest.fixture
def toolkit(engine: FakeEngine) -> Iterator[Toolkit]:
    instance = Toolkit()
    yield instance
    instance.close()


@pytest.fixture
def loaded(toolkit: Toolkit) -> Toolkit:
    toolkit.load(THREE_PAGE_MEI)
    return toolkit
