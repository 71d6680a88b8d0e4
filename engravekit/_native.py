"""NativeHandle: the only code path that talks to the verovio extension module.

Everything crossing into the engine goes through ``to_native_str`` (strings)
or ``_call_with_options`` (JSON option payloads). Everything coming back is
normalized here: empty or missing text becomes ``None`` so callers can turn
it into a typed error together with the engine log.
"""

from __future__ import annotations

import json
import logging
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from engravekit.errors import EngraveError, HandleReleasedError, InitializationError

logger = logging.getLogger(__name__)

NUL: Final[str] = "\x00"
XML_DECLARATION: Final[str] = '<?xml version="1.0" encoding="UTF-8"?>\n'


def import_engine() -> Any:
    """Import and return the ``verovio`` module."""
    import verovio

    return verovio


def to_native_str(value: Any, error: type[EngraveError], what: str) -> str:
    """
    Validate a string before it is handed to the engine.

    Raises:
        error: If ``value`` is not a string or contains a NUL character,
               which the native string protocol cannot carry.
    """
    if not isinstance(value, str):
        raise error(f"{what} must be a string, got {type(value).__name__}")
    if NUL in value:
        raise error(f"{what} contains a NUL character")
    return value


def text_or_none(value: Any) -> str | None:
    """Return engine text output, or None when the engine produced nothing."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8")
    text = str(value)
    return text if text else None


def json_text(value: Any) -> str | None:
    """
    Normalize a JSON-returning engine call to JSON text.

    Depending on the binding version the engine hands back either the raw
    JSON string or an already decoded ``dict``/``list``.

    Raises:
        ValueError: If the engine returned text that is not valid JSON.
    """
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    text = text_or_none(value)
    if text is None or not text.strip():
        return None
    json.loads(text)
    return text


class NativeHandle:
    """
    Owns one ``verovio.toolkit`` instance and releases it exactly once.

    The handle keeps the only reference to the extension object, so dropping
    it in ``release()`` runs the native destructor. Any call after that raises
    HandleReleasedError.
    """

    def __init__(self, toolkit: Any) -> None:
        if toolkit is None:
            raise InitializationError("engine returned no toolkit instance")
        self._toolkit: Any | None = toolkit

    @classmethod
    def create(cls, resource_path: str | None = None) -> NativeHandle:
        """
        Construct a native toolkit, optionally bound to a resource directory.

        Construction is atomic: when the engine rejects the resource path the
        freshly created instance is released before the error propagates.

        Raises:
            InitializationError: If the engine is unavailable, construction
                fails, or the resource path is rejected.
        """
        if resource_path is not None:
            to_native_str(resource_path, InitializationError, "resource path")

        try:
            engine = import_engine()
        except ImportError as exc:
            raise InitializationError("the verovio package is not installed") from exc

        try:
            handle = cls(engine.toolkit(False))
        except InitializationError:
            raise
        except Exception as exc:
            raise InitializationError(f"native constructor failed: {exc}") from exc

        if resource_path is None:
            return handle

        if not handle._tk().setResourcePath(resource_path):
            native_log = handle.log()
            handle.release()
            raise InitializationError(
                f"engine rejected resource path '{resource_path}'", native_log
            )
        return handle

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    @property
    def released(self) -> bool:
        return self._toolkit is None

    def release(self) -> bool:
        """Drop the native instance. Returns False if it was already released."""
        if self._toolkit is None:
            return False
        self._toolkit = None
        logger.debug("native toolkit released")
        return True

    def _tk(self) -> Any:
        if self._toolkit is None:
            raise HandleReleasedError("native toolkit used after release")
        return self._toolkit

    def _first_method(self, *names: str) -> Any:
        toolkit = self._tk()
        for name in names:
            method = getattr(toolkit, name, None)
            if method is not None:
                return method
        return None

    def _call_with_options(self, method_name: str, payload: Mapping[str, Any]) -> Any:
        """
        Invoke an engine method that takes a JSON option payload.

        Newer bindings accept a ``dict`` and serialize it themselves, older
        ones only accept the JSON string.
        """
        method = getattr(self._tk(), method_name)
        try:
            return method(dict(payload))
        except TypeError:
            return method(json.dumps(dict(payload)))

    # ------------------------------------------------------------------
    # Document and options
    # ------------------------------------------------------------------

    def load_data(self, data: str) -> bool:
        return bool(self._tk().loadData(data))

    def page_count(self) -> int:
        return max(0, int(self._tk().getPageCount()))

    def set_options(self, payload: Mapping[str, Any]) -> bool:
        return bool(self._call_with_options("setOptions", payload))

    def get_options(self) -> str | None:
        return json_text(self._tk().getOptions())

    def get_default_options(self) -> str | None:
        return json_text(self._tk().getDefaultOptions())

    def get_available_options(self) -> str | None:
        return json_text(self._tk().getAvailableOptions())

    def reset_options(self) -> None:
        self._tk().resetOptions()

    def get_scale(self) -> int:
        return int(self._tk().getScale())

    def set_scale(self, scale: int) -> bool:
        return bool(self._tk().setScale(scale))

    def redo_layout(self, payload: Mapping[str, Any]) -> None:
        self._call_with_options("redoLayout", payload)

    def edit(self, action: Mapping[str, Any]) -> bool:
        return bool(self._call_with_options("edit", action))

    def edit_info(self) -> str | None:
        """Outcome of the last editor action, as JSON.

        Older bindings call this ``editInfo``, current ones ``editResponse``.
        """
        method = self._first_method("editInfo", "editResponse")
        return None if method is None else json_text(method())

    def edit_status(self) -> str | None:
        """Undo/redo availability, as JSON.

        Current bindings spell the method ``editSatus``.
        """
        method = self._first_method("editStatus", "editSatus")
        return None if method is None else json_text(method())

    # ------------------------------------------------------------------
    # Instance metadata
    # ------------------------------------------------------------------

    def version(self) -> str:
        return text_or_none(self._tk().getVersion()) or ""

    def log(self) -> str:
        return text_or_none(self._tk().getLog()) or ""

    def instance_id(self) -> str:
        return text_or_none(self._tk().getID()) or ""

    def get_resource_path(self) -> str:
        return text_or_none(self._tk().getResourcePath()) or ""

    def set_resource_path(self, path: str) -> bool:
        return bool(self._tk().setResourcePath(path))

    # ------------------------------------------------------------------
    # Render and export
    # ------------------------------------------------------------------

    def render_svg(self, page: int, declaration: bool) -> str | None:
        """
        Render one page to SVG with compatibility for multiple verovio bindings.

        Some versions take the XML-declaration flag as a second positional
        argument, others only accept the page number.
        """
        toolkit = self._tk()
        try:
            return text_or_none(toolkit.renderToSVG(page, declaration))
        except TypeError:
            svg = text_or_none(toolkit.renderToSVG(page))
        if svg is not None and declaration and not svg.startswith("<?xml"):
            svg = XML_DECLARATION + svg
        return svg

    def render_midi(self) -> str | None:
        return text_or_none(self._tk().renderToMIDI())

    def render_pae(self) -> str | None:
        return text_or_none(self._tk().renderToPAE())

    def get_humdrum(self) -> str | None:
        """
        Export the loaded document as Humdrum.

        Bindings convert an MEI export with ``convertMEIToHumdrum``. Those
        without it can only write Humdrum to a file, so the export goes
        through a scratch file.
        """
        mei = self.get_mei({})
        if mei is None:
            return None
        toolkit = self._tk()
        try:
            return text_or_none(toolkit.convertMEIToHumdrum(mei))
        except (TypeError, AttributeError):
            logger.debug("convertMEIToHumdrum unavailable, exporting through a file")
        export = getattr(toolkit, "getHumdrumFile", None)
        if export is None:
            return None
        with tempfile.TemporaryDirectory(prefix="engravekit_krn_") as scratch:
            target = Path(scratch) / "export.krn"
            if not export(str(target)) or not target.exists():
                return None
            return text_or_none(target.read_text(encoding="utf-8"))

    def get_mei(self, payload: Mapping[str, Any]) -> str | None:
        return text_or_none(self._call_with_options("getMEI", payload))

    def render_timemap(self, payload: Mapping[str, Any]) -> str | None:
        return json_text(self._call_with_options("renderToTimemap", payload))

    def render_expansion_map(self) -> str | None:
        return json_text(self._tk().renderToExpansionMap())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def page_with_element(self, xml_id: str) -> int:
        return int(self._tk().getPageWithElement(xml_id))

    def element_attr(self, xml_id: str) -> str | None:
        return json_text(self._tk().getElementAttr(xml_id))

    def time_for_element(self, xml_id: str) -> float:
        return float(self._tk().getTimeForElement(xml_id))

    def times_for_element(self, xml_id: str) -> str | None:
        return json_text(self._tk().getTimesForElement(xml_id))

    def expansion_ids_for_element(self, xml_id: str) -> str | None:
        return json_text(self._tk().getExpansionIdsForElement(xml_id))

    def midi_values_for_element(self, xml_id: str) -> str | None:
        return json_text(self._tk().getMIDIValuesForElement(xml_id))

    def notated_id_for_element(self, xml_id: str) -> str | None:
        return text_or_none(self._tk().getNotatedIdForElement(xml_id))

    def elements_at_time(self, millisec: int) -> str | None:
        return json_text(self._tk().getElementsAtTime(millisec))

    def descriptive_features(self, payload: Mapping[str, Any]) -> str | None:
        return json_text(self._call_with_options("getDescriptiveFeatures", payload))
