"""Toolkit: the safe owner of one native engraving engine instance."""

from __future__ import annotations

import json
import logging
import os
import threading
import weakref
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn, TypeVar

from engravekit._native import NativeHandle, to_native_str
from engravekit.errors import (
    ConcurrentAccessError,
    FileAccessError,
    HandleReleasedError,
    InitializationError,
    LoadError,
    OptionsError,
    RenderError,
)
from engravekit.options import FeaturesOptions, MeiOptions, Options, TimemapOptions
from engravekit.query import (
    QUERY_FORMATS,
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
from engravekit.render import (
    RENDER_FORMATS,
    ExpansionMap,
    Humdrum,
    Mei,
    Midi,
    Pae,
    RenderFormat,
    SvgAllPages,
    SvgPage,
    Timemap,
    infer_format,
)
from engravekit.resources import StagedResources, resolve_resource_path

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _release(handle: NativeHandle, staged: StagedResources | None) -> None:
    # Handle first; the staged directory must outlive it.
    handle.release()
    if staged is not None:
        staged.cleanup()


class Toolkit:
    """
    Owns exactly one native engine instance and the resources it reads.

    Construction either stages the bundled resources into a private temporary
    directory (the default) or points the engine at a caller-owned directory.
    Use it as a context manager, or call ``close()``; a Toolkit that is
    garbage collected without ``close()`` is released the same way, once.

        with Toolkit() as toolkit:
            toolkit.load(mei_text)
            toolkit.set_options(Options(scale=40))
            svg = toolkit.render(Svg.page(1))

    Threads
    -------
    The engine keeps mutable document and option state without locking, so a
    Toolkit belongs to one thread at a time: the one that built it. To move it
    to another thread call ``hand_off()``; the next thread that uses it becomes
    its owner. Entering a Toolkit from a thread that does not own it, or from
    two threads at once, raises ConcurrentAccessError. For parallel work build
    one Toolkit per thread.

    Every call blocks until the engine returns. There is no timeout hook; a
    caller needing a deadline must run the call in a worker and abandon it.
    """

    def __init__(self, resource_path: str | os.PathLike[str] | None = None) -> None:
        """
        Args:
            resource_path: Directory holding the engine's fonts and metadata.
                           When omitted the bundled resources are staged into
                           a temporary directory owned by this Toolkit.

        Raises:
            InitializationError: If the resource path is invalid or the engine
                                 cannot be constructed.
            ResourceError:       If bundled resources cannot be staged.
        """
        staged: StagedResources | None = None
        if resource_path is None:
            staged = StagedResources()
            native_path = str(staged.path)
        else:
            raw = to_native_str(os.fspath(resource_path), InitializationError, "resource path")
            native_path = str(resolve_resource_path(raw))

        try:
            handle = NativeHandle.create(native_path)
        except BaseException:
            if staged is not None:
                staged.cleanup()
            raise

        self._setup(handle, staged, native_path)
        logger.debug("toolkit created with resources at %s", native_path)

    @classmethod
    def with_bundled_resources(cls) -> Toolkit:
        """Stage the bundled resources for this Toolkit's lifetime."""
        return cls()

    @classmethod
    def with_resource_path(cls, path: str | os.PathLike[str]) -> Toolkit:
        """Use a caller-owned resource directory as-is."""
        return cls(path)

    @classmethod
    def without_resources(cls) -> Toolkit:
        """
        Build a Toolkit with no fonts loaded. Options, version and other
        metadata calls work; rendering needs ``set_resource_path()`` first.
        """
        toolkit = cls.__new__(cls)
        toolkit._setup(NativeHandle.create(None), None, "")
        return toolkit

    def _setup(self, handle: NativeHandle, staged: StagedResources | None, path: str) -> None:
        self._handle = handle
        self._staged = staged
        self._resource_path = path
        self._lock = threading.Lock()
        self._owner: int | None = threading.get_ident()
        self._finalizer = weakref.finalize(self, _release, handle, staged)

    # ------------------------------------------------------------------
    # Ownership and lifetime
    # ------------------------------------------------------------------

    @contextmanager
    def _claim(self) -> Iterator[NativeHandle]:
        """Enter the native handle as its single current user."""
        if self._handle.released:
            raise HandleReleasedError("Toolkit used after close()")
        if not self._lock.acquire(blocking=False):
            raise ConcurrentAccessError("Toolkit is already in use by another thread")
        try:
            current = threading.get_ident()
            if self._owner is None:
                self._owner = current
            elif self._owner != current:
                raise ConcurrentAccessError(
                    "Toolkit belongs to another thread; call hand_off() there first"
                )
            yield self._handle
        finally:
            self._lock.release()

    def hand_off(self) -> None:
        """Give up ownership so another thread can take this Toolkit over."""
        with self._claim():
            self._owner = None

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def close(self) -> None:
        """Release the native handle, then remove staged resources. Idempotent."""
        if self.closed:
            return
        with self._claim():
            self._finalizer()
        logger.debug("toolkit closed")

    def __enter__(self) -> "Toolkit":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _refuse_copy(self, *args: Any) -> NoReturn:
        raise TypeError("a Toolkit owns a native handle and cannot be copied or pickled")

    __copy__ = _refuse_copy
    __deepcopy__ = _refuse_copy
    __reduce__ = _refuse_copy
    __reduce_ex__ = _refuse_copy

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Toolkit {state} resource_path={self._resource_path!r}>"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, data: str) -> None:
        """
        Load notation data; the engine detects the format from the content.
        Any previously loaded document is replaced.

        Raises:
            LoadError: If the data is empty, not marshalable, or rejected.
        """
        to_native_str(data, LoadError, "notation data")
        if not data.strip():
            raise LoadError("no data to load")
        with self._claim() as handle:
            if not handle.load_data(data):
                native_log = handle.log()
                logger.debug("engine rejected %d characters of input", len(data))
                raise LoadError("engine rejected the data (check format and content)", native_log)
            logger.debug("loaded document with %d page(s)", handle.page_count())

    def load_file(self, path: str | os.PathLike[str]) -> None:
        """
        Read a file and load its contents.

        Raises:
            FileAccessError: If the file cannot be read.
            LoadError:       If it is not UTF-8 text or the engine rejects it.
        """
        file_path = Path(path)
        try:
            data = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise LoadError(f"'{file_path}' is not UTF-8 text") from exc
        except OSError as exc:
            raise FileAccessError(f"could not read '{file_path}': {exc}", file_path) from exc
        self.load(data)

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def set_options(self, options: Options) -> None:
        """
        Send ``options`` to the engine. Only populated fields are sent.

        Raises:
            OptionsError: If the engine rejects the payload.
        """
        if not isinstance(options, Options):
            raise TypeError(f"expected Options, got {type(options).__name__}")
        with self._claim() as handle:
            if not handle.set_options(options.to_dict()):
                raise OptionsError(f"engine rejected {options.to_protocol()}", handle.log())

    def get_options(self) -> Options:
        """The engine's current option values, as far as Options models them."""
        with self._claim() as handle:
            return self._parse_options(handle, handle.get_options)

    def get_default_options(self) -> Options:
        with self._claim() as handle:
            return self._parse_options(handle, handle.get_default_options)

    def get_available_options(self) -> str:
        """JSON description of every option the engine supports."""
        with self._claim() as handle:
            try:
                text = handle.get_available_options()
            except ValueError as exc:
                raise OptionsError(f"malformed option description: {exc}") from exc
            if text is None:
                raise OptionsError("engine returned no option description", handle.log())
            return text

    @staticmethod
    def _parse_options(handle: NativeHandle, call: Any) -> Options:
        try:
            text = call()
        except ValueError as exc:
            raise OptionsError(f"malformed option message: {exc}") from exc
        if text is None:
            raise OptionsError("engine returned no options", handle.log())
        return Options.from_protocol(text)

    def reset_options(self) -> None:
        with self._claim() as handle:
            handle.reset_options()

    def get_scale(self) -> int:
        with self._claim() as handle:
            return handle.get_scale()

    def set_scale(self, scale: int) -> None:
        """
        Raises:
            OptionsError: If the engine rejects the scale.
        """
        with self._claim() as handle:
            if not handle.set_scale(scale):
                raise OptionsError(f"invalid scale: {scale}", handle.log())

    def redo_layout(self, options: Options | None = None) -> None:
        """Lay the loaded document out again, e.g. after changing page size."""
        payload = options.to_dict() if options is not None else {}
        with self._claim() as handle:
            handle.redo_layout(payload)

    def edit(self, action: Mapping[str, Any] | str) -> None:
        """
        Apply an editor action (JSON object or its text) to the document.

        Raises:
            RenderError: If the action is malformed or the engine rejects it.
        """
        if isinstance(action, str):
            try:
                action = json.loads(action)
            except ValueError as exc:
                raise RenderError(f"malformed editor action: {exc}") from exc
        if not isinstance(action, Mapping):
            raise RenderError("editor action must be a JSON object")
        with self._claim() as handle:
            if not handle.edit(action):
                raise RenderError("editor action failed", handle.log())

    def edit_info(self) -> str:
        with self._claim() as handle:
            try:
                return handle.edit_info() or "{}"
            except ValueError as exc:
                raise RenderError(f"malformed editor info: {exc}") from exc

    def edit_status(self) -> str:
        """Undo/redo availability of the editor, as JSON object text."""
        with self._claim() as handle:
            try:
                return handle.edit_status() or "{}"
            except ValueError as exc:
                raise RenderError(f"malformed editor status: {exc}") from exc

    # ------------------------------------------------------------------
    # Instance state
    # ------------------------------------------------------------------

    def page_count(self) -> int:
        """Pages in the loaded document; 0 before anything is loaded."""
        with self._claim() as handle:
            return handle.page_count()

    def version(self) -> str:
        with self._claim() as handle:
            return handle.version()

    def get_log(self) -> str:
        """
        Engine diagnostics from the most recent operation. Empty unless
        buffered logging is on (see ``diagnostics.enable_native_log``).
        """
        with self._claim() as handle:
            return handle.log()

    def get_id(self) -> str:
        with self._claim() as handle:
            return handle.instance_id()

    def get_resource_path(self) -> str:
        with self._claim() as handle:
            return handle.get_resource_path()

    def set_resource_path(self, path: str | os.PathLike[str]) -> None:
        """
        Point the engine at another resource directory. The caller owns it.

        Raises:
            OptionsError: If the path cannot be marshaled or is rejected.
        """
        raw = to_native_str(os.fspath(path), OptionsError, "resource path")
        with self._claim() as handle:
            if not handle.set_resource_path(raw):
                raise OptionsError(f"engine rejected resource path '{raw}'", handle.log())
            self._resource_path = raw

    # ------------------------------------------------------------------
    # Render and query dispatch
    # ------------------------------------------------------------------

    def render(self, spec: RenderFormat[T]) -> T:
        """
        Render the loaded document in the format ``spec`` describes.

        Raises:
            RenderError: If nothing is loaded, a page is out of range, or the
                         engine fails to produce output.
        """
        if not isinstance(spec, RENDER_FORMATS):
            raise TypeError(f"not a render format: {spec!r}")
        with self._claim() as handle:
            return spec.render(handle)

    def render_to(self, path: str | os.PathLike[str]) -> list[Path]:
        """
        Render to a file, choosing the format from its extension.

        Raises:
            UnsupportedFormatError: For ``.json`` and unknown extensions.
        """
        return self.render_to_as(path, infer_format(path))

    def render_to_as(self, path: str | os.PathLike[str], spec: RenderFormat[Any]) -> list[Path]:
        """
        Render with an explicit format and write the result.

        Single results go to ``path``. Paginated formats write
        ``<stem>/page-001.<ext>``, ... next to ``path`` instead.

        Returns:
            The files written, in page order.

        Raises:
            RenderError:     As for ``render``.
            FileAccessError: If a file or directory cannot be written.
        """
        if not isinstance(spec, RENDER_FORMATS):
            raise TypeError(f"not a render format: {spec!r}")
        with self._claim() as handle:
            written = spec.write(handle, Path(path))
        logger.debug("wrote %d file(s) for %s", len(written), type(spec).__name__)
        return written

    def get(self, query: QueryFormat[T]) -> T:
        """
        Run a read-only lookup against the loaded document.

        Raises:
            QueryError: If nothing is loaded, the element does not exist, or
                        the engine returns no usable result.
        """
        if not isinstance(query, QUERY_FORMATS):
            raise TypeError(f"not a query: {query!r}")
        with self._claim() as handle:
            return query.query(handle)

    # ------------------------------------------------------------------
    # Flat aliases over render()/get()
    # ------------------------------------------------------------------

    def render_to_svg(self, page: int = 1) -> str:
        return self.render(SvgPage(page))

    def render_to_svg_with_declaration(self, page: int = 1) -> str:
        return self.render(SvgPage(page, declaration=True))

    def render_all_pages(self) -> list[str]:
        return self.render(SvgAllPages())

    def render_to_midi(self) -> bytes:
        return self.render(Midi())

    def render_to_pae(self) -> str:
        return self.render(Pae())

    def render_to_timemap(self, options: TimemapOptions | None = None) -> str:
        return self.render(Timemap(options))

    def render_to_expansion_map(self) -> str:
        return self.render(ExpansionMap())

    def get_mei(self, options: MeiOptions | None = None) -> str:
        return self.render(Mei(options))

    def get_humdrum(self) -> str:
        return self.render(Humdrum())

    def get_page_with_element(self, xml_id: str) -> int:
        return self.get(Page(xml_id))

    def get_element_attr(self, xml_id: str) -> str:
        return self.get(Attrs(xml_id))

    def get_time_for_element(self, xml_id: str) -> float:
        return self.get(Time(xml_id))

    def get_times_for_element(self, xml_id: str) -> str:
        return self.get(Times(xml_id))

    def get_expansion_ids_for_element(self, xml_id: str) -> str:
        return self.get(ExpansionIds(xml_id))

    def get_midi_values_for_element(self, xml_id: str) -> str:
        return self.get(MidiValues(xml_id))

    def get_notated_id_for_element(self, xml_id: str) -> str:
        return self.get(NotatedId(xml_id))

    def get_elements_at_time(self, millisec: int) -> str:
        return self.get(Elements(millisec))

    def get_descriptive_features(self, options: FeaturesOptions | None = None) -> str:
        return self.get(Features(options))
