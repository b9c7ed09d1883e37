"""Render pipeline: payload + style -> PNG bytes at a target size.

States: Init -> EncodingMatrix -> (StyledAttempt | BasicRender)
-> [LogoComposite] -> Exported.

Renderers form a chain; each returns a RenderOutcome instead of raising,
and the first successful outcome wins. Logo problems degrade to "no logo".
Only EncodingError and ExportError reach the caller.
"""

import abc
import concurrent.futures
import io
import threading
from dataclasses import dataclass

from PIL import Image

from qrcraft import basic
from qrcraft.compositor import LogoBox, composite, compute_logo_box, max_safe_logo_percent
from qrcraft.config import DOWNLOAD_SIZES, RenderSettings
from qrcraft.errors import LogoLoadError, StyleRenderError
from qrcraft.exporter import compute_margin, export, validate_size
from qrcraft.logging import audit, get_logger, trace
from qrcraft.logo import remove_background, resolve_logo
from qrcraft.matrix import BitMatrix, encode
from qrcraft.style import StyleConfig
from qrcraft.styled import render_styled
from qrcraft.surface import SurfaceProvider

log = get_logger("pipeline")

STYLED = "styled"
BASIC = "basic"
BASIC_FALLBACK = "basic-fallback"


@dataclass(frozen=True)
class RenderRequest:
    payload: str
    style: StyleConfig
    target_size_px: int


@dataclass(frozen=True)
class RenderResult:
    """PNG bytes plus what actually happened during the render."""

    data: bytes
    strategy: str
    logo_composited: bool
    logo_box: LogoBox | None
    version: int
    size_px: int
    margin_px: int

    def image(self) -> Image.Image:
        return Image.open(io.BytesIO(self.data))


@dataclass(frozen=True)
class RenderOutcome:
    """Tagged result of one renderer: an image or the error that stopped it."""

    renderer: str
    image: Image.Image | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.image is not None


class Renderer(abc.ABC):
    """One rendering strategy in the chain."""

    name = "renderer"

    @abc.abstractmethod
    def try_render(self, matrix: BitMatrix, style: StyleConfig, size_px: int,
                   margin_px: int, logo_box: LogoBox | None) -> RenderOutcome:
        """Render one image, or return the error that stopped this renderer."""


class StyledRenderer(Renderer):
    name = STYLED

    def __init__(self, provider: SurfaceProvider, executor: concurrent.futures.Executor,
                 settings: RenderSettings):
        self.provider = provider
        self.executor = executor
        self.settings = settings

    def try_render(self, matrix, style, size_px, margin_px, logo_box):
        hint = None
        if logo_box is not None:
            hint = logo_box.backing(self.settings.backing_padding_px)
        try:
            image = render_styled(
                matrix, style, size_px, margin_px,
                provider=self.provider,
                executor=self.executor,
                timeout_s=self.settings.styled_timeout_for(size_px),
                supersample=self.settings.supersample,
                logo_box=hint,
            )
        except StyleRenderError as e:
            return RenderOutcome(self.name, error=e)
        return RenderOutcome(self.name, image=image)


class BasicRasterizer(Renderer):
    name = BASIC

    def try_render(self, matrix, style, size_px, margin_px, logo_box):
        image = basic.rasterize(matrix, style.foreground_color, style.background_color,
                                size_px, margin_px)
        return RenderOutcome(self.name, image=image)


class RenderPipeline:
    """Stateless renderer with a one-entry cache of the last result.

    Args:
        settings: Render tunables; defaults to ``RenderSettings.from_env()``.
        surface_provider: Drawing capability for the styled path.
        logo_resolver: ``fn(ref, timeout_s, max_px) -> Image``; raises
            LogoLoadError on failure.
        max_workers: Threads available for bounded styled draws.
    """

    def __init__(
        self,
        settings: RenderSettings | None = None,
        surface_provider: SurfaceProvider | None = None,
        logo_resolver=resolve_logo,
        max_workers: int = 4,
    ):
        self.settings = settings or RenderSettings.from_env()
        self.surface_provider = surface_provider or SurfaceProvider()
        self.logo_resolver = logo_resolver
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="qrcraft-styled")
        self._styled = StyledRenderer(self.surface_provider, self._executor, self.settings)
        self._basic = BasicRasterizer()
        self._lock = threading.Lock()
        self._last: tuple[RenderRequest, RenderResult] | None = None

    def close(self):
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- cache ---------------------------------------------------------------

    def cached(self, request: RenderRequest) -> RenderResult | None:
        entry = self._last
        if entry is not None and entry[0] == request:
            return entry[1]
        return None

    def _store(self, request: RenderRequest, result: RenderResult) -> None:
        with self._lock:
            self._last = (request, result)

    def clear_cache(self) -> None:
        with self._lock:
            self._last = None

    # -- rendering -----------------------------------------------------------

    def _load_logo(self, style: StyleConfig) -> Image.Image | None:
        try:
            logo = self.logo_resolver(style.logo_ref, timeout_s=self.settings.logo_timeout_s,
                                      max_px=self.settings.logo_max_px)
        except LogoLoadError as e:
            log.warning("Logo unavailable, rendering without it: %s", e)
            audit("logo.skipped", logger=log, reason="load_failed", error=str(e)[:120])
            return None
        if style.hide_background_dots:
            logo = remove_background(logo)
        return logo

    def _chain(self, style: StyleConfig) -> list[Renderer]:
        if style.requires_styled():
            return [self._styled, self._basic]
        return [self._basic]

    @trace
    def render(self, payload: str, style: StyleConfig | None = None,
               target_size_px: int = 512) -> RenderResult:
        """Render *payload* with *style* as a ``target_size_px`` square PNG.

        Raises:
            EncodingError: Payload empty or too large for any QR version.
            ExportError: Invalid target size or PNG encoding failure.
        """
        style = style or StyleConfig()
        request = RenderRequest(payload, style, target_size_px)
        hit = self.cached(request)
        if hit is not None:
            audit("render.cache_hit", logger=log, size=target_size_px, strategy=hit.strategy)
            return hit

        size = validate_size(target_size_px, self.settings)
        matrix = encode(payload, style.error_correction)

        logo = self._load_logo(style) if style.has_logo else None
        logo_failed = style.has_logo and logo is None
        state = {}

        def render_at(size_px: int) -> Image.Image:
            margin = compute_margin(size_px, self.settings)
            percent = None
            box = None
            if logo is not None:
                percent = max_safe_logo_percent(
                    matrix, size_px, margin, style.logo_size_percent, style.logo_aspect,
                    padding=self.settings.backing_padding_px,
                    safety_factor=self.settings.logo_safety_factor,
                )
                if percent is None:
                    log.warning("No logo size keeps this code scannable; skipping logo")
                    audit("logo.skipped", logger=log, reason="no_safe_size",
                          version=matrix.version, size=size_px)
                else:
                    box = compute_logo_box(size_px, percent, style.logo_aspect)

            image, strategy = self._run_chain(matrix, style, size_px, margin, box)
            if box is not None:
                image, box = composite(image, logo, style, percent=percent,
                                       padding=self.settings.backing_padding_px)
            state.update(strategy=strategy, box=box, margin=margin)
            return image

        data = export(render_at, size, self.settings)
        result = RenderResult(
            data=data,
            strategy=state["strategy"],
            logo_composited=state["box"] is not None,
            logo_box=state["box"],
            version=matrix.version,
            size_px=size,
            margin_px=state["margin"],
        )
        audit("render.done", logger=log, size=size, strategy=result.strategy,
              logo_composited=result.logo_composited, version=matrix.version, **style.describe())
        if not logo_failed:
            self._store(request, result)
        return result

    def _run_chain(self, matrix, style, size_px, margin_px, box) -> tuple[Image.Image, str]:
        chain = self._chain(style)
        failed = []
        for renderer in chain:
            outcome = renderer.try_render(matrix, style, size_px, margin_px, box)
            if outcome.ok:
                if failed:
                    return outcome.image, BASIC_FALLBACK
                return outcome.image, outcome.renderer
            failed.append(outcome)
            log.warning("%s renderer failed, falling back: %s", outcome.renderer, outcome.error)
            audit("render.fallback", logger=log, failed=outcome.renderer,
                  error=str(outcome.error)[:120], size=size_px)
        # the basic rasterizer never reports failure
        raise RuntimeError("no renderer produced an image")

    def render_many(self, payload: str, style: StyleConfig | None = None,
                    sizes=DOWNLOAD_SIZES) -> dict[int, RenderResult]:
        """Render the same code at several sizes (batch download)."""
        return {size: self.render(payload, style, size) for size in sizes}


class PreviewSession:
    """Live-preview helper that keeps only the newest request's result.

    Each ``update`` starts a render tagged with a generation number. A render
    that finishes after a newer ``update`` is discarded; it is never
    interrupted and never blocks the newer one.
    """

    def __init__(self, pipeline: RenderPipeline, max_workers: int = 2):
        self.pipeline = pipeline
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="qrcraft-preview")
        self._cond = threading.Condition()
        self._generation = 0
        self._completed = 0
        self._latest: RenderResult | None = None
        self._error: Exception | None = None

    def update(self, payload: str, style: StyleConfig, size_px: int) -> concurrent.futures.Future:
        with self._cond:
            self._generation += 1
            generation = self._generation
        future = self._executor.submit(self.pipeline.render, payload, style, size_px)
        future.add_done_callback(lambda f: self._complete(generation, f))
        return future

    def _complete(self, generation: int, future: concurrent.futures.Future) -> None:
        with self._cond:
            if generation != self._generation:
                audit("preview.discarded", logger=log, generation=generation, newest=self._generation)
                return
            error = future.exception()
            if error is None:
                self._latest = future.result()
            self._error = error
            self._completed = generation
            self._cond.notify_all()

    def latest(self) -> RenderResult | None:
        with self._cond:
            return self._latest

    def wait(self, timeout: float | None = None) -> RenderResult | None:
        """Block until the newest request finishes; re-raise its error."""
        with self._cond:
            self._cond.wait_for(lambda: self._completed == self._generation, timeout)
            if self._error is not None and self._completed == self._generation:
                raise self._error
            return self._latest

    def close(self):
        self._executor.shutdown(wait=False)
