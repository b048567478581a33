"""
Interactive district map: hover, click and navigate.

The map owns one tagged ``MapState`` value and one ``CancellationToken`` per
(territory, current district) identity:

    IDLE --enter--> HOVERING --leave--> IDLE
    IDLE/HOVERING --click--> CLICKED --delay--> NAVIGATING

A click applies the click style at once, then after ``click_delay`` emits the
primary record's code to the host exactly once. Further clicks while CLICKED or
NAVIGATING are ignored. Changing the target or closing the map cancels the
token: pending navigation is dropped and late boundary or marker results for
the old identity are discarded.

Boundary loading is best effort. Without a boundary the map shows a notice
and a placeholder, and click-to-navigate still works from the record data.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .boundaries import BoundaryFeature
from .boundary_cache import BoundaryCache
from .cancellation import CancellationToken
from .config import BOUNDARY_REQUEST_GAP, CLICK_NAVIGATE_DELAY, MARKER_COLLISION_OFFSET, get_state_view
from .geo_utils import DistrictAliasResolver, normalize_district_name
from .map_view import DEFAULT_THEME, MapRenderer, PlotlyMapRenderer, build_tooltip_lines, get_theme
from .marker_placement import GeocodeFn, MarkerPlacement, place_markers
from .rto_data import RegionRecord, find_district_records, select_primary

logger = logging.getLogger(__name__)

LatLon = Tuple[float, float]

_UNSET = object()


class InteractionState(Enum):
    IDLE = 'idle'
    HOVERING = 'hovering'
    CLICKED = 'clicked'
    NAVIGATING = 'navigating'


@dataclass(frozen=True)
class MapState:
    """Current interaction phase plus the district (and code) it concerns."""

    phase: InteractionState = InteractionState.IDLE
    district: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class Tooltip:
    visible: bool = False
    lines: Tuple[str, ...] = ()
    position: Optional[LatLon] = None


@dataclass
class LoadProgress:
    loaded: int = 0
    total: int = 0

    @property
    def done(self) -> bool:
        return self.loaded >= self.total


@dataclass
class _Drawn:
    feature: Optional[BoundaryFeature] = None
    placeholder: bool = False


class InteractiveMap:
    """
    Map of a territory's districts with one optional "current" district.

    A single-district map is ``InteractiveMap(territory, [district],
    current_district=district)``. Pointer events name the district they hit.
    Methods that schedule work (``click``, ``set_target``) must be called from
    the running event loop.
    """

    def __init__(
        self,
        territory: str,
        districts: Sequence[str],
        district_records: Optional[Mapping[str, List[RegionRecord]]] = None,
        *,
        current_district: Optional[str] = None,
        current_code: Optional[str] = None,
        aliases: Optional[DistrictAliasResolver] = None,
        boundary_cache: Optional[BoundaryCache] = None,
        renderer: Optional[MapRenderer] = None,
        geocoder: Optional[GeocodeFn] = None,
        on_navigate: Optional[Callable[[str], object]] = None,
        interactive: bool = False,
        theme: str = DEFAULT_THEME,
        click_delay: float = CLICK_NAVIGATE_DELAY,
        request_gap: float = BOUNDARY_REQUEST_GAP,
        marker_offset: float = MARKER_COLLISION_OFFSET,
    ):
        self.territory = territory
        self.districts: List[str] = list(districts)
        self.district_records: Mapping[str, List[RegionRecord]] = district_records or {}
        self.current_district = current_district
        self.current_code = current_code
        self.aliases = aliases if aliases is not None else DistrictAliasResolver.for_territory(territory)
        self.boundary_cache = boundary_cache
        self.theme = get_theme(theme)
        self.renderer = renderer if renderer is not None else PlotlyMapRenderer(territory, theme=self.theme.name)
        self.geocoder = geocoder
        self.on_navigate = on_navigate
        self.interactive = interactive
        self.click_delay = click_delay
        self.request_gap = request_gap
        self.marker_offset = marker_offset

        self.state = MapState()
        self.tooltip = Tooltip()
        self.progress = LoadProgress(0, len(self.districts))
        self.failed_districts: List[str] = []
        self.notice: Optional[str] = None
        self.markers: List[MarkerPlacement] = []
        self.loading_boundaries = False
        self.loading_markers = False
        self.last_navigation: Optional[str] = None

        self._drawn: Dict[str, _Drawn] = {}
        self._token = CancellationToken(self.identity)
        self._click_task: Optional[asyncio.Task] = None
        self._load_task: Optional[asyncio.Task] = None
        self._handler_tasks: Set[asyncio.Future] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Identity and data helpers
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Tuple[str, Optional[str]]:
        return (self.territory, self.current_district)

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_navigation(self) -> Optional[asyncio.Task]:
        """The delayed navigation task while CLICKED, else None."""
        task = self._click_task
        return task if task is not None and not task.done() else None

    @property
    def boundaries(self) -> Dict[str, BoundaryFeature]:
        return {d: drawn.feature for d, drawn in self._drawn.items() if drawn.feature is not None}

    def records_for(self, district: str) -> List[RegionRecord]:
        return find_district_records(self.district_records, district, self.aliases)

    def primary_record(self, district: str) -> Optional[RegionRecord]:
        return select_primary(self.records_for(district))

    def is_current(self, district: Optional[str]) -> bool:
        if not district or not self.current_district:
            return False
        return normalize_district_name(district) == normalize_district_name(self.current_district)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Load boundaries, then markers, for the current identity."""
        token = self._token
        if token.cancelled:
            return
        await self._load_boundaries(token)
        if token.cancelled:
            return
        await self._load_markers(token)

    async def _load_boundaries(self, token: CancellationToken) -> None:
        districts = list(self.districts)
        self.progress = LoadProgress(0, len(districts))
        self.failed_districts = []
        self._set_notice(None)
        self.loading_boundaries = True

        uncached = []
        for district in districts:
            if district in self._drawn and self._drawn[district].feature is not None:
                continue
            feature = self.boundary_cache.get_cached_boundary(self.territory, district) if self.boundary_cache else None
            if feature is not None:
                self._draw(district, feature)
            else:
                uncached.append(district)
        self.progress.loaded = len(districts) - len(uncached)

        failed = []
        for i, district in enumerate(uncached):
            if token.cancelled:
                return
            feature = None
            if self.boundary_cache is not None:
                feature = await self.boundary_cache.resolve_boundary(self.territory, district, token)
            if token.cancelled:
                logger.debug(f"Dropping boundary for {district}: map target changed")
                return

            if feature is not None:
                self._draw(district, feature)
            else:
                failed.append(district)
            self.progress.loaded += 1

            # Small gap between uncached lookups to respect rate limits
            if i < len(uncached) - 1 and self.request_gap > 0:
                await asyncio.sleep(self.request_gap)

        if token.cancelled:
            return

        self.loading_boundaries = False
        self.failed_districts = failed
        if failed:
            logger.warning(f"Could not load boundaries for {len(failed)} district(s) in {self.territory}: {failed}")
            self._set_notice(self._failure_notice(failed))

        current = self.current_district
        if current and not any(self.is_current(d) and drawn.feature is not None for d, drawn in self._drawn.items()):
            self._draw_placeholder(current)

    def _failure_notice(self, failed: List[str]) -> str:
        if len(failed) == 1:
            return f"Could not load boundary for {failed[0]}, {self.territory}"
        shown = ', '.join(failed[:3])
        more = '...' if len(failed) > 3 else ''
        return f"Could not load {len(failed)} districts: {shown}{more}"

    async def _load_markers(self, token: CancellationToken) -> None:
        district = self.current_district
        if not district or self.geocoder is None:
            return

        records = self.records_for(district)
        self.loading_markers = True
        placements = await place_markers(
            records,
            self.geocoder,
            district=district,
            territory=self.territory,
            token=token,
            offset=self.marker_offset,
        )
        if placements is None or token.cancelled:
            return

        self.loading_markers = False
        self.markers = placements
        if placements:
            self.renderer.draw_markers(placements, self.current_code, self.theme)
        else:
            self.renderer.clear_markers()

    # ------------------------------------------------------------------
    # Drawing and styling
    # ------------------------------------------------------------------

    def _draw(self, district: str, feature: BoundaryFeature) -> None:
        self._drawn[district] = _Drawn(feature=feature)
        self.renderer.draw_boundary(district, feature, self.theme.style(self._style_role(district)))

    def _draw_placeholder(self, district: str) -> None:
        self._drawn[district] = _Drawn(placeholder=True)
        center = get_state_view(self.territory)['center']
        message = self.notice or f"No boundary for {district}"
        self.renderer.draw_placeholder(district, center, self.theme.style(self._style_role(district)), message)

    def _style_role(self, district: str) -> str:
        state = self.state
        if state.phase in (InteractionState.CLICKED, InteractionState.NAVIGATING) and state.district == district:
            return 'click'
        drawn = self._drawn.get(district)
        if drawn is not None and drawn.placeholder:
            return 'placeholder'
        hovered = state.phase == InteractionState.HOVERING and state.district == district
        if self.is_current(district):
            return 'current_hover' if hovered else 'current'
        return 'hover' if hovered else 'default'

    def _restyle(self, district: Optional[str]) -> None:
        if district is not None and district in self._drawn:
            self.renderer.set_style(district, self.theme.style(self._style_role(district)))

    def _set_notice(self, message: Optional[str]) -> None:
        self.notice = message
        self.renderer.show_notice(message)

    def set_theme(self, theme: str) -> None:
        """Re-style everything drawn for a new theme; interaction state is kept."""
        self.theme = get_theme(theme)
        self.renderer.set_theme(self.theme)
        for district in self._drawn:
            self._restyle(district)
        if self.markers:
            self.renderer.draw_markers(self.markers, self.current_code, self.theme)
        logger.debug(f"Applied theme {self.theme.name} in state {self.state.phase.value}")

    # ------------------------------------------------------------------
    # Pointer events
    # ------------------------------------------------------------------

    def pointer_enter(self, district: str, position: Optional[LatLon] = None) -> None:
        if self._closed or self.state.phase in (InteractionState.CLICKED, InteractionState.NAVIGATING):
            return

        previous = self.state.district if self.state.phase == InteractionState.HOVERING else None
        self.state = MapState(InteractionState.HOVERING, district)
        if previous and previous != district:
            self._restyle(previous)
        self._restyle(district)

        lines = build_tooltip_lines(
            district,
            self.territory,
            len(self.records_for(district)),
            is_current=self.is_current(district),
            interactive=self.interactive,
        )
        self.tooltip = Tooltip(True, tuple(lines), position or self.tooltip.position)
        self.renderer.show_tooltip(lines, self.tooltip.position)

    def pointer_move(self, lat: float, lon: float) -> None:
        if self.state.phase != InteractionState.HOVERING or not self.tooltip.visible:
            return
        position = (lat, lon)
        self.tooltip = Tooltip(True, self.tooltip.lines, position)
        self.renderer.move_tooltip(position)

    def pointer_leave(self, district: Optional[str] = None) -> None:
        if self.state.phase != InteractionState.HOVERING:
            return
        if district is not None and district != self.state.district:
            return
        left = self.state.district
        self.state = MapState()
        self._restyle(left)
        self._hide_tooltip()

    def _hide_tooltip(self) -> None:
        if self.tooltip.visible:
            self.tooltip = Tooltip(False, (), self.tooltip.position)
            self.renderer.hide_tooltip()

    def click(self, district: Optional[str] = None) -> bool:
        """
        Click a district; returns True if a navigation was scheduled.

        Ignored when the map is not interactive, the district has no records,
        or a click is already pending or navigating.
        """
        district = district or self.current_district
        if self._closed or not self.interactive or not district:
            return False
        if self.state.phase in (InteractionState.CLICKED, InteractionState.NAVIGATING):
            logger.debug(f"Ignoring click on {district}: already {self.state.phase.value}")
            return False

        primary = self.primary_record(district)
        if primary is None:
            logger.debug(f"Ignoring click on {district}: no records")
            return False

        hovered = self.state.district if self.state.phase == InteractionState.HOVERING else None
        self.state = MapState(InteractionState.CLICKED, district, primary.code)
        self._hide_tooltip()
        if hovered and hovered != district:
            self._restyle(hovered)
        self._restyle(district)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("click() called outside the event loop, navigating without delay")
            self._navigate(district, primary.code)
            return True

        self._click_task = loop.create_task(self._navigate_after_delay(district, primary.code, self._token))
        return True

    async def _navigate_after_delay(self, district: str, code: str, token: CancellationToken) -> None:
        await asyncio.sleep(self.click_delay)
        if token.cancelled or self._closed:
            return
        if self.state != MapState(InteractionState.CLICKED, district, code):
            return
        self._navigate(district, code)

    def marker_click(self, code: str) -> bool:
        """Navigate to another record from its marker; the current record's marker is inert."""
        if self._closed or code == self.current_code:
            return False
        if self.state.phase not in (InteractionState.IDLE, InteractionState.HOVERING):
            return False
        self._hide_tooltip()
        self._navigate(self.current_district, code)
        return True

    def _navigate(self, district: Optional[str], code: str) -> None:
        self.state = MapState(InteractionState.NAVIGATING, district, code)
        self.last_navigation = code
        logger.info(f"Navigating to {code}")
        if self.on_navigate is None:
            return
        try:
            result = self.on_navigate(code)
        except Exception as e:
            logger.error(f"Navigation handler failed for {code}: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(lambda t: self._handler_done(t, code))

    def _handler_done(self, task: asyncio.Future, code: str) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Navigation handler failed for {code}: {error}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _cancel_pending(self) -> None:
        self._token.cancel()
        if self._click_task is not None and not self._click_task.done():
            self._click_task.cancel()
        self._click_task = None
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None

    def set_target(
        self,
        current_district=_UNSET,
        territory: Optional[str] = None,
        districts: Optional[Sequence[str]] = None,
        current_code=_UNSET,
        district_records: Optional[Mapping[str, List[RegionRecord]]] = None,
        aliases: Optional[DistrictAliasResolver] = None,
    ) -> Optional[asyncio.Task]:
        """
        Point the map at a new identity and start loading it.

        Work in flight for the old identity is cancelled and its results are
        discarded. A territory change resets the alias table to that
        territory's built-in one unless ``aliases`` is given. Returns the new
        load task, or None outside an event loop.
        """
        if self._closed:
            return None
        self._cancel_pending()

        if territory is not None and territory != self.territory:
            self.territory = territory
            self.aliases = aliases if aliases is not None else DistrictAliasResolver.for_territory(territory)
            self._drawn.clear()
            self.renderer.clear()
        elif aliases is not None:
            self.aliases = aliases
        if districts is not None:
            self.districts = list(districts)
            stale = [d for d in self._drawn if d not in self.districts]
            if stale:
                self._drawn.clear()
                self.renderer.clear()
        if district_records is not None:
            self.district_records = district_records
        if current_district is not _UNSET:
            self.current_district = current_district
        if current_code is not _UNSET:
            self.current_code = current_code

        self.state = MapState()
        self._hide_tooltip()
        self.markers = []
        self.renderer.clear_markers()
        self.loading_markers = False
        # Placeholders belong to the previous current district
        for district in [d for d, drawn in self._drawn.items() if drawn.placeholder]:
            del self._drawn[district]
        for district in self._drawn:
            self._restyle(district)

        self._token = CancellationToken(self.identity)
        logger.debug(f"Map target is now {self.identity}")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        self._load_task = loop.create_task(self.load())
        return self._load_task

    def start(self) -> asyncio.Task:
        """Schedule ``load()`` as a task owned by the map."""
        self._load_task = asyncio.get_running_loop().create_task(self.load())
        return self._load_task

    def close(self) -> None:
        """Unmount: cancel pending navigation and loads."""
        if self._closed:
            return
        self._cancel_pending()
        self._hide_tooltip()
        self._closed = True
